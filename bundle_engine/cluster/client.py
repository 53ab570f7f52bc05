# bundle_engine/cluster/client.py

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, TextIO

from bundle_engine.cluster.models import ConfigMap, Job, JobSpec, Node, Pod


class ClusterClient(ABC):
    """
    Contract for the orchestrated cluster's API.

    Workloads (deployments, statefulsets, ...) are exchanged as plain
    dicts shaped like the cluster's own objects: metadata, spec, status.
    """

    # -------------------------
    # CONFIG MAPS
    # -------------------------

    @abstractmethod
    def apply_config_map(self, config_map: ConfigMap) -> ConfigMap:
        """Create the config map or replace its data."""
        raise NotImplementedError

    @abstractmethod
    def get_config_map(self, name: str, namespace: str) -> Optional[ConfigMap]:
        raise NotImplementedError

    # -------------------------
    # JOBS / PODS
    # -------------------------

    @abstractmethod
    def create_job(self, spec: JobSpec) -> Job:
        raise NotImplementedError

    @abstractmethod
    def get_job(self, name: str, namespace: str) -> Optional[Job]:
        raise NotImplementedError

    @abstractmethod
    def delete_job(self, name: str, namespace: str) -> bool:
        """
        Delete a job and its pods in the foreground.
        Deleting a missing job is not an error.
        """
        raise NotImplementedError

    @abstractmethod
    def list_pods(self, namespace: str, selector: Dict[str, str]) -> List[Pod]:
        """Pods matching the label selector, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def stream_logs(self, name: str, namespace: str, container: str, follow: bool = True) -> TextIO:
        """
        Log stream of a pod container.
        Callers must drain and close it.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_pods(self, namespace: str, selector: Dict[str, str], force: bool = False) -> int:
        raise NotImplementedError

    # -------------------------
    # NODES
    # -------------------------

    @abstractmethod
    def list_nodes(self) -> List[Node]:
        raise NotImplementedError

    # -------------------------
    # WORKLOADS
    # -------------------------

    @abstractmethod
    def get_workload(self, kind: str, name: str, namespace: str) -> Optional[Dict]:
        raise NotImplementedError

    @abstractmethod
    def list_workloads(self, kind: str, namespace: str, selector: Dict[str, str]) -> List[Dict]:
        raise NotImplementedError

    @abstractmethod
    def patch_workload(self, kind: str, name: str, namespace: str, patch: Dict) -> Dict:
        """Merge-patch a workload and return the result."""
        raise NotImplementedError

    @abstractmethod
    def delete_workload(self, kind: str, name: str, namespace: str) -> bool:
        raise NotImplementedError
