"""Contract shared by every workload kind an application can declare."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, TextIO, Tuple

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.core.errors import ResourceNotFound, RolloutError, RolloutTimeoutError

logger = logging.getLogger(__name__)


RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


@dataclass
class LogInfo:
    service: str
    pod: str
    container: str
    logs: TextIO


@dataclass
class StatusInfo:
    service: str
    pod: str
    container: str
    phase: str


class DeployableResource(ABC):
    """A workload produced by an install, checked for rollout after deploy."""

    def __init__(self, category: str, service_name: str, name: str, namespace: str):
        self.category = category
        self.service_name = service_name
        self.name = name
        self.namespace = namespace
        self.available_replicas = 0
        self.total_replicas = 0

    needs_quorum = False

    @abstractmethod
    def fetch(self) -> None:
        """Refresh available/total replica counts."""
        raise NotImplementedError

    @abstractmethod
    def restart(self, force: bool = False) -> None:
        """
        Graceful rolling restart, or with force=True delete every pod
        at once (service is interrupted).
        """
        raise NotImplementedError

    @abstractmethod
    def scale(self, replicas: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def logs(self, follow: bool = False) -> Dict[str, LogInfo]:
        """
        Log streams keyed by "[service.pod.container]".
        Callers must drain and close every stream.
        """
        raise NotImplementedError

    @abstractmethod
    def status(self) -> Dict[str, StatusInfo]:
        raise NotImplementedError

    @abstractmethod
    def wait(self, timeout: float) -> None:
        """Block until rolled out. Raises RolloutTimeoutError when the timeout elapses."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.namespace}/{self.name})"


class WorkloadResource(DeployableResource):
    """
    A single cluster workload object polled through a rollout predicate.

    Subclasses set KIND and implement rollout_status().
    """

    KIND = ""
    MISSING_IS_PENDING = False

    def __init__(
        self,
        client: ClusterClient,
        category: str,
        service_name: str,
        name: str,
        namespace: str,
        poll_interval: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(category, service_name, name, namespace)
        self.client = client
        self.poll_interval = poll_interval
        self._sleep = sleep

    @abstractmethod
    def rollout_status(self, obj: Dict) -> Tuple[str, bool]:
        raise NotImplementedError

    # -------------------------
    # HELPERS
    # -------------------------

    def _get(self) -> Dict:
        obj = self.client.get_workload(self.KIND, self.name, self.namespace)
        if obj is None:
            raise ResourceNotFound(f"couldn't get {self.KIND.lower()} '{self.name}'")
        return obj

    def _selector(self, obj: Dict) -> Dict[str, str]:
        match_labels = obj.get("spec", {}).get("selector", {}).get("matchLabels")
        return dict(match_labels) if match_labels else {"app": self.name}

    def _replica_counts(self, obj: Dict) -> Tuple[int, int]:
        status = obj.get("status", {})
        replicas = obj.get("spec", {}).get("replicas")
        return int(status.get("readyReplicas", 0)), 1 if replicas is None else int(replicas)

    # -------------------------
    # CONTRACT
    # -------------------------

    def fetch(self) -> None:
        self.available_replicas, self.total_replicas = self._replica_counts(self._get())

    def restart(self, force: bool = False) -> None:
        obj = self._get()
        if force:
            self.client.delete_pods(self.namespace, self._selector(obj), force=True)
            return

        restarted_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self.client.patch_workload(
            self.KIND,
            self.name,
            self.namespace,
            {"spec": {"template": {"metadata": {"annotations": {RESTARTED_AT_ANNOTATION: restarted_at}}}}},
        )

    def scale(self, replicas: int) -> None:
        self._get()
        self.client.patch_workload(self.KIND, self.name, self.namespace, {"spec": {"replicas": replicas}})
        logger.info(f"[resources] {self.KIND.lower()}/{self.name} scaled to {replicas}")

    def delete(self) -> None:
        self._get()
        self.client.delete_workload(self.KIND, self.name, self.namespace)

    def logs(self, follow: bool = False) -> Dict[str, LogInfo]:
        streams: Dict[str, LogInfo] = {}
        for pod in self.client.list_pods(self.namespace, self._selector(self._get())):
            for container in pod.containers:
                stream = self.client.stream_logs(pod.name, self.namespace, container, follow=follow)
                prefix = f"[{self.service_name}.{pod.name}.{container}]"
                streams[prefix] = LogInfo(self.service_name, pod.name, container, stream)
        return streams

    def status(self) -> Dict[str, StatusInfo]:
        info: Dict[str, StatusInfo] = {}
        for pod in self.client.list_pods(self.namespace, self._selector(self._get())):
            for container in pod.containers:
                key = f"[{self.service_name}.{pod.name}.{container}]"
                info[key] = StatusInfo(self.service_name, pod.name, container, pod.phase)
        return info

    def wait(self, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        kind = self.KIND.lower()

        while True:
            obj: Optional[Dict] = self.client.get_workload(self.KIND, self.name, self.namespace)
            if obj is None:
                if not self.MISSING_IS_PENDING:
                    raise RolloutError(f"couldn't get latest status of {kind} '{self.name}'")
                logger.debug(f"[rollout] {kind} '{self.name}' not found yet")
            else:
                message, done = self.rollout_status(obj)
                logger.info(f"[rollout] {message}")
                if done:
                    return

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._sleep(min(self.poll_interval, remaining))

        raise RolloutTimeoutError(f"timeout expired waiting for {kind} '{self.name}'")
