"""Quorum-managed database: a custom object backed by several statefulsets."""

import logging
import time
from typing import Callable, Dict, List

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.core.errors import ResourceNotFound, RolloutError, RolloutTimeoutError
from bundle_engine.resources.base import DeployableResource, LogInfo, StatusInfo
from bundle_engine.resources.workloads import StatefulSetResource

logger = logging.getLogger(__name__)


class QuorumResource(DeployableResource):
    """Every statefulset labelled app=<name> is one member of the quorum."""

    KIND = "Kubegres"
    needs_quorum = True

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

    def members(self) -> List[StatefulSetResource]:
        workloads = self.client.list_workloads(StatefulSetResource.KIND, self.namespace, {"app": self.name})
        return [
            StatefulSetResource(
                self.client,
                self.category,
                self.service_name,
                workload["metadata"]["name"],
                self.namespace,
                poll_interval=self.poll_interval,
                sleep=self._sleep,
            )
            for workload in workloads
        ]

    def fetch(self) -> None:
        obj = self.client.get_workload(self.KIND, self.name, self.namespace)
        if obj is None:
            raise ResourceNotFound(f"couldn't get kubegres '{self.name}'")
        self.available_replicas = len(self.members())
        self.total_replicas = int(obj.get("spec", {}).get("replicas", 0))

    def restart(self, force: bool = False) -> None:
        failed = []
        for member in self.members():
            try:
                member.restart(force)
            except (ResourceNotFound, RolloutError) as e:
                logger.error(f"[resources] couldn't restart statefulset '{member.name}' in kubegres '{self.name}': {e}")
                failed.append(member.name)
        if failed:
            raise RolloutError(f"couldn't restart statefulsets {failed} in kubegres '{self.name}'")

    def scale(self, replicas: int) -> None:
        if self.client.get_workload(self.KIND, self.name, self.namespace) is None:
            raise ResourceNotFound(f"couldn't get kubegres '{self.name}'")
        self.client.patch_workload(self.KIND, self.name, self.namespace, {"spec": {"replicas": replicas}})

    def delete(self) -> None:
        if not self.client.delete_workload(self.KIND, self.name, self.namespace):
            raise ResourceNotFound(f"couldn't get kubegres '{self.name}'")

    def logs(self, follow: bool = False) -> Dict[str, LogInfo]:
        streams: Dict[str, LogInfo] = {}
        for member in self.members():
            streams.update(member.logs(follow))
        return streams

    def status(self) -> Dict[str, StatusInfo]:
        info: Dict[str, StatusInfo] = {}
        for member in self.members():
            info.update(member.status())
        return info

    def wait(self, timeout: float) -> None:
        for member in self.members():
            try:
                member.wait(timeout)
            except RolloutTimeoutError as e:
                raise RolloutTimeoutError(
                    f"failed to wait on stateful set '{member.name}' in kubegres '{self.name}': {e}"
                ) from e
            except RolloutError as e:
                raise RolloutError(
                    f"failed to wait on stateful set '{member.name}' in kubegres '{self.name}': {e}"
                ) from e
