from typing import Dict

from bundle_engine.resources.base import DeployableResource, LogInfo, StatusInfo


class ServiceResource(DeployableResource):
    """Services have no rollout; every operation is a no-op."""

    def __init__(self, category: str, service_name: str, name: str, namespace: str):
        super().__init__(category, service_name, name, namespace)

    def fetch(self) -> None:
        pass

    def restart(self, force: bool = False) -> None:
        pass

    def scale(self, replicas: int) -> None:
        pass

    def delete(self) -> None:
        pass

    def logs(self, follow: bool = False) -> Dict[str, LogInfo]:
        return {}

    def status(self) -> Dict[str, StatusInfo]:
        return {}

    def wait(self, timeout: float) -> None:
        pass
