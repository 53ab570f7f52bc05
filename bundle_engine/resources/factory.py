"""Resolve a declared resource type to its DeployableResource."""

from enum import Enum

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.core.errors import UnknownResourceKindError
from bundle_engine.resources.base import DeployableResource
from bundle_engine.resources.quorum import QuorumResource
from bundle_engine.resources.service import ServiceResource
from bundle_engine.resources.workloads import (
    CronJobResource,
    DaemonSetResource,
    DeploymentResource,
    JobResource,
    StatefulSetResource,
)


class ResourceKind(Enum):
    """Closed set of workload kinds an application can declare."""

    DEPLOYMENT = "deployment"
    STATEFULSET = "statefulset"
    DAEMONSET = "daemonset"
    JOB = "job"
    CRONJOB = "cronjob"
    KUBEGRES = "kubegres"
    SERVICE = "service"

    @classmethod
    def parse(cls, value: str) -> "ResourceKind":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnknownResourceKindError(value) from None


_CLASSES = {
    ResourceKind.DEPLOYMENT: DeploymentResource,
    ResourceKind.STATEFULSET: StatefulSetResource,
    ResourceKind.DAEMONSET: DaemonSetResource,
    ResourceKind.JOB: JobResource,
    ResourceKind.CRONJOB: CronJobResource,
    ResourceKind.KUBEGRES: QuorumResource,
}


def new_resource(
    kind: str,
    client: ClusterClient,
    category: str,
    service_name: str,
    name: str,
    namespace: str,
    poll_interval: float = 5.0,
) -> DeployableResource:
    resource_kind = ResourceKind.parse(kind)
    if resource_kind is ResourceKind.SERVICE:
        return ServiceResource(category, service_name, name, namespace)
    return _CLASSES[resource_kind](client, category, service_name, name, namespace, poll_interval=poll_interval)
