"""Deployment, StatefulSet, DaemonSet, Job and CronJob resources."""

from typing import Dict, Tuple

from bundle_engine.cluster.models import JOB_NAME_LABEL
from bundle_engine.core.errors import RolloutError
from bundle_engine.resources import rollout_status
from bundle_engine.resources.base import WorkloadResource


class DeploymentResource(WorkloadResource):
    KIND = "Deployment"

    def rollout_status(self, obj: Dict) -> Tuple[str, bool]:
        return rollout_status.deployment_status(obj)


class StatefulSetResource(WorkloadResource):
    KIND = "StatefulSet"
    needs_quorum = True

    def rollout_status(self, obj: Dict) -> Tuple[str, bool]:
        return rollout_status.statefulset_status(obj)


class DaemonSetResource(WorkloadResource):
    KIND = "DaemonSet"

    def rollout_status(self, obj: Dict) -> Tuple[str, bool]:
        return rollout_status.daemonset_status(obj)

    def _replica_counts(self, obj: Dict) -> Tuple[int, int]:
        status = obj.get("status", {})
        return int(status.get("numberAvailable", 0)), int(status.get("desiredNumberScheduled", 0))

    def scale(self, replicas: int) -> None:
        raise RolloutError(f"daemon set '{self.name}' runs one pod per node and cannot be scaled")


class JobResource(WorkloadResource):
    KIND = "Job"
    MISSING_IS_PENDING = True

    def rollout_status(self, obj: Dict) -> Tuple[str, bool]:
        return rollout_status.job_status(obj)

    def _selector(self, obj: Dict) -> Dict[str, str]:
        return {JOB_NAME_LABEL: self.name}

    def _replica_counts(self, obj: Dict) -> Tuple[int, int]:
        status = obj.get("status", {})
        return int(status.get("succeeded", 0)), int(obj.get("spec", {}).get("completions", 1) or 1)

    def scale(self, replicas: int) -> None:
        self._get()
        self.client.patch_workload(self.KIND, self.name, self.namespace, {"spec": {"parallelism": replicas}})


class CronJobResource(WorkloadResource):
    KIND = "CronJob"
    MISSING_IS_PENDING = True

    def rollout_status(self, obj: Dict) -> Tuple[str, bool]:
        return rollout_status.cronjob_status(obj)

    def _selector(self, obj: Dict) -> Dict[str, str]:
        return {"cronjob": self.name}

    def _replica_counts(self, obj: Dict) -> Tuple[int, int]:
        active = len(obj.get("status", {}).get("active") or [])
        return active, active

    def restart(self, force: bool = False) -> None:
        """A cron job restarts by suspending and resuming its schedule."""
        self._get()
        self.client.patch_workload(self.KIND, self.name, self.namespace, {"spec": {"suspend": True}})
        self.client.patch_workload(self.KIND, self.name, self.namespace, {"spec": {"suspend": False}})

    def scale(self, replicas: int) -> None:
        """Zero suspends the schedule, anything else resumes it."""
        self._get()
        self.client.patch_workload(self.KIND, self.name, self.namespace, {"spec": {"suspend": replicas == 0}})
