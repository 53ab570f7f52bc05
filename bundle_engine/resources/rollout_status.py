"""
Rollout-complete predicates over workload objects.

Each function takes the workload as a dict shaped like the cluster object
(metadata / spec / status) and returns (message, done). A rollout that
can never complete raises RolloutError.
"""

from typing import Dict, Optional, Tuple

from bundle_engine.core.errors import RolloutError


ROLLING_UPDATE = "RollingUpdate"
PROGRESSING = "Progressing"
PROGRESS_DEADLINE_EXCEEDED = "ProgressDeadlineExceeded"


def _name(obj: Dict) -> str:
    return obj.get("metadata", {}).get("name", "")


def _generation(obj: Dict) -> int:
    return int(obj.get("metadata", {}).get("generation", 0) or 0)


def _replicas(spec: Dict) -> int:
    replicas = spec.get("replicas")
    return 1 if replicas is None else int(replicas)


def _condition(status: Dict, condition_type: str) -> Optional[Dict]:
    for condition in status.get("conditions") or []:
        if condition.get("type") == condition_type:
            return condition
    return None


def deployment_status(obj: Dict) -> Tuple[str, bool]:
    name = _name(obj)
    spec = obj.get("spec", {})
    status = obj.get("status", {})

    if _generation(obj) > int(status.get("observedGeneration", 0)):
        return "Waiting for deployment spec update to be observed...", False

    condition = _condition(status, PROGRESSING)
    if condition and condition.get("reason") == PROGRESS_DEADLINE_EXCEEDED:
        raise RolloutError(f"deployment '{name}' exceeded its progress deadline")

    desired = _replicas(spec)
    updated = int(status.get("updatedReplicas", 0))
    current = int(status.get("replicas", 0))
    available = int(status.get("availableReplicas", 0))
    ready = int(status.get("readyReplicas", 0))

    if updated < desired:
        return (
            f"Waiting for deployment '{name}' rollout to finish: "
            f"{updated} out of {desired} new replicas have been updated...",
            False,
        )
    if current > updated:
        return (
            f"Waiting for deployment '{name}' rollout to finish: "
            f"{current - updated} old replicas are pending termination...",
            False,
        )
    if available < updated:
        return (
            f"Waiting for deployment '{name}' rollout to finish: "
            f"{available} of {updated} updated replicas are available...",
            False,
        )
    if ready < desired:
        return (
            f"Waiting for deployment '{name}' rollout to finish: "
            f"{ready} of {desired} replicas are ready...",
            False,
        )
    return f"deployment '{name}' successfully rolled out", True


def daemonset_status(obj: Dict) -> Tuple[str, bool]:
    name = _name(obj)
    spec = obj.get("spec", {})
    status = obj.get("status", {})

    strategy = spec.get("updateStrategy", {}).get("type", ROLLING_UPDATE)
    if strategy != ROLLING_UPDATE:
        raise RolloutError(f"rollout status is only available for {ROLLING_UPDATE} strategy type")

    if _generation(obj) > int(status.get("observedGeneration", 0)):
        return "Waiting for daemon set spec update to be observed...", False

    desired = int(status.get("desiredNumberScheduled", 0))
    updated = int(status.get("updatedNumberScheduled", 0))
    available = int(status.get("numberAvailable", 0))

    if updated < desired:
        return (
            f"Waiting for daemon set '{name}' rollout to finish: "
            f"{updated} out of {desired} new pods have been updated...",
            False,
        )
    if available < desired:
        return (
            f"Waiting for daemon set '{name}' rollout to finish: "
            f"{available} of {desired} updated pods are available...",
            False,
        )
    return f"daemon set '{name}' successfully rolled out", True


def statefulset_status(obj: Dict) -> Tuple[str, bool]:
    spec = obj.get("spec", {})
    status = obj.get("status", {})

    strategy = spec.get("updateStrategy", {})
    if strategy.get("type", ROLLING_UPDATE) != ROLLING_UPDATE:
        raise RolloutError(f"rollout status is only available for {ROLLING_UPDATE} strategy type")

    observed = int(status.get("observedGeneration", 0))
    if observed == 0 or _generation(obj) > observed:
        return "Waiting for statefulset spec update to be observed...", False

    replicas = _replicas(spec)
    ready = int(status.get("readyReplicas", 0))
    updated = int(status.get("updatedReplicas", 0))

    if ready < replicas:
        return f"Waiting for {replicas - ready} pods to be ready...", False

    rolling_update = strategy.get("rollingUpdate")
    if rolling_update is not None:
        partition = rolling_update.get("partition")
        if partition is not None and updated < replicas - int(partition):
            return (
                f"Waiting for partitioned roll out to finish: "
                f"{updated} out of {replicas - int(partition)} new pods have been updated...",
                False,
            )
        return f"partitioned roll out complete: {updated} new pods have been updated...", True

    update_revision = status.get("updateRevision", "")
    current_revision = status.get("currentRevision", "")
    if update_revision != current_revision:
        return (
            f"waiting for statefulset rolling update to complete "
            f"{updated} pods at revision {update_revision}...",
            False,
        )
    return (
        f"statefulset rolling update complete "
        f"{int(status.get('currentReplicas', 0))} pods at revision {current_revision}...",
        True,
    )


def job_status(obj: Dict) -> Tuple[str, bool]:
    conditions = obj.get("status", {}).get("conditions") or []
    if conditions and conditions[-1].get("type") == "Complete":
        return f"job '{_name(obj)}' is complete", True
    return f"Waiting for job '{_name(obj)}' to complete...", False


def cronjob_status(obj: Dict) -> Tuple[str, bool]:
    if obj.get("spec", {}).get("suspend"):
        return f"Waiting for cronjob '{_name(obj)}' to be resumed...", False
    return f"cronjob '{_name(obj)}' is ready", True
