"""Event models for deploy executions."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict


@dataclass
class DeployEvent:
    """Base deploy event."""

    event_type: str
    install_name: str
    timestamp: datetime
    metadata: Dict[str, Any]

    @staticmethod
    def _for(event_type: str, execution, **metadata) -> "DeployEvent":
        base = {
            "namespace": execution.namespace,
            "action": execution.action,
            "state": execution.state.value,
        }
        base.update(metadata)
        return DeployEvent(
            event_type=event_type,
            install_name=execution.install_name,
            timestamp=datetime.utcnow(),
            metadata=base,
        )

    @staticmethod
    def deploy_fetching(execution):
        return DeployEvent._for("deploy.fetching", execution)

    @staticmethod
    def deploy_configuring(execution):
        return DeployEvent._for("deploy.configuring", execution, image=execution.image)

    @staticmethod
    def deploy_running(execution):
        return DeployEvent._for("deploy.running", execution, job_name=execution.job_name)

    @staticmethod
    def deploy_polling(execution):
        return DeployEvent._for("deploy.polling", execution, timeout=execution.timeout)

    @staticmethod
    def deploy_rolled_out(execution):
        return DeployEvent._for("deploy.rolled_out", execution)

    @staticmethod
    def deploy_completed(execution):
        return DeployEvent._for("deploy.completed", execution)

    @staticmethod
    def deploy_failed(execution):
        """Deploy failed event (job Failed, rollout error, or bad input)."""
        return DeployEvent._for("deploy.failed", execution, error=execution.error_message)

    @staticmethod
    def deploy_timed_out(execution):
        return DeployEvent._for("deploy.timed_out", execution, error=execution.error_message)
