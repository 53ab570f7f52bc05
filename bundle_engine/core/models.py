"""Deploy execution record and its state machine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class DeployState(Enum):
    """Execution state of one deploy action against one install."""

    PENDING = "PENDING"
    FETCHING = "FETCHING"
    CONFIGURING_INPUTS = "CONFIGURING_INPUTS"
    RUNNING = "RUNNING"
    POLLING = "POLLING"
    ROLLED_OUT = "ROLLED_OUT"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"


TERMINAL_STATES = {
    DeployState.ROLLED_OUT,
    DeployState.COMPLETED,
    DeployState.FAILED,
    DeployState.TIMED_OUT,
}


@dataclass
class DeployExecution:
    """
    One run of an action (apply, diff, delete, ...) against an install.

    ROLLED_OUT ends an action whose workloads were waited on; COMPLETED
    ends an action that skips the rollout wait (delete).
    """

    install_name: str
    namespace: str
    action: str
    timeout: float
    state: DeployState = DeployState.PENDING

    job_name: Optional[str] = None
    image: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
