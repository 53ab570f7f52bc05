# bundle_engine/core/state_machine.py

from datetime import datetime

from bundle_engine.core.errors import InvalidStateTransition
from bundle_engine.core.models import DeployExecution, DeployState, TERMINAL_STATES


ALLOWED_TRANSITIONS = {
    DeployState.PENDING: {
        DeployState.FETCHING,
    },
    DeployState.FETCHING: {
        DeployState.CONFIGURING_INPUTS,
        DeployState.FAILED,
    },
    DeployState.CONFIGURING_INPUTS: {
        DeployState.RUNNING,
        DeployState.FAILED,
    },
    DeployState.RUNNING: {
        DeployState.POLLING,
        DeployState.FAILED,
    },
    DeployState.POLLING: {
        DeployState.ROLLED_OUT,
        DeployState.COMPLETED,
        DeployState.FAILED,
        DeployState.TIMED_OUT,
    },
}


class DeployStateMachine:
    @staticmethod
    def transition(
        execution: DeployExecution,
        new_state: DeployState,
        *,
        now: datetime | None = None,
    ) -> DeployExecution:
        now = now or datetime.utcnow()

        current = execution.state

        if current == new_state:
            return execution

        allowed = ALLOWED_TRANSITIONS.get(current, set())
        if new_state not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {current.value} to {new_state.value}"
            )

        if new_state == DeployState.FETCHING:
            execution.started_at = now

        elif new_state in TERMINAL_STATES:
            execution.finished_at = now

        execution.state = new_state
        return execution
