"""Run status state machine for the batch scheduler.

Every status change goes through ``RunStateMachine.transition`` which checks
it against ``VALID_TRANSITIONS`` and keeps a short transition history for
diagnostics.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from .exceptions import InvalidStateTransitionError

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Scheduler lifecycle states."""

    IDLE = "idle"  # No run, or run stopped
    RUNNING = "running"  # Dispatching commands
    PAUSED = "paused"  # Suspended between commands
    COMPLETED = "completed"  # Catalog exhausted
    ERROR = "error"  # Aborted by an unrecoverable failure


VALID_TRANSITIONS: Dict[RunStatus, Set[RunStatus]] = {
    RunStatus.IDLE: {
        RunStatus.RUNNING,  # start()
    },
    RunStatus.RUNNING: {
        RunStatus.PAUSED,  # pause()
        RunStatus.COMPLETED,  # Last command dispatched
        RunStatus.ERROR,  # Critical failure or re-authentication failure
        RunStatus.IDLE,  # stop()
    },
    RunStatus.PAUSED: {
        RunStatus.RUNNING,  # resume()
        RunStatus.IDLE,  # stop() while paused
        RunStatus.ERROR,
    },
    RunStatus.COMPLETED: {
        RunStatus.RUNNING,  # New run
        RunStatus.IDLE,  # stop() after completion resets
    },
    RunStatus.ERROR: {
        RunStatus.RUNNING,  # New run
        RunStatus.IDLE,
    },
}


@dataclass(frozen=True)
class StateTransition:
    from_status: RunStatus
    to_status: RunStatus
    timestamp: datetime
    reason: Optional[str] = None

    def is_valid(self) -> bool:
        return self.to_status in VALID_TRANSITIONS.get(self.from_status, set())

    def is_idempotent(self) -> bool:
        return self.from_status == self.to_status


class RunStateMachine:
    """Holds the current status and validates every change."""

    def __init__(self, history_limit: int = 100) -> None:
        self._status = RunStatus.IDLE
        self._history: List[StateTransition] = []
        self._history_limit = history_limit
        self._lock = threading.Lock()

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def history(self) -> List[StateTransition]:
        with self._lock:
            return list(self._history)

    def can_transition(self, to_status: RunStatus) -> bool:
        return to_status == self._status or to_status in VALID_TRANSITIONS[self._status]

    def transition(self, to_status: RunStatus, *, reason: Optional[str] = None) -> StateTransition:
        """Move to ``to_status``.

        Same-state transitions are accepted and recorded at debug level.

        Raises:
            InvalidStateTransitionError: If the change is not allowed
        """
        with self._lock:
            transition = StateTransition(
                from_status=self._status,
                to_status=to_status,
                timestamp=datetime.now(timezone.utc),
                reason=reason,
            )
            if not transition.is_valid() and not transition.is_idempotent():
                logger.error(
                    "Invalid run state transition",
                    extra={
                        "from_status": transition.from_status.value,
                        "to_status": to_status.value,
                    },
                )
                raise InvalidStateTransitionError(
                    f"Invalid transition: {transition.from_status.value} -> {to_status.value}"
                )

            if transition.is_idempotent():
                logger.debug("Idempotent run state transition", extra={"status": to_status.value})
            else:
                logger.info(
                    "Run state changed",
                    extra={
                        "from_status": transition.from_status.value,
                        "to_status": to_status.value,
                        "reason": reason,
                    },
                )

            self._status = to_status
            self._history.append(transition)
            del self._history[: -self._history_limit]
            return transition


__all__ = ["RunStateMachine", "RunStatus", "StateTransition", "VALID_TRANSITIONS"]
