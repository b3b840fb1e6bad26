"""Custom exceptions for scheduler state handling."""

from __future__ import annotations


class InvalidStateTransitionError(ValueError):
    """Raised when a run status change violates VALID_TRANSITIONS.

    Example:
        Calling ``resume()`` on an idle scheduler would attempt
        IDLE -> RUNNING outside of ``start()`` and raise this exception.
    """

    code = "INVALID_STATE_TRANSITION"


class SchedulerBusyError(RuntimeError):
    """Raised when ``start()`` is called while a run is in progress."""

    pass
