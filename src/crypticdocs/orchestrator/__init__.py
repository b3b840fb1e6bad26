"""Batch extraction orchestration."""

from .catalog import fallback_catalog, load_catalog, sort_by_priority
from .exceptions import InvalidStateTransitionError, SchedulerBusyError
from .models import BatchJobState, ExtractionReport, ProgressEvent
from .scheduler import BatchScheduler
from .state_machine import RunStatus

__all__ = [
    "BatchJobState",
    "BatchScheduler",
    "ExtractionReport",
    "InvalidStateTransitionError",
    "ProgressEvent",
    "RunStatus",
    "SchedulerBusyError",
    "fallback_catalog",
    "load_catalog",
    "sort_by_priority",
]
