"""Scheduler-side records: run state, statistics, progress and the final report."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import CommandResult
from .state_machine import RunStatus


class RunStatistics(BaseModel):
    processed: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: int = 0
    elapsed_ms: int = 0
    estimated_time_remaining_ms: int = 0


class BatchJobState(BaseModel):
    """Snapshot returned by ``BatchScheduler.status()``."""

    model_config = ConfigDict(frozen=True)

    status: RunStatus = RunStatus.IDLE
    current_index: int = 0
    total: int = 0
    current_command: Optional[str] = None
    statistics: RunStatistics = Field(default_factory=RunStatistics)


class ProgressEvent(BaseModel):
    """Emitted after every dispatched command."""

    model_config = ConfigDict(frozen=True)

    current: int
    total: int
    percentage: int
    current_command: str
    successful: int
    failed: int
    success_rate: int
    estimated_time_remaining_ms: int


class ReportSummary(BaseModel):
    total_commands: int = 0
    processed_commands: int = 0
    successful_commands: int = 0
    failed_commands: int = 0
    success_rate: int = 0
    duration_ms: int = 0
    average_time_per_command_ms: int = 0


class BreakdownEntry(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: int = 0
    commands: List[str] = Field(default_factory=list)


class ExtractionReport(BaseModel):
    """Aggregate outcome of one run, complete or partial."""

    summary: ReportSummary
    results: List[CommandResult] = Field(default_factory=list)
    errors: List[CommandResult] = Field(default_factory=list)
    category_breakdown: Dict[str, BreakdownEntry] = Field(default_factory=dict)
    priority_breakdown: Dict[str, BreakdownEntry] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stopped: bool = False
    status: RunStatus = RunStatus.COMPLETED
    settings: Dict[str, Any] = Field(default_factory=dict)

    @property
    def commands(self) -> List[str]:
        return [result.command for result in self.results]


__all__ = [
    "BatchJobState",
    "BreakdownEntry",
    "ExtractionReport",
    "ProgressEvent",
    "ReportSummary",
    "RunStatistics",
]
