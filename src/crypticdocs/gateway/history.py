"""Bounded diagnostic history of gateway calls."""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from ..models import CommandResult, ResponseType


class HistoryEntry(BaseModel):
    """Immutable record of one ``send_command`` call."""

    model_config = ConfigDict(frozen=True)

    command: str
    timestamp: datetime
    success: bool
    attempts: int
    duration_ms: int
    response_type: ResponseType
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def from_result(cls, result: CommandResult) -> "HistoryEntry":
        return cls(
            command=result.command,
            timestamp=result.timestamp,
            success=result.success,
            attempts=result.attempts,
            duration_ms=result.duration_ms,
            response_type=result.response_type,
            error=result.error,
            error_kind=result.error_kind,
        )


class RequestHistory:
    """Ring buffer; the oldest entries are evicted past ``limit``."""

    def __init__(self, limit: int = 1000) -> None:
        self._entries: Deque[HistoryEntry] = deque(maxlen=limit)
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, result: CommandResult) -> HistoryEntry:
        entry = HistoryEntry.from_result(result)
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def statistics(self, recent: int = 10) -> Dict[str, Any]:
        """Totals, success rate and average duration over the buffer."""
        entries = self.entries()
        total = len(entries)
        successful = sum(1 for entry in entries if entry.success)
        average = round(sum(entry.duration_ms for entry in entries) / total) if total else 0
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": round(successful / total * 100) if total else 0,
            "average_response_time_ms": average,
            "recent": entries[-recent:],
            "last": entries[-1] if entries else None,
        }


__all__ = ["HistoryEntry", "RequestHistory"]
