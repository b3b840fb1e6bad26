"""Batch scheduler for help-text extraction runs.

Commands are sorted by priority, split into fixed-size batches and dispatched
strictly one at a time. Between commands and batches the scheduler waits for
the configured delays; before every batch and every command it honours
pause and stop requests.

Control calls (``pause``, ``resume``, ``stop``) only set flags and wake the
run loop, so they are safe to call from the event-loop thread, from another
thread, or from a listener callback. The blocking gateway call runs in a
worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..classifier import ResponseClassifier
from ..configuration.settings import SchedulerSettings
from ..errors import (
    ConfigurationError,
    CriticalCommandError,
    CrypticDocsError,
    SessionExpiredError,
)
from ..gateway import CommandGateway
from ..models import CommandResult, CommandSpec, Priority
from ..session import SessionCredentials, SessionProvider
from .catalog import partition, sort_by_priority
from .exceptions import InvalidStateTransitionError, SchedulerBusyError
from .models import (
    BatchJobState,
    BreakdownEntry,
    ExtractionReport,
    ProgressEvent,
    ReportSummary,
    RunStatistics,
)
from .state_machine import RunStateMachine, RunStatus

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]
CompleteListener = Callable[[ExtractionReport], None]
ErrorListener = Callable[[CrypticDocsError, ExtractionReport], None]


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


class BatchScheduler:
    """Drives one extraction run at a time over a command catalog."""

    def __init__(
        self,
        gateway: CommandGateway,
        provider: SessionProvider,
        classifier: Optional[ResponseClassifier] = None,
        *,
        settings: Optional[SchedulerSettings] = None,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.classifier = classifier or ResponseClassifier()
        self.settings = settings or SchedulerSettings()

        self._machine = RunStateMachine()
        self._lock = threading.Lock()
        self._active = False
        self._pause_requested = False
        self._stop_requested = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wake: Optional[asyncio.Event] = None
        self._stop_event: Optional[asyncio.Event] = None

        self._results: List[CommandResult] = []
        self._total = 0
        self._current_index = 0
        self._current_command: Optional[str] = None
        self._started_monotonic: Optional[float] = None
        self._started_at: Optional[datetime] = None
        self._statistics = RunStatistics()
        self.last_report: Optional[ExtractionReport] = None

        self._progress_listeners: List[ProgressListener] = []
        self._complete_listeners: List[CompleteListener] = []
        self._error_listeners: List[ErrorListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_progress(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def on_complete(self, listener: CompleteListener) -> None:
        self._complete_listeners.append(listener)

    def on_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    @property
    def results(self) -> List[CommandResult]:
        return list(self._results)

    @property
    def is_active(self) -> bool:
        return self._active

    def status(self) -> BatchJobState:
        return BatchJobState(
            status=self._machine.status,
            current_index=self._current_index,
            total=self._total,
            current_command=self._current_command,
            statistics=self._statistics.model_copy(),
        )

    def update_settings(self, changes: Union[SchedulerSettings, Mapping[str, Any]]) -> SchedulerSettings:
        """Merge ``changes`` into the scheduler settings.

        Delays and ``skip_on_error`` take effect at the next command; the
        batch size of a run in progress is fixed at ``start()``. Retry and
        timeout values reach the gateway only when set here.

        Raises:
            ConfigurationError: If the merged settings are invalid
        """
        if isinstance(changes, SchedulerSettings):
            merged = changes.model_dump()
        else:
            merged = {**self.settings.model_dump(), **dict(changes)}
        try:
            self.settings = SchedulerSettings.model_validate(merged)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid scheduler settings: {exc.errors()[0].get('msg', 'invalid')}",
                details={"fields": [".".join(map(str, e.get("loc", ()))) for e in exc.errors()]},
            ) from exc

        self._push_gateway_overrides()
        logger.info("Scheduler settings updated", extra={"settings": self.settings.model_dump()})
        return self.settings

    def _push_gateway_overrides(self) -> None:
        """Apply explicitly set retry/timeout overrides; unset ones leave the gateway alone."""
        if self.settings.max_retries is None and self.settings.timeout_per_command_ms is None:
            return
        self.gateway.configure(
            max_retries=self.settings.max_retries,
            timeout_per_command_ms=self.settings.timeout_per_command_ms,
        )

    def pause(self) -> None:
        """Request suspension before the next batch or command.

        Raises:
            InvalidStateTransitionError: If no run is in progress
        """
        with self._lock:
            if not self._active or self._machine.status not in (RunStatus.RUNNING, RunStatus.PAUSED):
                raise InvalidStateTransitionError(
                    f"Cannot pause from status {self._machine.status.value}"
                )
            self._pause_requested = True
        logger.info("Pause requested")

    def resume(self) -> None:
        """Wake a paused run.

        Raises:
            InvalidStateTransitionError: If no run is in progress
        """
        with self._lock:
            if not self._active:
                raise InvalidStateTransitionError(
                    f"Cannot resume from status {self._machine.status.value}"
                )
            self._pause_requested = False
        self._notify(self._wake)
        logger.info("Resume requested")

    def stop(self) -> None:
        """Stop the run before the next command; results so far are kept.

        With no run in progress a completed or failed scheduler is reset
        to ``idle``.
        """
        with self._lock:
            if not self._active:
                if self._machine.status is not RunStatus.IDLE:
                    self._machine.transition(RunStatus.IDLE, reason="reset")
                return
            self._stop_requested = True
            self._pause_requested = False
        self._notify(self._wake)
        self._notify(self._stop_event)
        logger.info("Stop requested")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def start(
        self,
        catalog: Sequence[CommandSpec],
        settings: Union[SchedulerSettings, Mapping[str, Any], None] = None,
    ) -> ExtractionReport:
        """Dispatch every command in ``catalog`` and return the report.

        Args:
            catalog: Commands to run, in any order
            settings: Optional settings applied before the run

        Returns:
            ExtractionReport; ``stopped`` is True when ``stop()`` ended the run

        Raises:
            SchedulerBusyError: If a run is already in progress
            CriticalCommandError: If a critical command failed and
                ``skip_on_error`` is False
            SessionAcquisitionError: If re-authentication failed
        """
        with self._lock:
            if self._active:
                raise SchedulerBusyError("An extraction run is already in progress")
            self._active = True

        try:
            if settings is not None:
                self.update_settings(settings)
            else:
                self._push_gateway_overrides()

            plan = sort_by_priority(catalog)
            self._prepare(plan)
            self._machine.transition(RunStatus.RUNNING, reason="start")
            logger.info(
                "Extraction run started",
                extra={"commands": len(plan), "batch_size": self.settings.batch_size},
            )

            try:
                stopped = await self._run(plan)
            except Exception as exc:
                error = exc if isinstance(exc, CrypticDocsError) else CrypticDocsError(str(exc))
                self._machine.transition(RunStatus.ERROR, reason=error.code)
                report = self._build_report(stopped=False)
                self.last_report = report
                logger.error(
                    "Extraction run aborted",
                    extra={"error_kind": error.code, "processed": len(self._results)},
                )
                self._emit(self._error_listeners, error, report)
                raise

            self._machine.transition(
                RunStatus.IDLE if stopped else RunStatus.COMPLETED,
                reason="stop" if stopped else "exhausted",
            )
            report = self._build_report(stopped=stopped)
            self.last_report = report
            logger.info(
                "Extraction run finished",
                extra={
                    "stopped": stopped,
                    "processed": report.summary.processed_commands,
                    "successful": report.summary.successful_commands,
                    "failed": report.summary.failed_commands,
                },
            )
            self._emit(self._complete_listeners, report)
            return report
        finally:
            with self._lock:
                self._active = False
                self._pause_requested = False
                self._stop_requested = False
            self._current_command = None

    def _prepare(self, plan: List[CommandSpec]) -> None:
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._stop_event = asyncio.Event()
        self._results = []
        self._total = len(plan)
        self._current_index = 0
        self._current_command = None
        self._statistics = RunStatistics()
        self._started_monotonic = time.monotonic()
        self._started_at = datetime.now(timezone.utc)

    async def _run(self, plan: List[CommandSpec]) -> bool:
        """Dispatch loop; returns True when stopped early."""
        batches = partition(plan, self.settings.batch_size)
        global_index = 0

        for batch_index, batch in enumerate(batches):
            if not await self._checkpoint():
                return True
            logger.debug(
                "Batch started",
                extra={"batch": batch_index + 1, "batches": len(batches), "size": len(batch)},
            )

            for position, spec in enumerate(batch):
                if not await self._checkpoint():
                    return True

                result = await self._dispatch(spec, batch_index, global_index)
                global_index += 1
                self._record(result)

                if not result.success and result.critical and not self.settings.skip_on_error:
                    raise CriticalCommandError(spec.command_text, result.error)

                if position < len(batch) - 1:
                    await self._delay(self.settings.delay_between_commands_ms)

            if batch_index < len(batches) - 1:
                await self._delay(self.settings.delay_between_batches_ms)

        return False

    async def _checkpoint(self) -> bool:
        """Block while paused; False when the run must stop."""
        while self._pause_requested and not self._stop_requested:
            if self._machine.status is RunStatus.RUNNING:
                self._machine.transition(RunStatus.PAUSED, reason="pause")
            assert self._wake is not None
            self._wake.clear()
            # resume() flips the flag before waking, so re-check after clearing
            if self._pause_requested and not self._stop_requested:
                await self._wake.wait()

        if self._stop_requested:
            return False
        if self._machine.status is RunStatus.PAUSED:
            self._machine.transition(RunStatus.RUNNING, reason="resume")
        return True

    async def _delay(self, delay_ms: int) -> None:
        if delay_ms <= 0 or self._stop_requested:
            return
        assert self._stop_event is not None
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass

    async def _dispatch(self, spec: CommandSpec, batch_index: int, global_index: int) -> CommandResult:
        self._current_index = global_index
        self._current_command = spec.command_text

        credentials = await self._ensure_session()
        result = await asyncio.to_thread(self.gateway.send_command, credentials, spec.command_text)

        if result.error_kind == SessionExpiredError.code:
            self.provider.invalidate()

        update: Dict[str, Any] = {
            "category": spec.category,
            "priority": spec.priority,
            "batch_index": batch_index,
            "global_index": global_index,
        }
        if not result.success:
            update["critical"] = spec.critical
        return self.classifier.enrich(result.model_copy(update=update))

    async def _ensure_session(self) -> SessionCredentials:
        """Current credentials, re-acquired once when no longer valid."""
        current = self.provider.current
        if self.provider.is_valid(current):
            assert current is not None
            return current

        if current is not None:
            logger.info("Re-authenticating before next command")
        self.provider.invalidate()
        return await asyncio.to_thread(self.provider.acquire)

    def _record(self, result: CommandResult) -> None:
        self._results.append(result)
        processed = len(self._results)
        successful = sum(1 for r in self._results if r.success)
        elapsed_ms = self._elapsed_ms()
        remaining = self._total - processed
        estimate = round(elapsed_ms / processed * remaining) if processed else 0

        self._current_index = processed
        self._statistics = RunStatistics(
            processed=processed,
            successful=successful,
            failed=processed - successful,
            success_rate=_percent(successful, processed),
            elapsed_ms=elapsed_ms,
            estimated_time_remaining_ms=estimate,
        )

        if not result.success:
            logger.warning(
                "Command failed",
                extra={
                    "command": result.command,
                    "error_kind": result.error_kind,
                    "attempts": result.attempts,
                },
            )

        event = ProgressEvent(
            current=processed,
            total=self._total,
            percentage=_percent(processed, self._total),
            current_command=result.command,
            successful=successful,
            failed=processed - successful,
            success_rate=self._statistics.success_rate,
            estimated_time_remaining_ms=estimate,
        )
        self._emit(self._progress_listeners, event)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _build_report(self, *, stopped: bool) -> ExtractionReport:
        results = list(self._results)
        processed = len(results)
        successful = sum(1 for r in results if r.success)
        duration_ms = self._elapsed_ms()

        return ExtractionReport(
            summary=ReportSummary(
                total_commands=self._total,
                processed_commands=processed,
                successful_commands=successful,
                failed_commands=processed - successful,
                success_rate=_percent(successful, processed),
                duration_ms=duration_ms,
                average_time_per_command_ms=round(duration_ms / processed) if processed else 0,
            ),
            results=results,
            errors=[r for r in results if not r.success],
            category_breakdown=self._breakdown(results, lambda r: r.category or "uncategorized"),
            priority_breakdown=self._priority_breakdown(results),
            started_at=self._started_at,
            finished_at=datetime.now(timezone.utc),
            stopped=stopped,
            status=self._machine.status,
            settings=self.settings.model_dump(),
        )

    @staticmethod
    def _breakdown(
        results: List[CommandResult],
        key: Callable[[CommandResult], str],
    ) -> Dict[str, BreakdownEntry]:
        buckets: Dict[str, BreakdownEntry] = {}
        for result in results:
            entry = buckets.setdefault(key(result), BreakdownEntry())
            entry.total += 1
            entry.commands.append(result.command)
            if result.success:
                entry.successful += 1
            else:
                entry.failed += 1
        for entry in buckets.values():
            entry.success_rate = _percent(entry.successful, entry.total)
        return buckets

    def _priority_breakdown(self, results: List[CommandResult]) -> Dict[str, BreakdownEntry]:
        buckets = {priority.value: BreakdownEntry() for priority in Priority}
        buckets.update(
            self._breakdown(results, lambda r: (r.priority or Priority.MEDIUM).value)
        )
        return buckets

    def _elapsed_ms(self) -> int:
        if self._started_monotonic is None:
            return 0
        return int((time.monotonic() - self._started_monotonic) * 1000)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _notify(self, event: Optional[asyncio.Event]) -> None:
        """Set ``event`` on the run's loop from whichever thread we are on."""
        loop = self._loop
        if event is None or loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    @staticmethod
    def _emit(listeners: Sequence[Callable[..., None]], *args: Any) -> None:
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception:
                logger.exception("Scheduler listener failed")


__all__ = ["BatchScheduler"]
