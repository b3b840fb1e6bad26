"""Tests for the batch extraction scheduler."""

from __future__ import annotations

import asyncio
import threading
from typing import List
from unittest.mock import MagicMock

import pytest

from crypticdocs.configuration import SchedulerSettings, load_settings
from crypticdocs.errors import (
    ConfigurationError,
    CriticalCommandError,
    CrypticDocsError,
    SessionAcquisitionError,
)
from crypticdocs.gateway import CommandGateway
from crypticdocs.models import CommandSpec, Priority, ResponseType
from crypticdocs.orchestrator import (
    BatchScheduler,
    InvalidStateTransitionError,
    ProgressEvent,
    RunStatus,
    SchedulerBusyError,
)

FAST = SchedulerSettings(batch_size=5, delay_between_commands_ms=0, delay_between_batches_ms=0)


def _catalog(count: int, priority: Priority = Priority.MEDIUM) -> List[CommandSpec]:
    return [
        CommandSpec(command_text=f"HE C{index:02d}", category="test", priority=priority)
        for index in range(1, count + 1)
    ]


def _scheduler(fake_gateway, provider, settings: SchedulerSettings = FAST) -> BatchScheduler:
    return BatchScheduler(fake_gateway, provider, settings=settings)


async def _wait_for_status(scheduler: BatchScheduler, status: RunStatus) -> None:
    async def _poll() -> None:
        while scheduler.status().status is not status:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=5)


# ---------------------------------------------------------------------------
# Ordering and batching
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_all_commands_dispatched_in_batches(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)
    catalog = _catalog(23)

    report = await scheduler.start(catalog)

    assert fake_gateway.sent == [spec.command_text for spec in catalog]
    assert report.summary.total_commands == 23
    assert report.summary.processed_commands == 23
    assert report.summary.successful_commands == 23
    assert report.summary.success_rate == 100
    assert [r.batch_index for r in report.results] == [0] * 5 + [1] * 5 + [2] * 5 + [3] * 5 + [4] * 3
    assert [r.global_index for r in report.results] == list(range(23))
    assert report.status is RunStatus.COMPLETED
    assert report.stopped is False
    assert scheduler.status().status is RunStatus.COMPLETED


@pytest.mark.asyncio()
async def test_priority_order_is_high_medium_low(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)
    catalog = [
        CommandSpec(command_text="HE LOW", priority=Priority.LOW),
        CommandSpec(command_text="HE HIGH", priority=Priority.HIGH),
        CommandSpec(command_text="HE MED", priority=Priority.MEDIUM),
        CommandSpec(command_text="HE HIGH2", priority=Priority.HIGH),
    ]

    await scheduler.start(catalog)

    assert fake_gateway.sent == ["HE HIGH", "HE HIGH2", "HE MED", "HE LOW"]


@pytest.mark.asyncio()
async def test_empty_catalog_completes(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)

    report = await scheduler.start([])

    assert report.summary.total_commands == 0
    assert report.summary.success_rate == 0
    assert report.status is RunStatus.COMPLETED
    assert fake_gateway.sent == []


@pytest.mark.asyncio()
async def test_results_are_classified(fake_gateway, provider, load_response) -> None:
    fake_gateway.responses = {
        "HE AN": load_response("he_an.txt"),
        "HE HELP": load_response("he_help.txt"),
    }
    scheduler = _scheduler(fake_gateway, provider, FAST.model_copy(update={"batch_size": 1}))
    catalog = [
        CommandSpec(command_text="HE HELP", category="system", priority=Priority.LOW),
        CommandSpec(command_text="HE AN", category="availability", priority=Priority.HIGH),
    ]

    report = await scheduler.start(catalog)

    assert report.summary.total_commands == 2
    assert report.summary.processed_commands == 2
    first, second = report.results
    assert first.command == "HE AN"
    assert first.parsed.response_type is ResponseType.HELP_DOCUMENTATION
    assert first.parsed.title == "AVAILABILITY"
    assert second.parsed.response_type is ResponseType.COMMAND_LIST
    assert [first.batch_index, second.batch_index] == [0, 1]


@pytest.mark.asyncio()
async def test_report_breakdowns(fake_gateway, provider) -> None:
    fake_gateway.failures = {"HE B": "NETWORK_ERROR"}
    scheduler = _scheduler(fake_gateway, provider, FAST.model_copy(update={"skip_on_error": True}))
    catalog = [
        CommandSpec(command_text="HE A", category="availability", priority=Priority.HIGH),
        CommandSpec(command_text="HE B", category="availability", priority=Priority.HIGH),
        CommandSpec(command_text="HE C", category="pricing", priority=Priority.LOW),
    ]

    report = await scheduler.start(catalog)

    assert report.category_breakdown["availability"].total == 2
    assert report.category_breakdown["availability"].failed == 1
    assert report.category_breakdown["availability"].success_rate == 50
    assert report.category_breakdown["pricing"].commands == ["HE C"]
    assert set(report.priority_breakdown) == {"high", "medium", "low"}
    assert report.priority_breakdown["medium"].total == 0
    assert report.priority_breakdown["high"].successful == 1
    assert [r.command for r in report.errors] == ["HE B"]
    assert report.summary.success_rate == 67


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_progress_events(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)
    events: List[ProgressEvent] = []
    scheduler.on_progress(events.append)

    await scheduler.start(_catalog(4))

    assert [e.current for e in events] == [1, 2, 3, 4]
    assert [e.percentage for e in events] == [25, 50, 75, 100]
    assert events[-1].total == 4
    assert events[-1].estimated_time_remaining_ms == 0
    assert events[1].current_command == "HE C02"


@pytest.mark.asyncio()
async def test_failing_listener_does_not_break_run(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)

    def explode(event: ProgressEvent) -> None:
        raise RuntimeError("listener bug")

    scheduler.on_progress(explode)
    completed = []
    scheduler.on_complete(completed.append)

    report = await scheduler.start(_catalog(3))

    assert report.summary.processed_commands == 3
    assert completed == [report]


# ---------------------------------------------------------------------------
# Pause / resume / stop
# ---------------------------------------------------------------------------


class TestRunControl:
    """Flag-based control from listeners, tasks and other threads."""

    @pytest.mark.asyncio()
    async def test_pause_and_resume_keep_order(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)
        catalog = _catalog(8)
        fake_gateway.on_send = lambda command: scheduler.pause() if command == "HE C03" else None

        task = asyncio.create_task(scheduler.start(catalog))
        await _wait_for_status(scheduler, RunStatus.PAUSED)

        sent_while_paused = list(fake_gateway.sent)
        await asyncio.sleep(0.05)
        assert fake_gateway.sent == sent_while_paused == ["HE C01", "HE C02", "HE C03"]
        assert scheduler.status().current_index == 3

        scheduler.resume()
        report = await asyncio.wait_for(task, timeout=5)

        assert fake_gateway.sent == [spec.command_text for spec in catalog]
        assert report.summary.processed_commands == 8
        assert report.status is RunStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_resume_from_another_thread(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)
        fake_gateway.on_send = lambda command: scheduler.pause() if command == "HE C01" else None

        task = asyncio.create_task(scheduler.start(_catalog(3)))
        await _wait_for_status(scheduler, RunStatus.PAUSED)

        worker = threading.Thread(target=scheduler.resume)
        worker.start()
        worker.join()
        report = await asyncio.wait_for(task, timeout=5)

        assert report.summary.processed_commands == 3

    @pytest.mark.asyncio()
    async def test_stop_keeps_partial_results(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)

        def stop_after_four(event: ProgressEvent) -> None:
            if event.current == 4:
                scheduler.stop()

        scheduler.on_progress(stop_after_four)

        report = await scheduler.start(_catalog(12))

        assert report.stopped is True
        assert report.summary.processed_commands == 4
        assert report.summary.total_commands == 12
        assert fake_gateway.sent == ["HE C01", "HE C02", "HE C03", "HE C04"]
        assert report.status is RunStatus.IDLE
        assert scheduler.status().status is RunStatus.IDLE

    @pytest.mark.asyncio()
    async def test_stop_while_paused(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)
        fake_gateway.on_send = lambda command: scheduler.pause() if command == "HE C02" else None

        task = asyncio.create_task(scheduler.start(_catalog(5)))
        await _wait_for_status(scheduler, RunStatus.PAUSED)
        scheduler.stop()
        report = await asyncio.wait_for(task, timeout=5)

        assert report.stopped is True
        assert len(report.results) == 2
        assert scheduler.status().status is RunStatus.IDLE

    @pytest.mark.asyncio()
    async def test_stop_interrupts_delay(self, fake_gateway, provider) -> None:
        slow = SchedulerSettings(batch_size=5, delay_between_commands_ms=60000)
        scheduler = _scheduler(fake_gateway, provider, slow)
        scheduler.on_progress(lambda event: scheduler.stop())

        report = await asyncio.wait_for(scheduler.start(_catalog(3)), timeout=5)

        assert report.stopped is True
        assert report.summary.processed_commands == 1

    @pytest.mark.asyncio()
    async def test_second_start_is_rejected(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)
        fake_gateway.on_send = lambda command: scheduler.pause() if command == "HE C01" else None

        task = asyncio.create_task(scheduler.start(_catalog(3)))
        await _wait_for_status(scheduler, RunStatus.PAUSED)

        with pytest.raises(SchedulerBusyError):
            await scheduler.start(_catalog(1))

        scheduler.stop()
        await asyncio.wait_for(task, timeout=5)

    def test_pause_without_run_is_rejected(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)

        with pytest.raises(InvalidStateTransitionError):
            scheduler.pause()
        with pytest.raises(InvalidStateTransitionError):
            scheduler.resume()

    @pytest.mark.asyncio()
    async def test_stop_after_completion_resets_to_idle(self, fake_gateway, provider) -> None:
        scheduler = _scheduler(fake_gateway, provider)
        await scheduler.start(_catalog(1))

        scheduler.stop()

        assert scheduler.status().status is RunStatus.IDLE


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio()
    async def test_critical_failure_aborts_run(self, fake_gateway, provider) -> None:
        fake_gateway.failures = {"HE C02": "NETWORK_ERROR"}
        scheduler = _scheduler(fake_gateway, provider)
        errors = []
        scheduler.on_error(lambda error, report: errors.append((error, report)))
        catalog = _catalog(4)
        catalog[1] = catalog[1].model_copy(update={"critical": True})

        with pytest.raises(CriticalCommandError) as excinfo:
            await scheduler.start(catalog)

        assert excinfo.value.command == "HE C02"
        assert fake_gateway.sent == ["HE C01", "HE C02"]
        assert scheduler.status().status is RunStatus.ERROR
        assert len(errors) == 1
        error, report = errors[0]
        assert error is excinfo.value
        assert report.summary.processed_commands == 2
        assert report.status is RunStatus.ERROR
        assert scheduler.last_report == report

    @pytest.mark.asyncio()
    async def test_skip_on_error_continues_past_critical(self, fake_gateway, provider) -> None:
        fake_gateway.failures = {"HE C02": "NETWORK_ERROR"}
        settings = FAST.model_copy(update={"skip_on_error": True})
        scheduler = _scheduler(fake_gateway, provider, settings)
        catalog = _catalog(4)
        catalog[1] = catalog[1].model_copy(update={"critical": True})

        report = await scheduler.start(catalog)

        assert report.summary.processed_commands == 4
        assert report.summary.failed_commands == 1
        assert report.errors[0].critical is True
        assert report.errors[0].error_kind == "NETWORK_ERROR"

    @pytest.mark.asyncio()
    async def test_non_critical_failure_is_recorded(self, fake_gateway, provider) -> None:
        fake_gateway.failures = {"HE C01": "COMMAND_TIMEOUT"}
        scheduler = _scheduler(fake_gateway, provider)

        report = await scheduler.start(_catalog(3))

        assert report.summary.processed_commands == 3
        assert report.results[0].success is False
        assert report.results[0].critical is False
        assert report.results[0].parsed is None

    @pytest.mark.asyncio()
    async def test_acquisition_failure_aborts_run(self, fake_gateway, failing_provider) -> None:
        scheduler = _scheduler(fake_gateway, failing_provider)
        errors = []
        scheduler.on_error(lambda error, report: errors.append(error))

        with pytest.raises(SessionAcquisitionError):
            await scheduler.start(_catalog(2))

        assert fake_gateway.sent == []
        assert scheduler.status().status is RunStatus.ERROR
        assert isinstance(errors[0], SessionAcquisitionError)

    @pytest.mark.asyncio()
    async def test_scheduler_can_run_again_after_error(self, fake_gateway, provider) -> None:
        fake_gateway.failures = {"HE C01": "NETWORK_ERROR"}
        scheduler = _scheduler(fake_gateway, provider)
        catalog = [_catalog(1)[0].model_copy(update={"critical": True})]

        with pytest.raises(CrypticDocsError):
            await scheduler.start(catalog)

        fake_gateway.failures = {}
        report = await scheduler.start(catalog)

        assert report.status is RunStatus.COMPLETED


# ---------------------------------------------------------------------------
# Session handling
# ---------------------------------------------------------------------------


class TestSessionHandling:
    @pytest.mark.asyncio()
    async def test_credentials_acquired_once(self, fake_gateway, provider, credentials) -> None:
        scheduler = _scheduler(fake_gateway, provider)

        await scheduler.start(_catalog(6))

        assert provider.acquire_calls == 1
        assert fake_gateway.credentials_seen == [credentials] * 6

    @pytest.mark.asyncio()
    async def test_invalid_session_triggers_single_reauthentication(self, fake_gateway, provider) -> None:
        def expire(command: str) -> None:
            if command == "HE C02":
                provider.valid = False

        fake_gateway.on_send = expire
        scheduler = _scheduler(fake_gateway, provider)

        report = await scheduler.start(_catalog(4))

        assert report.summary.successful_commands == 4
        assert provider.acquire_calls == 2
        assert provider.invalidate_calls == 2

    @pytest.mark.asyncio()
    async def test_expired_result_invalidates_credentials(self, fake_gateway, provider) -> None:
        fake_gateway.failures = {"HE C01": "SESSION_EXPIRED"}
        scheduler = _scheduler(fake_gateway, provider)

        report = await scheduler.start(_catalog(2))

        assert report.results[0].error_kind == "SESSION_EXPIRED"
        assert report.results[1].success is True
        assert provider.acquire_calls == 2
        assert provider.invalidate_calls == 3


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def test_update_settings_reconfigures_gateway(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)

    settings = scheduler.update_settings({"max_retries": 5, "timeout_per_command_ms": 500})

    assert settings.max_retries == 5
    assert settings.batch_size == 5
    assert fake_gateway.configured["max_retries"] == 5
    assert fake_gateway.configured["timeout_per_command_ms"] == 500


@pytest.mark.parametrize(
    "changes",
    [{"batch_size": 0}, {"max_retries": 11}, {"delay_between_commands_ms": -1}],
)
def test_update_settings_rejects_invalid_values(fake_gateway, provider, changes) -> None:
    scheduler = _scheduler(fake_gateway, provider)

    with pytest.raises(ConfigurationError):
        scheduler.update_settings(changes)

    assert scheduler.settings == FAST


@pytest.mark.asyncio()
async def test_start_applies_settings(fake_gateway, provider) -> None:
    scheduler = _scheduler(fake_gateway, provider)

    report = await scheduler.start(_catalog(4), {"batch_size": 2, "max_retries": 2})

    assert [r.batch_index for r in report.results] == [0, 0, 1, 1]
    assert fake_gateway.configured["max_retries"] == 2
    assert report.settings["batch_size"] == 2


@pytest.mark.asyncio()
async def test_gateway_settings_survive_run_start(provider, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(
        "crypticdocs.configuration.settings.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml"
    )
    settings = load_settings(
        environ={"CRYPTICDOCS_MAX_RETRIES": "7", "CRYPTICDOCS_TIMEOUT_MS": "30000"}
    )
    gateway = CommandGateway(settings.gateway, session=MagicMock())
    scheduler = BatchScheduler(gateway, provider, settings=FAST)

    await scheduler.start([])
    scheduler.update_settings({"batch_size": 2})

    assert (gateway.max_retries, gateway.timeout_per_command_ms) == (7, 30000)
