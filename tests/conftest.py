"""Shared test fixtures."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from crypticdocs.errors import SessionAcquisitionError
from crypticdocs.models import CommandResult, ResponseType
from crypticdocs.session import SessionCredentials

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture()
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture()
def load_response() -> Callable[[str], str]:
    def _load(name: str) -> str:
        return (FIXTURES_DIR / "responses" / name).read_text(encoding="utf-8")

    return _load


@pytest.fixture()
def credentials() -> SessionCredentials:
    return SessionCredentials(
        session_id="ABCD1234!EFGH5678!1700000000000",
        context_id="ctx.0001.example",
        user_id="AGENT42",
        acquired_at=datetime.now(timezone.utc),
        source="test",
    )


class FakeGateway:
    """Gateway double recording every dispatch.

    ``responses`` maps a command to the result text; ``failures`` maps a
    command to an ``error_kind``. ``on_send`` runs inside the worker thread
    before the result is returned.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        failures: Optional[Dict[str, str]] = None,
        on_send: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.responses = responses or {}
        self.failures = failures or {}
        self.on_send = on_send
        self.sent: List[str] = []
        self.credentials_seen: List[SessionCredentials] = []
        self.configured: Dict[str, Optional[int]] = {}
        self._lock = threading.Lock()

    def configure(self, *, max_retries=None, retry_delay_ms=None, timeout_per_command_ms=None) -> None:
        self.configured = {
            "max_retries": max_retries,
            "retry_delay_ms": retry_delay_ms,
            "timeout_per_command_ms": timeout_per_command_ms,
        }

    def send_command(self, credentials: SessionCredentials, command_text: str) -> CommandResult:
        with self._lock:
            self.sent.append(command_text)
            self.credentials_seen.append(credentials)
        if self.on_send is not None:
            self.on_send(command_text)

        if command_text in self.failures:
            return CommandResult(
                command=command_text,
                success=False,
                error=f"{command_text} failed",
                error_kind=self.failures[command_text],
                attempts=1,
            )
        return CommandResult(
            command=command_text,
            success=True,
            response_text=self.responses.get(command_text, f"{command_text} HELP TEXT\n>"),
            response_type=ResponseType.UNKNOWN,
            attempts=1,
        )


class StaticProvider:
    """Session provider double with a controllable validity flag."""

    def __init__(self, credentials: SessionCredentials, *, fail_acquire: bool = False) -> None:
        self._template = credentials
        self._credentials: Optional[SessionCredentials] = None
        self.fail_acquire = fail_acquire
        self.valid = True
        self.acquire_calls = 0
        self.invalidate_calls = 0

    @property
    def current(self) -> Optional[SessionCredentials]:
        return self._credentials

    def acquire(self) -> SessionCredentials:
        self.acquire_calls += 1
        if self.fail_acquire:
            raise SessionAcquisitionError(attempted=["static"])
        self._credentials = self._template
        self.valid = True
        return self._credentials

    def is_valid(self, credentials: Optional[SessionCredentials]) -> bool:
        return credentials is not None and self.valid

    def invalidate(self) -> None:
        self.invalidate_calls += 1
        self._credentials = None


@pytest.fixture()
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def provider(credentials: SessionCredentials) -> StaticProvider:
    return StaticProvider(credentials)


@pytest.fixture()
def failing_provider(credentials: SessionCredentials) -> StaticProvider:
    return StaticProvider(credentials, fail_acquire=True)
