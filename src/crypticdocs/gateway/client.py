"""Command gateway for the cryptic terminal endpoint.

This module sends one authenticated request per ``HE`` command, retries
transient failures with a fixed delay, decodes the response shape once and
tags each answer with a coarse response type. ``send_command`` never raises:
every failure is captured into a ``CommandResult``.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from ..configuration.settings import GatewaySettings
from ..errors import (
    CommandTimeoutError,
    CrypticDocsError,
    GatewayError,
    NetworkError,
    SessionExpiredError,
    UnexpectedResponseShape,
)
from ..errors.user_messages import redact
from ..models import CommandResult, ResponseType
from ..session.models import SessionCredentials
from .history import RequestHistory
from .shapes import UnexpectedShape, decode_payload

logger = logging.getLogger(__name__)

BODY_CHUNK_SIZE = 1024


# Ordered keyword rules for the coarse type; full parsing is the classifier's job.
# Each rule matches when every keyword is present in the lower-cased text.
COARSE_RULES: Tuple[Tuple[ResponseType, Tuple[Tuple[str, ...], ...]], ...] = (
    (
        ResponseType.ERROR,
        (("command not recognized",), ("invalid entry",), ("not authorized",)),
    ),
    (
        ResponseType.HELP_DOCUMENTATION,
        (("format", "reference"), ("explanation", "ms")),
    ),
    (
        ResponseType.COMMAND_LIST,
        (("task", "----"),),
    ),
)


def coarse_response_type(text: Optional[str]) -> ResponseType:
    """Classify a response as error / help documentation / command list / unknown."""
    if not text or not text.strip():
        return ResponseType.EMPTY
    lowered = text.lower()
    for response_type, alternatives in COARSE_RULES:
        for keywords in alternatives:
            if all(keyword in lowered for keyword in keywords):
                return response_type
    return ResponseType.UNKNOWN


def build_payload(credentials: SessionCredentials, command_text: str) -> Dict[str, Any]:
    """Request body embedding the session and the command."""
    return {
        "jSessionId": credentials.session_id,
        "contextId": credentials.context_id,
        "userId": credentials.user_id,
        "organization": credentials.organization,
        "officeId": credentials.office_id,
        "gds": credentials.gds_code,
        "tasks": [
            {
                "type": "CRY",
                "command": {
                    "command": command_text,
                    "prohibitedList": credentials.prohibited_list_id,
                },
            }
        ],
    }


class CommandGateway:
    """Sends cryptic commands with bounded retry and shallow validation."""

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or GatewaySettings()
        self.max_retries = self._settings.max_retries
        self.retry_delay_ms = self._settings.retry_delay_ms
        self.timeout_per_command_ms = self._settings.timeout_per_command_ms
        self._sleep = sleep
        self.history = RequestHistory(limit=self._settings.history_limit)

        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "Accept": "application/json",
                "X-Requested-With": "XMLHttpRequest",
                "User-Agent": "crypticdocs",
            }
        )

    @property
    def endpoint(self) -> str:
        return self._settings.base_url

    def configure(
        self,
        *,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        timeout_per_command_ms: Optional[int] = None,
    ) -> None:
        """Adjust retry and deadline parameters between runs."""
        if max_retries is not None:
            if max_retries < 1:
                raise ValueError("max_retries must be at least 1")
            self.max_retries = max_retries
        if retry_delay_ms is not None:
            self.retry_delay_ms = max(0, retry_delay_ms)
        if timeout_per_command_ms is not None:
            self.timeout_per_command_ms = max(1, timeout_per_command_ms)

    def send_command(self, credentials: SessionCredentials, command_text: str) -> CommandResult:
        """Dispatch one command and return its result.

        Transport failures, non-success statuses and per-attempt deadline
        expiry are retried up to ``max_retries`` attempts. A rejected session
        (HTTP 401/403) and an unexpected response shape are not retried.

        Args:
            credentials: Session credentials to embed in the request
            command_text: Command such as ``"HE AN"``

        Returns:
            CommandResult (never raises)
        """
        started = time.monotonic()
        attempts = 0

        try:
            payload = build_payload(credentials, command_text)
            body, attempts, error = self._post_with_retry(payload, credentials, command_text)

            if error is not None:
                result = self._failure(command_text, error, attempts, started)
            else:
                result = self._interpret(command_text, body, attempts, started)
        except Exception as exc:
            logger.exception("Unexpected gateway failure", extra={"command": command_text})
            result = self._failure(
                command_text,
                GatewayError(f"Unexpected gateway failure: {redact(str(exc))}"),
                attempts,
                started,
            )

        self.history.record(result)
        return result

    def test_connection(self, credentials: SessionCredentials) -> Tuple[bool, str]:
        """Send ``HE HELP`` and report whether the endpoint answers."""
        result = self.send_command(credentials, "HE HELP")
        if result.success:
            return True, "Connection OK"
        return False, result.error or "Unknown failure"

    def statistics(self) -> Dict[str, Any]:
        stats = self.history.statistics()
        stats.update(
            {
                "max_retries": self.max_retries,
                "retry_delay_ms": self.retry_delay_ms,
                "timeout_per_command_ms": self.timeout_per_command_ms,
            }
        )
        return stats

    def clear_history(self) -> None:
        self.history.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _post_with_retry(
        self,
        payload: Dict[str, Any],
        credentials: SessionCredentials,
        command_text: str,
    ) -> Tuple[Optional[bytes], int, Optional[CrypticDocsError]]:
        last_error: Optional[CrypticDocsError] = None
        attempts = 0

        for attempt in range(self.max_retries):
            attempts = attempt + 1
            try:
                return self._post(payload, credentials), attempts, None
            except SessionExpiredError as exc:
                logger.warning(
                    "Session rejected by host",
                    extra={"command": command_text, "attempt": attempts},
                )
                return None, attempts, exc
            except NetworkError as exc:
                last_error = exc
                logger.warning(
                    "Command attempt failed",
                    extra={
                        "command": command_text,
                        "attempt": attempts,
                        "max_retries": self.max_retries,
                        "error_kind": exc.code,
                    },
                )
                if attempt < self.max_retries - 1 and self.retry_delay_ms > 0:
                    self._sleep(self.retry_delay_ms / 1000)

        return None, attempts, last_error

    def _post(self, payload: Dict[str, Any], credentials: SessionCredentials) -> bytes:
        """One attempt; the body must arrive before the attempt deadline."""
        timeout = self.timeout_per_command_ms / 1000
        deadline = time.monotonic() + timeout
        try:
            response = self.session.post(
                self._settings.base_url,
                params=self._settings.query_params,
                json=payload,
                cookies=credentials.cookies or None,
                timeout=timeout,
                verify=self._settings.verify_tls,
                stream=True,
            )
        except requests.Timeout as exc:
            raise self._timeout_error() from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Transport error: {exc}") from exc

        try:
            if response.status_code in (401, 403):
                raise SessionExpiredError(f"Host rejected the session: HTTP {response.status_code}")
            if not response.ok:
                raise NetworkError(
                    f"HTTP Error: {response.status_code} {response.reason or ''}".strip(),
                    status_code=response.status_code,
                )
            return self._read_body(response, deadline)
        finally:
            response.close()

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        # The socket timeout bounds single reads only, not the whole body
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=BODY_CHUNK_SIZE):
                if time.monotonic() > deadline:
                    raise self._timeout_error()
                chunks.append(chunk)
        except requests.RequestException as exc:
            if isinstance(exc, requests.Timeout) or time.monotonic() > deadline:
                raise self._timeout_error() from exc
            raise NetworkError(f"Transport error: {exc}") from exc
        if time.monotonic() > deadline:
            raise self._timeout_error()
        return b"".join(chunks)

    def _timeout_error(self) -> CommandTimeoutError:
        return CommandTimeoutError(f"Command timed out after {self.timeout_per_command_ms} ms")

    def _interpret(
        self,
        command_text: str,
        body: bytes,
        attempts: int,
        started: float,
    ) -> CommandResult:
        try:
            data = json.loads(body)
        except ValueError:
            decoded = UnexpectedShape(reason="body is not valid JSON")
        else:
            decoded = decode_payload(data)

        if isinstance(decoded, UnexpectedShape):
            logger.warning(
                "Unexpected response shape",
                extra={"command": command_text, "reason": decoded.reason},
            )
            return self._failure(
                command_text,
                UnexpectedResponseShape(f"Unexpected response format: {decoded.reason}"),
                attempts,
                started,
            )

        response_type = coarse_response_type(decoded.response_text)
        logger.debug(
            "Command answered",
            extra={"command": command_text, "response_type": response_type.value},
        )
        return CommandResult(
            command=command_text,
            success=True,
            response_text=decoded.response_text,
            response_type=response_type,
            attempts=attempts,
            timestamp=datetime.now(timezone.utc),
            duration_ms=_elapsed_ms(started),
        )

    def _failure(
        self,
        command_text: str,
        error: CrypticDocsError,
        attempts: int,
        started: float,
    ) -> CommandResult:
        return CommandResult(
            command=command_text,
            success=False,
            error=error.message,
            error_kind=error.code,
            attempts=attempts,
            timestamp=datetime.now(timezone.utc),
            duration_ms=_elapsed_ms(started),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


__all__ = ["COARSE_RULES", "CommandGateway", "build_payload", "coarse_response_type"]
