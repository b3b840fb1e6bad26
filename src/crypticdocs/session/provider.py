"""Single-owner session credential provider.

The provider is the only component that creates or replaces
``SessionCredentials``. Callers ask for credentials through ``acquire()``,
check them with ``is_valid()`` and request a refresh with ``invalidate()``
followed by ``acquire()``.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Mapping, Optional, Sequence

from ..configuration.settings import SessionDefaults, SessionSettings
from ..errors import SessionAcquisitionError
from .models import SessionCredentials
from .strategies import (
    Candidate,
    InterceptedRequestStrategy,
    PageStructureStrategy,
    PersistedStorageStrategy,
    ScriptStateStrategy,
    SessionStrategy,
    is_plausible,
)

logger = logging.getLogger(__name__)

_SESSION_ID_FORMAT = re.compile(r"^[A-Za-z0-9_\-!]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionProvider:
    """Acquires, caches and validates terminal session credentials.

    Strategies are tried in order; the first one yielding a plausible
    candidate wins and candidates are never merged across strategies.
    """

    def __init__(
        self,
        strategies: Sequence[SessionStrategy],
        *,
        freshness_seconds: int = 3600,
        defaults: Optional[SessionDefaults] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._strategies: List[SessionStrategy] = list(strategies)
        self._freshness = timedelta(seconds=freshness_seconds)
        self._defaults = defaults or SessionDefaults()
        self._clock = clock
        self._lock = threading.Lock()
        self._credentials: Optional[SessionCredentials] = None
        self.acquisition_count = 0

    @classmethod
    def from_settings(
        cls,
        settings: SessionSettings,
        *,
        environ: Optional[Mapping[str, str]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> "SessionProvider":
        """Build the standard four-strategy chain from settings."""
        strategies: List[SessionStrategy] = [
            InterceptedRequestStrategy(settings.intercepted_request_path),
            PageStructureStrategy(settings.page_snapshot_path),
            ScriptStateStrategy(settings.page_snapshot_path),
            PersistedStorageStrategy(
                settings.storage_dump_path,
                environ=environ,
                read_environment=settings.read_environment,
            ),
        ]
        return cls(
            strategies,
            freshness_seconds=settings.freshness_seconds,
            defaults=settings.defaults,
            clock=clock,
        )

    @property
    def current(self) -> Optional[SessionCredentials]:
        """Cached credentials, or ``None`` when nothing has been acquired."""
        return self._credentials

    @property
    def strategy_names(self) -> List[str]:
        return [strategy.name for strategy in self._strategies]

    def acquire(self) -> SessionCredentials:
        """Return valid credentials, running the strategy chain if needed.

        Raises:
            SessionAcquisitionError: If no strategy yields a plausible candidate
        """
        with self._lock:
            if self._credentials is not None and self.is_valid(self._credentials):
                return self._credentials

            attempted: List[str] = []
            for strategy in self._strategies:
                attempted.append(strategy.name)
                try:
                    candidate = strategy.extract()
                except Exception as exc:
                    logger.warning(
                        "Session strategy failed",
                        extra={"strategy": strategy.name, "error": type(exc).__name__},
                    )
                    continue

                if not is_plausible(candidate):
                    logger.debug(
                        "Session strategy yielded no usable candidate",
                        extra={"strategy": strategy.name},
                    )
                    continue

                credentials = self._complete(candidate, strategy.name)
                self._credentials = credentials
                self.acquisition_count += 1
                logger.info(
                    "Session credentials acquired",
                    extra={
                        "strategy": strategy.name,
                        "has_session_id": bool(credentials.session_id),
                        "has_context_id": bool(credentials.context_id),
                        "user_id": credentials.user_id,
                        "organization": credentials.organization,
                    },
                )
                return credentials

            self._credentials = None
            logger.error("No session strategy produced credentials", extra={"attempted": attempted})
            raise SessionAcquisitionError(attempted=attempted)

    def is_valid(self, credentials: Optional[SessionCredentials]) -> bool:
        """Check required identifiers and the freshness window."""
        if credentials is None or not credentials.has_identifiers:
            return False
        age = self._clock() - credentials.acquired_at
        if age > self._freshness:
            logger.warning(
                "Session credentials are stale",
                extra={"age_seconds": int(age.total_seconds())},
            )
            return False
        return True

    def invalidate(self) -> None:
        """Drop cached credentials; the next ``acquire()`` reruns every strategy."""
        with self._lock:
            self._credentials = None
        logger.info("Session credentials invalidated")

    def _complete(self, candidate: Candidate, source: str) -> SessionCredentials:
        defaults = self._defaults
        session_id = str(candidate.get("session_id") or "")
        context_id = str(candidate.get("context_id") or "")

        if session_id and not (_SESSION_ID_FORMAT.match(session_id) and len(session_id) > 10):
            logger.warning("Session id has an unexpected format", extra={"strategy": source})
        if context_id and not ("." in context_id and len(context_id) > 10):
            logger.warning("Context id has an unexpected format", extra={"strategy": source})

        return SessionCredentials(
            session_id=session_id,
            context_id=context_id,
            user_id=candidate.get("user_id") or defaults.user_id,
            organization=candidate.get("organization") or defaults.organization,
            office_id=candidate.get("office_id") or defaults.office_id,
            gds_code=candidate.get("gds_code") or defaults.gds_code,
            prohibited_list_id=defaults.prohibited_list_id,
            acquired_at=self._clock(),
            source=source,
            cookies=dict(candidate.get("cookies") or {}),
        )


__all__ = ["SessionProvider", "is_plausible"]
