"""Session credential model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..configuration.settings import DEFAULT_PROHIBITED_LIST_ID


class SessionCredentials(BaseModel):
    """Ephemeral identifiers authenticating a terminal session.

    Instances are immutable; the provider replaces them wholesale on
    re-acquisition.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default="", description="jSessionId of the web terminal")
    context_id: str = Field(default="", description="Terminal context identifier")
    user_id: str = Field(default="UNKNOWN")
    organization: str = Field(default="SV")
    office_id: str = Field(default="RUHSV0401")
    gds_code: str = Field(default="AMADEUS")
    prohibited_list_id: str = Field(default=DEFAULT_PROHIBITED_LIST_ID)
    acquired_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = Field(default="manual", description="Strategy that produced the credentials")
    cookies: Dict[str, str] = Field(default_factory=dict)

    @field_validator("acquired_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def has_identifiers(self) -> bool:
        """True when at least one of session_id/context_id is present."""
        return bool(self.session_id or self.context_id)

    def redacted(self) -> Dict[str, str]:
        """Loggable view with identifiers masked."""
        return {
            "session_id": _mask(self.session_id),
            "context_id": _mask(self.context_id),
            "user_id": self.user_id,
            "organization": self.organization,
            "office_id": self.office_id,
            "gds_code": self.gds_code,
            "source": self.source,
            "acquired_at": self.acquired_at.isoformat(),
        }


def _mask(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-3:]}"
