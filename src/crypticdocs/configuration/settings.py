"""Typed settings management for crypticdocs.

User configuration is wrapped in Pydantic models so the CLI and the
extraction components can rely on validated values. Settings are read from a
YAML file and selected fields can be overridden through ``CRYPTICDOCS_*``
environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ConfigurationError


DEFAULT_CONFIG_PATH = Path.home() / ".crypticdocs" / "config.yaml"

DEFAULT_BASE_URL = (
    "https://uat10.resdesktop.altea.amadeus.com/cryptic/apfplus/modules/cryptic/cryptic"
)
DEFAULT_QUERY_PARAMS: Dict[str, str] = {
    "SITE": "ASVBASVB",
    "LANGUAGE": "GB",
    "OCTX": "ARDW_PDT_WBP",
}
DEFAULT_PROHIBITED_LIST_ID = "SITE_JCPCRYPTIC_PROHIBITED_COMMANDS_LIST_1"


class GatewaySettings(BaseModel):
    """Configuration for the cryptic command endpoint."""

    base_url: str = Field(DEFAULT_BASE_URL, description="Cryptic command endpoint")
    query_params: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_QUERY_PARAMS))
    max_retries: int = Field(3, ge=1, le=10, description="Attempts per command")
    retry_delay_ms: int = Field(1000, ge=0, le=60000, description="Fixed delay between attempts")
    timeout_per_command_ms: int = Field(10000, ge=100, le=300000)
    history_limit: int = Field(1000, ge=1, le=100000)
    verify_tls: bool = True

    @field_validator("base_url")
    def _validate_base_url(cls, value: str) -> str:
        if not value.startswith("https://") and not value.startswith("http://"):
            raise ValueError("base_url must start with http:// or https://")
        return value


class SessionDefaults(BaseModel):
    """Fallback values for optional credential fields."""

    user_id: str = "UNKNOWN"
    organization: str = "SV"
    office_id: str = "RUHSV0401"
    gds_code: str = "AMADEUS"
    prohibited_list_id: str = DEFAULT_PROHIBITED_LIST_ID


class SessionSettings(BaseModel):
    """Where session credentials are looked up and how long they stay fresh."""

    freshness_seconds: int = Field(3600, ge=1, le=86400)
    intercepted_request_path: Optional[Path] = None
    page_snapshot_path: Optional[Path] = None
    storage_dump_path: Optional[Path] = None
    read_environment: bool = True
    defaults: SessionDefaults = Field(default_factory=SessionDefaults)


class SchedulerSettings(BaseModel):
    """Batch dispatch settings, mutable between runs via ``update_settings``."""

    model_config = ConfigDict(validate_assignment=True)

    batch_size: int = Field(5, ge=1, le=100)
    delay_between_commands_ms: int = Field(1000, ge=0, le=60000)
    delay_between_batches_ms: int = Field(2000, ge=0, le=300000)
    # Overrides for the gateway; None keeps the gateway settings
    max_retries: Optional[int] = Field(None, ge=1, le=10)
    timeout_per_command_ms: Optional[int] = Field(None, ge=100, le=300000)
    skip_on_error: bool = False
    save_partial_results: bool = True


class Settings(BaseModel):
    """Root configuration state."""

    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    catalog_path: Optional[Path] = None


# (environment variable, dotted settings path)
_ENV_OVERRIDES = (
    ("CRYPTICDOCS_BASE_URL", "gateway.base_url"),
    ("CRYPTICDOCS_MAX_RETRIES", "gateway.max_retries"),
    ("CRYPTICDOCS_TIMEOUT_MS", "gateway.timeout_per_command_ms"),
    ("CRYPTICDOCS_BATCH_SIZE", "scheduler.batch_size"),
    ("CRYPTICDOCS_COMMAND_DELAY_MS", "scheduler.delay_between_commands_ms"),
    ("CRYPTICDOCS_BATCH_DELAY_MS", "scheduler.delay_between_batches_ms"),
    ("CRYPTICDOCS_CATALOG", "catalog_path"),
)


def _apply_env_overrides(payload: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    for env_name, dotted in _ENV_OVERRIDES:
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        target = payload
        *parents, leaf = dotted.split(".")
        for key in parents:
            target = target.setdefault(key, {})
        target[leaf] = value
    return payload


def load_settings(
    path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (if present) and apply environment overrides.

    Args:
        path: Config file; a missing default file yields default settings
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: If the file cannot be parsed or fails validation
    """
    environ = os.environ if environ is None else environ
    config_path = path or DEFAULT_CONFIG_PATH

    payload: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML configuration: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        payload = loaded or {}
    elif path is not None:
        raise ConfigurationError(f"Settings file not found at {config_path}")

    payload = _apply_env_overrides(payload, environ)
    try:
        return Settings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def save_settings(settings: Settings, path: Path = DEFAULT_CONFIG_PATH) -> None:
    """Persist settings to disk as YAML."""

    payload = settings.model_dump(mode="json", exclude_none=True)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False)


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_PROHIBITED_LIST_ID",
    "DEFAULT_QUERY_PARAMS",
    "GatewaySettings",
    "SchedulerSettings",
    "SessionDefaults",
    "SessionSettings",
    "Settings",
    "load_settings",
    "save_settings",
]
