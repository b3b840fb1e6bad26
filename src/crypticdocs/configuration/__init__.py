"""Configuration helpers for crypticdocs."""

from .settings import (
    GatewaySettings,
    SchedulerSettings,
    SessionDefaults,
    SessionSettings,
    Settings,
    load_settings,
    save_settings,
)

__all__ = [
    "GatewaySettings",
    "SchedulerSettings",
    "SessionDefaults",
    "SessionSettings",
    "Settings",
    "load_settings",
    "save_settings",
]
