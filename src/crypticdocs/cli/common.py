"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console

from ..configuration.settings import DEFAULT_CONFIG_PATH, Settings, load_settings
from ..errors import CrypticDocsError
from ..errors.user_messages import format_error_for_cli

console = Console()

ConfigOption = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config file")


def load_cli_settings(
    config_path: Path,
    *,
    intercepted: Optional[Path] = None,
    page: Optional[Path] = None,
    storage: Optional[Path] = None,
) -> Settings:
    """Load settings and apply session source overrides from options."""
    explicit = config_path if config_path != DEFAULT_CONFIG_PATH else None
    try:
        settings = load_settings(explicit)
    except CrypticDocsError as exc:
        fail(exc)

    session = settings.session
    updates = {}
    if intercepted is not None:
        updates["intercepted_request_path"] = intercepted
    if page is not None:
        updates["page_snapshot_path"] = page
    if storage is not None:
        updates["storage_dump_path"] = storage
    if updates:
        settings = settings.model_copy(update={"session": session.model_copy(update=updates)})
    return settings


def fail(error: CrypticDocsError, exit_code: int = 1) -> NoReturn:
    console.print(f"[red]{format_error_for_cli(error)}[/red]")
    raise typer.Exit(code=exit_code)
