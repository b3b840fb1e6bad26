"""CLI commands for inspecting session credentials."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..errors import SessionAcquisitionError
from ..session import SessionProvider
from .common import ConfigOption, console, fail, load_cli_settings

session_app = typer.Typer(help="Session credential commands")


@session_app.command("show")
def show_session(
    config_path: Path = ConfigOption,
    intercepted: Optional[Path] = typer.Option(None, "--intercepted", help="Captured request JSON"),
    page: Optional[Path] = typer.Option(None, "--page", help="Saved terminal page HTML"),
    storage: Optional[Path] = typer.Option(None, "--storage", help="Browser storage dump JSON"),
) -> None:
    """Show which strategy yields credentials, with identifiers masked."""
    settings = load_cli_settings(config_path, intercepted=intercepted, page=page, storage=storage)
    provider = SessionProvider.from_settings(settings.session)

    try:
        credentials = provider.acquire()
    except SessionAcquisitionError as exc:
        fail(exc)

    table = Table(title=f"Session from {credentials.source}")
    table.add_column("Field")
    table.add_column("Value")
    for field, value in credentials.redacted().items():
        table.add_row(field, value or "-")
    console.print(table)
