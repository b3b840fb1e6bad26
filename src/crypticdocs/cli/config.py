"""CLI commands for viewing crypticdocs settings."""

from __future__ import annotations

from pathlib import Path

import typer
import yaml

from ..configuration.settings import Settings, save_settings
from .common import ConfigOption, load_cli_settings

config_app = typer.Typer(help="Manage crypticdocs configuration")


@config_app.command("show")
def show_config(config_path: Path = ConfigOption) -> None:
    """Display effective configuration after environment overrides."""

    settings = load_cli_settings(config_path)
    payload = settings.model_dump(mode="json", exclude_none=True)
    typer.echo(yaml.safe_dump(payload, sort_keys=False).rstrip())


@config_app.command("init")
def init_config(
    config_path: Path = ConfigOption,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write a settings file with default values."""

    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}")
        raise typer.Exit(code=1)
    save_settings(Settings(), config_path)
    typer.echo(f"Configuration initialized at {config_path}")
