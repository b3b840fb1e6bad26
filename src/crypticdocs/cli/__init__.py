"""Command line entry points for crypticdocs."""

import logging

import typer
from typer import Typer

from .config import config_app
from .extract import extract_app
from .session import session_app


cli = Typer(help="Extract help documentation from the cryptic terminal")
cli.add_typer(extract_app, name="extract")
cli.add_typer(session_app, name="session")
cli.add_typer(config_app, name="config")


@cli.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every sub-command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["cli", "config_app", "extract_app", "session_app"]
