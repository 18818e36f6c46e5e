"""Shared helpers for p4kit CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from p4kit.core.config import SessionConfig, load_session_config, locate_project_root
from p4kit.core.exceptions import P4KitError
from p4kit.core.p4 import Session

console = Console()

PortOption = typer.Option(None, "--port", "-p", help="Server address (overrides config and $P4PORT)")
UserOption = typer.Option(None, "--user", "-u", help="Perforce user (overrides config and $P4USER)")
ClientOption = typer.Option(None, "--client", "-c", help="Client workspace (overrides config and $P4CLIENT)")


def load_config(start: Path | None = None) -> SessionConfig:
    """Session config of the enclosing p4kit project, or defaults outside one."""
    repo_root = locate_project_root(start or Path.cwd())
    if repo_root is None:
        return SessionConfig()
    return load_session_config(repo_root)


def open_session(port: str | None, user: str | None, client: str | None) -> Session:
    """Open a session from project config plus command-line overrides, exiting on failure."""
    try:
        config = load_config().merged(port=port, user=user, client=client)
        return Session(config)
    except P4KitError as exc:
        fail(exc)


def fail(exc: BaseException) -> NoReturn:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(1)
