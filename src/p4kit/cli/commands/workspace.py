"""Workspace commands: ``info``, ``root``, ``sync`` and ``revert``."""

from __future__ import annotations

from typing import List, Optional

import typer
from rich.table import Table

from p4kit.cli.helpers import ClientOption, PortOption, UserOption, console, fail, open_session
from p4kit.core.exceptions import P4KitError

_INFO_FIELDS = (
    ("userName", "User"),
    ("clientName", "Client"),
    ("clientRoot", "Client root"),
    ("serverAddress", "Server address"),
    ("serverVersion", "Server version"),
)


def info(
    port: Optional[str] = PortOption,
    user: Optional[str] = UserOption,
    client: Optional[str] = ClientOption,
) -> None:
    """Show server and client information."""
    with open_session(port, user, client) as session:
        try:
            record = session.server_info()
        except P4KitError as exc:
            fail(exc)

    table = Table(title="Perforce Server", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, label in _INFO_FIELDS:
        if key in record:
            table.add_row(label, str(record[key]))
    console.print(table)


def root(
    port: Optional[str] = PortOption,
    user: Optional[str] = UserOption,
    client: Optional[str] = ClientOption,
) -> None:
    """Print the client root directory (in local path form)."""
    with open_session(port, user, client) as session:
        try:
            console.print(session.root())
        except P4KitError as exc:
            fail(exc)


def sync(
    args: Optional[List[str]] = typer.Argument(None, help="File specs to sync (default: whole client)"),
    port: Optional[str] = PortOption,
    user: Optional[str] = UserOption,
    client: Optional[str] = ClientOption,
) -> None:
    """Sync the client workspace."""
    with open_session(port, user, client) as session:
        try:
            records = session.sync(*(args or []))
        except P4KitError as exc:
            fail(exc)
    synced = [record for record in records if "depotFile" in record]
    console.print(f"[green]Synced {len(synced)} file(s)[/green]")


def revert(
    files: List[str] = typer.Argument(..., help="Files to revert"),
    port: Optional[str] = PortOption,
    user: Optional[str] = UserOption,
    client: Optional[str] = ClientOption,
) -> None:
    """Revert open files, whatever changelist they are in."""
    with open_session(port, user, client) as session:
        try:
            records = session.revert_files(files)
        except P4KitError as exc:
            fail(exc)
    console.print(f"[green]Reverted {len(records)} file(s)[/green]")
