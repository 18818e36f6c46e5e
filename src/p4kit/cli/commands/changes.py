"""Changelist commands: ``pending`` and ``cleanup``."""

from __future__ import annotations

from typing import Optional

from rich.table import Table

from p4kit.cli.helpers import ClientOption, PortOption, UserOption, console, fail, open_session
from p4kit.core.exceptions import P4KitError


def pending(
    port: Optional[str] = PortOption,
    user: Optional[str] = UserOption,
    client: Optional[str] = ClientOption,
) -> None:
    """List your pending changelists in this client."""
    with open_session(port, user, client) as session:
        try:
            changelists = session.pending_changelists()
            rows = [(changelist.number, changelist.description() or "") for changelist in changelists]
        except P4KitError as exc:
            fail(exc)

    if not rows:
        console.print("[yellow]No pending changelists.[/yellow]")
        return

    table = Table(title="Pending Changelists")
    table.add_column("Change", style="cyan", justify="right")
    table.add_column("Description")
    for number, description in rows:
        table.add_row(str(number), description.strip())
    console.print(table)


def cleanup(
    port: Optional[str] = PortOption,
    user: Optional[str] = UserOption,
    client: Optional[str] = ClientOption,
) -> None:
    """Delete empty pending changelists."""
    with open_session(port, user, client) as session:
        try:
            deleted = session.delete_empty_changelists()
        except P4KitError as exc:
            fail(exc)

    if not deleted:
        console.print("No empty changelists.")
        return
    for changelist in deleted:
        console.print(f"[green]Deleted changelist {changelist.number}[/green]")
