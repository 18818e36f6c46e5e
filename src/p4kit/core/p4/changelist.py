"""Pending changelist model and its submit/delete lifecycle."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Iterable

from .types import ChangelistState, Record

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)

__all__ = ["Changelist", "flatten_files"]


def flatten_files(files: Iterable[Any] | str | os.PathLike[str]) -> list[str]:
    """Flatten nested iterables of str / PathLike into a flat list of strings.

    A single path (not wrapped in a list) is treated as one file.
    """
    if isinstance(files, (str, bytes, os.PathLike)):
        files = [files]
    flat: list[str] = []
    for item in files:
        if isinstance(item, (str, os.PathLike)):
            flat.append(os.fspath(item))
        elif isinstance(item, bytes):
            flat.append(item.decode())
        else:
            flat.extend(flatten_files(item))
    return flat


class Changelist:
    """A pending Perforce changelist.

    Use ``Session.new_changelist`` to create one, or wrap a known number with
    ``Changelist(session, number)``. Every query goes to the server; nothing
    about the changelist's contents is cached.
    """

    def __init__(self, session: "Session", number: int) -> None:
        self._session = session
        self._number = int(number)

    @property
    def number(self) -> int:
        return self._number

    @property
    def session(self) -> "Session":
        return self._session

    def __repr__(self) -> str:
        return f"Changelist({self._number})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Changelist):
            return NotImplemented
        return self._session is other._session and self._number == other._number

    def __hash__(self) -> int:
        return hash((id(self._session), self._number))

    def _run(self, command: str, *args: str) -> list[Record]:
        return self._session.run(command, *args)

    def add_files(self, *files: Any) -> None:
        """Open files in this changelist, for edit when already in the depot, for add otherwise."""
        flat = flatten_files(files)
        if not flat:
            return
        self._run("edit", "-c", str(self._number), *flat)
        self._run("add", "-c", str(self._number), *flat)

    def revert_files(self, *files: Any) -> None:
        """Revert these files in this changelist."""
        flat = flatten_files(files)
        if flat:
            self._run("revert", "-c", str(self._number), *flat)

    def delete_files(self, *files: Any) -> None:
        """Open files for deletion in this changelist."""
        flat = flatten_files(files)
        if flat:
            self._run("delete", "-c", str(self._number), *flat)

    def revert_unchanged_files(self, files: Iterable[Any] | None = None) -> None:
        """Revert files whose content matches the depot (defaults to every file in the changelist)."""
        flat = flatten_files(files) if files is not None else self.files()
        if flat:
            self._run("revert", "-a", "-c", str(self._number), *flat)

    def is_empty(self) -> bool:
        """True if no depot files are attached. Always asks the server."""
        records = self._run("describe", "-s", str(self._number))
        return not any("depotFile" in record for record in records)

    def delete(self) -> bool:
        """Delete this changelist if it is empty; otherwise do nothing.

        Returns:
            True if the changelist was deleted.
        """
        if not self.is_empty():
            return False
        self._run("change", "-d", str(self._number))
        logger.debug("Deleted empty changelist %s", self._number)
        return True

    def submit(self) -> ChangelistState:
        """Submit this changelist, or delete it if nothing actually changed.

        Unchanged files are reverted first, then emptiness is re-checked
        against the server: an empty changelist is deleted instead of being
        submitted or left behind.

        Returns:
            ChangelistState.SUBMITTED or ChangelistState.DELETED
        """
        self.revert_unchanged_files()
        if self.is_empty():
            self.delete()
            return ChangelistState.DELETED
        self._run("submit", "-c", str(self._number))
        logger.debug("Submitted changelist %s", self._number)
        return ChangelistState.SUBMITTED

    def info(self) -> Record:
        """The change form for this changelist, fetched fresh."""
        records = self._run("change", "-o", str(self._number))
        return records[0] if records else {}

    def files(self) -> list[str]:
        return list(self.info().get("Files") or [])

    def description(self) -> str | None:
        return self.info().get("Description")

    def status(self) -> str | None:
        return self.info().get("Status")
