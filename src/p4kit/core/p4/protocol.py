"""
Collaborator Protocols
======================

Interfaces the session layer depends on but does not implement itself:

- ``ServerConnection``: one connection to a Perforce server. The default
  implementation is ``P4CliConnection`` (``p4 -G`` over subprocess); any
  object with the same surface can be injected.
- ``PathTranslator``: converts a server-reported client root into the local
  filesystem convention on platforms where the two differ (Cygwin).
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from .types import Record


@runtime_checkable
class ServerConnection(Protocol):
    """Connection surface consumed by ``Session``.

    Implementations raise ``ServerCommandError`` from ``run`` when
    ``exception_level`` is ``RAISE_ERRORS`` or above and the server reports a
    failure, and ``ServerConnectionError`` from ``connect`` when the server
    cannot be reached.
    """

    user: str | None
    password: str | None
    client: str | None
    port: str | None
    cwd: str
    input: Mapping[str, Any] | None
    exception_level: int

    @property
    def warnings(self) -> Sequence[str]:
        """Warnings reported by the last command."""
        ...

    def connect(self) -> None:
        """Open the connection."""
        ...

    def disconnect(self) -> None:
        """Close the connection."""
        ...

    def connected(self) -> bool:
        """Return True while the connection is open."""
        ...

    def run(self, command: str, *args: str) -> list[Record]:
        """Run a command and return its structured records."""
        ...


@runtime_checkable
class PathTranslator(Protocol):
    """Converts foreign-convention paths to the local convention."""

    def to_local_path(self, path: str) -> str:
        """Return ``path`` in local form. Idempotent and deterministic."""
        ...
