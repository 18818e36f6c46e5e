"""
Perforce Session
================

A ``Session`` owns one connection to a Perforce server. It resolves the
identity to use, opens the connection, and runs commands through a single
executor that:

- returns the server's structured records,
- logs any warnings the server attached to the command,
- on platforms with a ``PathTranslator`` (Cygwin), recovers once from a
  "not under client's root" failure by registering the local form of the
  client root as an AltRoot and retrying.

Usage:
    from p4kit.core.p4 import Session

    with Session(port="perforce:1666", client="iggy_project") as session:
        with session.edit_and_submit("remove trailing whitespace", files):
            ...  # rewrite the files on disk
"""

from __future__ import annotations

import logging
import os
import re
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Sequence

from p4kit.core.config import SessionConfig
from p4kit.core.constants import DEFAULT_USER_ENV_VARS
from p4kit.core.credentials import resolve_user
from p4kit.core.exceptions import ProtocolError, ServerCommandError

from .changelist import Changelist, flatten_files
from .connection import P4CliConnection
from .protocol import PathTranslator, ServerConnection
from .translation import select_path_translator
from .types import ExceptionLevel, Record

logger = logging.getLogger(__name__)

__all__ = ["Session", "is_root_mapping_error", "record_text"]

ConnectionFactory = Callable[[], ServerConnection]

# Server message text, not a structured code: other server versions may word it differently.
ROOT_MAPPING_ERROR_RE = re.compile(r"not under client's root")
CHANGE_CREATED_RE = re.compile(r"\AChange (\d+) created\.")

# Guards process-wide state: the PWD variable during construction and the process cwd.
_PROCESS_STATE_LOCK = threading.RLock()


@contextmanager
def _pwd_cleared() -> Iterator[None]:
    """Remove $PWD for the duration of the block, restoring it afterwards."""
    with _PROCESS_STATE_LOCK:
        previous_pwd = os.environ.pop("PWD", None)
        try:
            yield
        finally:
            if previous_pwd is not None:
                os.environ["PWD"] = previous_pwd


def is_root_mapping_error(exc: BaseException) -> bool:
    """True if ``exc`` is the server's "not under client's root" failure."""
    return isinstance(exc, ServerCommandError) and bool(ROOT_MAPPING_ERROR_RE.search(str(exc)))


def record_text(record: Any) -> str:
    """Message text of an info record (plain strings are returned as-is)."""
    if isinstance(record, str):
        return record
    if isinstance(record, Mapping):
        return str(record.get("data", ""))
    return ""


def _first_record(records: Sequence[Record], command: str) -> Record:
    if not records:
        raise ProtocolError(f"a record from 'p4 {command}'", records)
    return records[0]


class Session:
    """A connection to a Perforce server.

    Keyword options override the matching ``SessionConfig`` fields, which in
    turn override P4PORT, P4CLIENT, etc.::

        Session(
            user="iggy_fenton",
            password="<password or ticket>",
            client="iggy_fenton_project",
            port="server_name:1666",
        )

    Args:
        config: Connection parameters (defaults to an empty SessionConfig)
        connection_factory: Creates the underlying connection object
        path_translator: Client root translator; selected for ``platform`` when None
        platform: Platform name used for translator selection (defaults to sys.platform)
        user_env_vars: Environment variables consulted when no user is configured
        **options: SessionConfig field overrides
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        connection_factory: ConnectionFactory | None = None,
        path_translator: PathTranslator | None = None,
        platform: str | None = None,
        user_env_vars: Sequence[str] = DEFAULT_USER_ENV_VARS,
        **options: Any,
    ) -> None:
        config = (config or SessionConfig()).merged(**options)
        factory = connection_factory or P4CliConnection

        # A symlinked $PWD makes the server reject paths under the client root;
        # without it the connection derives cwd from the resolved directory.
        if config.allow_working_directory_symlinks:
            connection = factory()
        else:
            with _pwd_cleared():
                connection = factory()

        if config.user is not None:
            connection.user = config.user
        if config.password is not None:
            connection.password = config.password
        if config.client is not None:
            connection.client = config.client
        if config.port is not None:
            connection.port = config.port
        if config.cwd is not None:
            connection.cwd = config.cwd
        if config.user is None:
            connection.user = resolve_user(user_env_vars)

        connection.exception_level = ExceptionLevel.RAISE_ERRORS
        connection.connect()

        self._config = config
        self._connection = connection
        self._translator = (
            path_translator if path_translator is not None else select_path_translator(platform)
        )

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    @property
    def connection(self) -> ServerConnection:
        """The underlying connection object."""
        return self._connection

    @property
    def path_translator(self) -> PathTranslator | None:
        return self._translator

    @property
    def user(self) -> str | None:
        return self._connection.user

    @property
    def client(self) -> str | None:
        return self._connection.client

    @property
    def cwd(self) -> str:
        return self._connection.cwd

    @property
    def connected(self) -> bool:
        return bool(self._connection.connected())

    def close(self) -> None:
        if self._connection.connected():
            self._connection.disconnect()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Session(user={self.user!r}, client={self.client!r}, port={self._connection.port!r})"

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def run(self, command: str, *args: Any) -> list[Record]:
        """Run a p4 command and return its records.

        Example:
            session.run("info")[0]["serverVersion"]
        """
        return self._run(command, args, None)

    def run_with_input(self, input_record: Mapping[str, Any], command: str, *args: Any) -> list[Record]:
        """Run a command that reads a spec from its input (``change -i``, ``client -i``...)."""
        return self._run(command, args, input_record)

    def _run(
        self,
        command: str,
        args: Sequence[Any],
        input_record: Mapping[str, Any] | None,
    ) -> list[Record]:
        try:
            return self._execute(command, args, input_record)
        except ServerCommandError as exc:
            if self._translator is None or not self.connected or not is_root_mapping_error(exc):
                raise
            logger.debug("p4 %s failed outside the client root, adding local AltRoot and retrying", command)
            self.add_local_root()
            return self._execute(command, args, input_record)

    def _execute(
        self,
        command: str,
        args: Sequence[Any],
        input_record: Mapping[str, Any] | None,
    ) -> list[Record]:
        if input_record is not None:
            self._connection.input = input_record
        records = self._connection.run(command, *[str(arg) for arg in args])
        for warning in self._connection.warnings or ():
            logger.warning("p4 %s: %s", command, warning)
        return list(records)

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------

    def server_info(self) -> Record:
        return _first_record(self.run("info"), "info")

    def root(self) -> str:
        """Client root directory, in local path form."""
        root = _first_record(self.run("client", "-o"), "client -o")["Root"]
        if self._translator is None:
            return root
        local_root = self._translator.to_local_path(root)
        if local_root != root:
            self.add_local_root()
        return local_root

    def add_local_root(self) -> bool:
        """Register the local form of the client root as an AltRoot.

        Lets native Windows tools and Cygwin share one client spec. Commands
        issued here never trigger the root repair themselves.

        Returns:
            True if the client spec was updated, False if the AltRoot was
            already present (or no translator is in use).
        """
        if self._translator is None:
            return False
        spec = _first_record(self._execute("client", ("-o",), None), "client -o")
        local_root = self._translator.to_local_path(spec["Root"])
        alt_roots = list(spec.get("AltRoots") or [])
        if local_root in alt_roots:
            return False
        spec["AltRoots"] = [*alt_roots, local_root]
        self._execute("client", ("-i",), spec)
        logger.info("Added local AltRoot %s to client %s", local_root, spec.get("Client", self.client))
        return True

    def chdir(self, directory: str | os.PathLike[str]) -> str:
        """Change the working directory, locally and for the connection.

        If the connection rejects the new directory, the process directory is
        restored before the error propagates.

        Returns:
            The resolved absolute directory.
        """
        with _PROCESS_STATE_LOCK:
            previous_dir = os.getcwd()
            os.chdir(directory)
            try:
                self._connection.cwd = os.getcwd()
            except Exception:
                os.chdir(previous_dir)
                raise
            return self._connection.cwd

    @contextmanager
    def working_directory(self, directory: str | os.PathLike[str]) -> Iterator[str]:
        """Scoped ``chdir``: both directories are restored when the block exits.

        Not safe against another thread changing directories meanwhile.
        """
        previous_dir = os.getcwd()
        previous_cwd = self._connection.cwd
        new_dir = self.chdir(directory)
        try:
            yield new_dir
        finally:
            with _PROCESS_STATE_LOCK:
                os.chdir(previous_dir)
                self._connection.cwd = previous_cwd

    def sync(self, *args: Any) -> list[Record]:
        return self.run("sync", *args)

    def revert_files(self, *files: Any) -> list[Record]:
        """Revert these files, whatever changelist they are open in."""
        flat = flatten_files(files)
        if not flat:
            return []
        return self.run("revert", *flat)

    def revert_and_edit(self, *files: Any, changelist: Changelist | None = None) -> None:
        """Revert files, then reopen them for edit (in ``changelist`` when given)."""
        flat = flatten_files(files)
        if not flat:
            return
        self.revert_files(flat)
        if changelist is None:
            self.run("edit", *flat)
        else:
            self.run("edit", "-c", str(changelist.number), *flat)

    # ------------------------------------------------------------------
    # Changelists
    # ------------------------------------------------------------------

    def new_changelist(self, description: str) -> Changelist:
        """Create a pending changelist with ``description``."""
        records = self.run_with_input({"Change": "new", "Description": description}, "change", "-i")
        text = record_text(records[0]) if records else ""
        match = CHANGE_CREATED_RE.match(text)
        if not match:
            raise ProtocolError("'Change <N> created.'", text)
        number = int(match.group(1))
        logger.debug("Created changelist %s", number)
        return Changelist(self, number)

    def _client_name(self) -> str:
        if self.client:
            return self.client
        return str(self.server_info().get("clientName", ""))

    def pending_changelists(self) -> list[Changelist]:
        """Pending changelists of this user in this client."""
        records = self.run(
            "changes", "-u", self.user, "-c", self._client_name(), "-s", "pending"
        )
        return [Changelist(self, int(record["change"])) for record in records if "change" in record]

    def delete_empty_changelists(self) -> list[Changelist]:
        """Delete every empty pending changelist.

        Returns:
            The changelists that were deleted.
        """
        return [changelist for changelist in self.pending_changelists() if changelist.delete()]

    @contextmanager
    def edit_and_submit(self, description: str, *files: Any) -> Iterator[Changelist]:
        """Open files in a new changelist, let the caller change them, then submit.

        Example:
            with session.edit_and_submit("remove trailing whitespace", files):
                ...  # do stuff with the files

        Changes are submitted when the block ends. If the block raises,
        nothing is submitted and the changelist stays open.
        """
        changelist = self.new_changelist(description)
        changelist.add_files(*files)
        yield changelist
        changelist.submit()
