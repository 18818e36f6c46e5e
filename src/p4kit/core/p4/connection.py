"""
Perforce CLI Connection
=======================

``ServerConnection`` implementation that drives the ``p4`` executable in
``-G`` mode, where every response object arrives as a marshalled Python
dictionary on stdout. Each call is one blocking subprocess round trip.

Response normalization:

- ``stat`` records become plain dicts; indexed fields (``Files0``,
  ``Files1``, ...) are grouped into a list under the base name (``Files``).
- ``info`` / ``text`` records become ``{"code", "data", "level"}`` dicts.
- ``error`` records are split by severity into warnings and errors.
"""

from __future__ import annotations

import io
import logging
import marshal
import os
import re
import subprocess
from typing import Any, Iterator, Mapping, Sequence

from p4kit.core.constants import P4_EXECUTABLE
from p4kit.core.exceptions import (
    ConfigurationError,
    ProtocolError,
    ServerCommandError,
    ServerConnectionError,
)

from .types import ExceptionLevel, Record, Severity

logger = logging.getLogger(__name__)

__all__ = ["P4CliConnection", "decode_records", "encode_input"]

_INDEXED_KEY_RE = re.compile(r"^(?P<base>.*\D)(?P<index>\d+)$")


def _text(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _iter_marshal(payload: bytes) -> Iterator[dict[Any, Any]]:
    stream = io.BytesIO(payload)
    while stream.tell() < len(payload):
        try:
            item = marshal.load(stream)
        except (EOFError, ValueError, TypeError) as exc:
            raise ProtocolError("marshalled p4 -G records", payload[stream.tell():][:80]) from exc
        if not isinstance(item, dict):
            raise ProtocolError("marshalled dictionary", item)
        yield item


def _unflatten(record: dict[str, Any]) -> Record:
    """Group ``Name0``, ``Name1``, ... into ``Name: [...]`` when index 0 is present."""
    indexed: dict[str, dict[int, Any]] = {}
    for key, value in record.items():
        match = _INDEXED_KEY_RE.match(key)
        if match and match.group("base") not in record:
            indexed.setdefault(match.group("base"), {})[int(match.group("index"))] = value

    groups = {
        base: [items[i] for i in range(len(items))]
        for base, items in indexed.items()
        if set(items) == set(range(len(items)))
    }

    result: Record = {}
    for key, value in record.items():
        match = _INDEXED_KEY_RE.match(key)
        base = match.group("base") if match else None
        if base is not None and base in groups:
            if base not in result:
                result[base] = groups[base]
            continue
        result[key] = value
    return result


def decode_records(payload: bytes) -> tuple[list[Record], list[str], list[str]]:
    """Split raw ``p4 -G`` output into (records, warnings, errors)."""
    records: list[Record] = []
    warnings: list[str] = []
    errors: list[str] = []

    for raw in _iter_marshal(payload):
        item = {str(_text(key)): _text(value) for key, value in raw.items()}
        code = item.pop("code", "stat")

        if code == "error":
            text = str(item.get("data", "")).rstrip("\n")
            severity = int(item.get("severity", Severity.FAILED))
            if severity >= Severity.FAILED:
                errors.append(text)
            elif severity == Severity.WARN:
                warnings.append(text)
            else:
                records.append({"code": "info", "data": text, "level": 0})
        elif code in ("info", "text"):
            records.append(
                {
                    "code": code,
                    "data": str(item.get("data", "")).rstrip("\n"),
                    "level": int(item.get("level", 0) or 0),
                }
            )
        else:
            records.append(_unflatten(item))

    return records, warnings, errors


def encode_input(record: Mapping[str, Any]) -> bytes:
    """Marshal an input spec the way ``p4 -G`` reads it (version 0, byte strings)."""
    flat: dict[bytes, bytes] = {}
    for key, value in record.items():
        if isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                flat[f"{key}{index}".encode()] = str(item).encode()
        elif value is not None:
            flat[str(key).encode()] = str(value).encode()
    return marshal.dumps(flat, 0)


def _initial_cwd() -> str:
    """Working directory as the shell reports it, falling back to the resolved path."""
    actual = os.getcwd()
    reported = os.environ.get("PWD")
    if reported and os.path.isabs(reported):
        try:
            if os.path.samefile(reported, actual):
                return reported
        except OSError:
            pass
    return actual


class P4CliConnection:
    """Connection to a Perforce server through the ``p4`` command line client.

    The working directory is captured when the object is created, from
    ``$PWD`` when it names the current directory, otherwise from
    ``os.getcwd()`` (symlinks resolved). Every command runs in ``cwd`` with
    ``PWD`` set to it.
    """

    def __init__(self, executable: str = P4_EXECUTABLE) -> None:
        self.executable = executable
        self.user: str | None = None
        self.password: str | None = None
        self.client: str | None = None
        self.port: str | None = None
        self.cwd: str = _initial_cwd()
        self.input: Mapping[str, Any] | None = None
        self.exception_level: int = ExceptionLevel.RAISE_ALL
        self._warnings: list[str] = []
        self._errors: list[str] = []
        self._connected = False

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        """Check that the server answers and, when a password is set, that it is accepted."""
        if self._connected:
            return
        self._probe("info")
        if self.password:
            self._probe("login", "-s")
        self._connected = True
        logger.debug("Connected to %s as %s", self.port or "$P4PORT", self.user)

    def disconnect(self) -> None:
        self._connected = False

    def run(self, command: str, *args: str) -> list[Record]:
        if not self._connected:
            raise ServerConnectionError(f"Cannot run 'p4 {command}': not connected")
        return self._execute(command, args, self.exception_level)

    def _probe(self, command: str, *args: str) -> None:
        try:
            self._execute(command, args, ExceptionLevel.RAISE_ERRORS)
        except ServerCommandError as exc:
            raise ServerConnectionError(f"Connect to server failed: {exc}") from exc

    def _global_args(self) -> list[str]:
        argv = [self.executable, "-G", "-d", self.cwd]
        if self.port:
            argv += ["-p", self.port]
        if self.user:
            argv += ["-u", self.user]
        if self.client:
            argv += ["-c", self.client]
        return argv

    def _execute(self, command: str, args: Sequence[str], level: int) -> list[Record]:
        str_args = [str(arg) for arg in args]
        if not os.path.isdir(self.cwd):
            raise ConfigurationError(f"Working directory does not exist: {self.cwd}")

        payload, self.input = self.input, None
        stdin = encode_input(payload) if payload is not None else None

        # The password goes to p4 through the environment, never on argv.
        env = dict(os.environ)
        env["PWD"] = self.cwd
        if self.password:
            env["P4PASSWD"] = self.password

        logger.debug("p4 %s %s", command, " ".join(str_args))
        try:
            completed = subprocess.run(
                [*self._global_args(), command, *str_args],
                input=stdin,
                capture_output=True,
                cwd=self.cwd,
                env=env,
                check=False,
            )
        except FileNotFoundError as exc:
            if exc.filename not in (None, self.executable):
                raise ServerConnectionError(f"Cannot run {self.executable}: {exc}") from exc
            raise ServerConnectionError(f"{self.executable} executable not found on PATH") from exc

        records, warnings, errors = decode_records(completed.stdout or b"")
        stderr = (completed.stderr or b"").decode("utf-8", errors="replace").strip()
        if completed.returncode != 0 and not errors:
            errors.append(stderr or f"p4 {command} exited with code {completed.returncode}")

        self._warnings = warnings
        self._errors = errors

        if errors and level >= ExceptionLevel.RAISE_ERRORS:
            raise ServerCommandError(command, str_args, errors)
        if warnings and level >= ExceptionLevel.RAISE_ALL:
            raise ServerCommandError(command, str_args, warnings)
        return records
