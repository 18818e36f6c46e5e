"""Shared types for the Perforce session layer."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Dict

# One structured record per matched server object (file, changelist, spec).
Record = Dict[str, Any]


class ExceptionLevel(IntEnum):
    """How the connection reacts to server-reported problems."""

    NONE = 0
    RAISE_ERRORS = 1
    RAISE_ALL = 2


class Severity(IntEnum):
    """Message severities reported in ``p4 -G`` error records."""

    EMPTY = 0
    INFO = 1
    WARN = 2
    FAILED = 3
    FATAL = 4


class ChangelistState(str, Enum):
    """Lifecycle states of a pending changelist."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    DELETED = "deleted"
