"""
Perforce Session Package
========================

Session and changelist client for a Perforce (Helix Core) server.

Usage:
    from p4kit.core.p4 import Session, ChangelistState

    session = Session(client="my_workspace")
    changelist = session.new_changelist("fix bug")
    changelist.add_files("src/main.c")
    if changelist.submit() is ChangelistState.DELETED:
        print("nothing changed")
"""

from __future__ import annotations

# Types
from .types import (
    ChangelistState,
    ExceptionLevel,
    Record,
    Severity,
)

# Protocols
from .protocol import PathTranslator, ServerConnection

# Exceptions
from p4kit.core.exceptions import (
    ConfigurationError,
    P4KitError,
    PathTranslationError,
    ProtocolError,
    ServerCommandError,
    ServerConnectionError,
)

# Implementations
from .changelist import Changelist, flatten_files
from .connection import P4CliConnection
from .session import Session, is_root_mapping_error, record_text
from .translation import CygpathTranslator, select_path_translator

__all__ = [
    # Types
    "ChangelistState",
    "ExceptionLevel",
    "Record",
    "Severity",
    # Protocols
    "PathTranslator",
    "ServerConnection",
    # Exceptions
    "P4KitError",
    "ConfigurationError",
    "ServerConnectionError",
    "ServerCommandError",
    "ProtocolError",
    "PathTranslationError",
    # Implementations
    "Changelist",
    "P4CliConnection",
    "Session",
    "CygpathTranslator",
    "select_path_translator",
    "is_root_mapping_error",
    "record_text",
    "flatten_files",
]
