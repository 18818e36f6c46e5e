"""p4kit - Perforce session and changelist client."""

from p4kit.core.config import SessionConfig
from p4kit.core.p4 import (
    Changelist,
    ChangelistState,
    ConfigurationError,
    P4KitError,
    PathTranslationError,
    ProtocolError,
    ServerCommandError,
    ServerConnectionError,
    Session,
)

__version__ = "0.1.0"

__all__ = [
    "Changelist",
    "ChangelistState",
    "ConfigurationError",
    "P4KitError",
    "PathTranslationError",
    "ProtocolError",
    "ServerCommandError",
    "ServerConnectionError",
    "Session",
    "SessionConfig",
]
