"""Exception hierarchy for p4kit sessions and changelists."""

from __future__ import annotations

from typing import Sequence


class P4KitError(Exception):
    """Base exception for p4kit errors."""
    pass


class ConfigurationError(P4KitError):
    """Required session configuration is missing or invalid."""
    pass


class ServerConnectionError(P4KitError):
    """Server unreachable, or the supplied credential was rejected."""
    pass


class ServerCommandError(P4KitError):
    """The server reported a failure for a specific command."""

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        messages: Sequence[str] = (),
        message: str | None = None,
    ):
        """Initialize ServerCommandError.

        Args:
            command: The p4 command that failed (e.g., "edit")
            args: Arguments passed to the command
            messages: Error texts reported by the server
            message: Optional custom message (defaults to the joined messages)
        """
        self.command = command
        self.command_args = tuple(args)
        self.messages = tuple(messages)

        if message:
            super().__init__(message)
        elif self.messages:
            super().__init__("\n".join(self.messages))
        else:
            super().__init__(f"p4 {command} failed")


class ProtocolError(P4KitError):
    """A server response did not match the expected pattern."""

    def __init__(self, expected: str, received: object):
        self.expected = expected
        self.received = received
        super().__init__(f"Unexpected server response (expected {expected}): {received!r}")


class PathTranslationError(P4KitError, OSError):
    """The platform path translation utility is unavailable or failed."""
    pass
