"""Shared constants for p4kit."""

from __future__ import annotations

P4KIT_DIR = ".p4kit"
CONFIG_FILENAME = "config.yaml"

# Environment variables consulted, in order, when no user is configured.
DEFAULT_USER_ENV_VARS = ("P4USER", "USER", "USERNAME")

P4_EXECUTABLE = "p4"
CYGPATH_EXECUTABLE = "cygpath"

__all__ = [
    "P4KIT_DIR",
    "CONFIG_FILENAME",
    "DEFAULT_USER_ENV_VARS",
    "P4_EXECUTABLE",
    "CYGPATH_EXECUTABLE",
]
