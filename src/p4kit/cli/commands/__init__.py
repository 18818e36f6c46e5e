"""CLI command modules for p4kit."""

from .changes import cleanup, pending
from .workspace import info, revert, root, sync

__all__ = ["cleanup", "info", "pending", "revert", "root", "sync"]
