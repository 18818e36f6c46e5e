"""Core session, configuration and credential support."""

from .config import SessionConfig, load_session_config, locate_project_root, save_session_config
from .credentials import resolve_user

__all__ = [
    "SessionConfig",
    "load_session_config",
    "locate_project_root",
    "save_session_config",
    "resolve_user",
]
