"""Session configuration and its project-scoped YAML storage (.p4kit/config.yaml)."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path

from ruamel.yaml import YAML

from p4kit.core.constants import CONFIG_FILENAME, P4KIT_DIR
from p4kit.core.exceptions import ConfigurationError

__all__ = [
    "SessionConfig",
    "locate_project_root",
    "load_session_config",
    "save_session_config",
]

_STRING_FIELDS = ("user", "password", "client", "port", "cwd")


@dataclass(slots=True)
class SessionConfig:
    """Connection parameters for a ``Session``.

    ``None`` means "not present": the connection keeps its own default
    (usually taken by ``p4`` from P4PORT, P4CLIENT, P4CONFIG and friends).
    """

    user: str | None = None
    password: str | None = None
    client: str | None = None
    port: str | None = None
    cwd: str | None = None
    allow_working_directory_symlinks: bool = False

    def to_dict(self, include_password: bool = False) -> dict[str, object]:
        payload: dict[str, object] = {}
        for name in _STRING_FIELDS:
            if name == "password" and not include_password:
                continue
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        if self.allow_working_directory_symlinks:
            payload["allow_working_directory_symlinks"] = True
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, object] | None) -> "SessionConfig":
        if not isinstance(data, dict):
            return cls()

        values: dict[str, object] = {}
        for name in _STRING_FIELDS:
            raw = data.get(name)
            if isinstance(raw, (str, int)) and str(raw).strip():
                values[name] = str(raw).strip()
        symlinks = data.get("allow_working_directory_symlinks")
        if isinstance(symlinks, bool):
            values["allow_working_directory_symlinks"] = symlinks
        return cls(**values)  # type: ignore[arg-type]

    def merged(self, **overrides: object) -> "SessionConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown session option(s): {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)  # type: ignore[arg-type]


def locate_project_root(start: Path) -> Path | None:
    """Walk up from ``start`` to the nearest directory holding ``.p4kit/``."""
    current = start.resolve()
    for candidate in [current, *current.parents]:
        if (candidate / P4KIT_DIR).is_dir():
            return candidate
    return None


def _config_path(repo_root: Path) -> Path:
    return repo_root / P4KIT_DIR / CONFIG_FILENAME


def load_session_config(repo_root: Path) -> SessionConfig:
    """Load the ``session`` section of .p4kit/config.yaml."""
    config_path = _config_path(repo_root)
    if not config_path.exists():
        return SessionConfig()

    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    except Exception as exc:
        raise ConfigurationError(f"Failed to parse {config_path}: {exc}") from exc

    session_data = payload.get("session") if isinstance(payload, dict) else None
    return SessionConfig.from_dict(dict(session_data) if isinstance(session_data, dict) else None)


def save_session_config(repo_root: Path, config: SessionConfig) -> None:
    """Persist the session section, preserving other sections. Passwords are never written."""
    config_path = _config_path(repo_root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.preserve_quotes = True

    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    else:
        payload = {}

    if not isinstance(payload, dict):
        payload = {}

    payload["session"] = config.to_dict()

    with config_path.open("w", encoding="utf-8") as handle:
        yaml.dump(payload, handle)
