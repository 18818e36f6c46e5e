"""Identity resolution for sessions that do not name a user."""

from __future__ import annotations

import logging
import os
from typing import Mapping, Sequence

from p4kit.core.constants import DEFAULT_USER_ENV_VARS
from p4kit.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["resolve_user"]


def resolve_user(
    env_vars: Sequence[str] = DEFAULT_USER_ENV_VARS,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Return the first non-empty identity among ``env_vars``.

    Args:
        env_vars: Environment variable names, in priority order.
        environ: Mapping to read from (defaults to ``os.environ``).

    Raises:
        ConfigurationError: If every candidate is unset or blank.
    """
    source = os.environ if environ is None else environ
    for name in env_vars:
        value = (source.get(name) or "").strip()
        if value:
            logger.debug("Resolved Perforce user from $%s", name)
            return value
    raise ConfigurationError(
        "Could not determine username. Set one of: "
        + ", ".join(f"${name}" for name in env_vars)
    )
