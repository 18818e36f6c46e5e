"""
Path Translation
================

On Cygwin the server reports client roots in DOS form (``C:\\work\\proj``)
while local tools expect POSIX form (``/cygdrive/c/work/proj``). The session
asks a ``PathTranslator`` for the local form; on every other platform no
translator is selected and paths pass through untouched.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from functools import lru_cache

from p4kit.core.constants import CYGPATH_EXECUTABLE
from p4kit.core.exceptions import PathTranslationError

from .protocol import PathTranslator

logger = logging.getLogger(__name__)

__all__ = ["CygpathTranslator", "select_path_translator", "cygpath_unix"]

CYGWIN_PLATFORMS = frozenset({"cygwin"})


@lru_cache(maxsize=256)
def cygpath_unix(dos_path: str) -> str:
    """Convert ``dos_path`` to POSIX form with ``cygpath -u``.

    Raises:
        PathTranslationError: cygpath is missing or exits non-zero.
    """
    trimmed = dos_path.rstrip("\\") or dos_path
    if shutil.which(CYGPATH_EXECUTABLE) is None:
        raise PathTranslationError(f"{CYGPATH_EXECUTABLE} is not available on PATH")
    try:
        result = subprocess.run(
            [CYGPATH_EXECUTABLE, "-u", trimmed],
            capture_output=True,
            text=True,
            check=False,
            timeout=15,
        )
    except (subprocess.TimeoutExpired, OSError) as exc:
        raise PathTranslationError(f"{CYGPATH_EXECUTABLE} failed for {dos_path!r}: {exc}") from exc
    if result.returncode != 0:
        detail = (result.stderr or "").strip() or f"exit code {result.returncode}"
        raise PathTranslationError(f"{CYGPATH_EXECUTABLE} failed for {dos_path!r}: {detail}")
    return result.stdout.rstrip("\r\n")


class CygpathTranslator:
    """Translator backed by the Cygwin ``cygpath`` utility."""

    def to_local_path(self, path: str) -> str:
        return cygpath_unix(path)

    def __repr__(self) -> str:
        return "CygpathTranslator()"


def select_path_translator(platform: str | None = None) -> PathTranslator | None:
    """Pick the translator for ``platform`` (defaults to ``sys.platform``).

    Returns None where server and local path conventions agree.
    """
    platform = sys.platform if platform is None else platform
    if platform in CYGWIN_PLATFORMS:
        logger.debug("Using cygpath translation for client roots on %s", platform)
        return CygpathTranslator()
    return None
