"""Unified environment variable resolution utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import overload

_LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# String Helpers
# -----------------------------------------------------------------------------


def env_value(name: str) -> str | None:
    """Return stripped env var value, or None if empty/not set.

    Parameters
    ----------
    name
        Environment variable name.

    Returns
    -------
    str | None
        Stripped value or None.
    """
    raw = os.environ.get(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped if stripped else None


def env_path(name: str) -> Path | None:
    """Return an env var as an expanded path, or None if empty/not set.

    Returns
    -------
    pathlib.Path | None
        User-expanded path or None.
    """
    raw = env_value(name)
    return Path(raw).expanduser() if raw is not None else None


# -----------------------------------------------------------------------------
# Float Parsing
# -----------------------------------------------------------------------------


@overload
def env_float(name: str) -> float | None: ...


@overload
def env_float(name: str, *, default: float) -> float: ...


def env_float(name: str, *, default: float | None = None) -> float | None:
    """Parse environment variable as float with error logging.

    Parameters
    ----------
    name
        Environment variable name.
    default
        Default value if not set or invalid.

    Returns
    -------
    float | None
        Parsed float or default/None.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        _LOGGER.warning("Invalid float for %s: %r", name, raw)
        return default


__all__ = [
    "env_float",
    "env_path",
    "env_value",
]
