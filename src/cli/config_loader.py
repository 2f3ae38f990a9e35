"""Config loading helpers for the CLI."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import cast

import msgspec

from cli.config_models import RootConfigSpec
from serde_msgspec import validation_error_payload

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "stubcache.toml"
_TOOL_KEY = "stubcache"


def load_effective_config(config_file: str | None, *, start: Path | None = None) -> RootConfigSpec:
    """Load config from stubcache.toml / pyproject.toml or an explicit --config.

    Values from ``stubcache.toml`` take precedence over ``[tool.stubcache]``
    in ``pyproject.toml``; an explicit file replaces both.

    Parameters
    ----------
    config_file
        Optional explicit config file path.
    start
        Directory the parent search starts from; defaults to the cwd.

    Returns
    -------
    RootConfigSpec
        Decoded configuration, all defaults when no file is found.

    Raises
    ------
    ValueError
        Raised when the explicit file is missing or a file fails validation.
    """
    if config_file:
        path = Path(config_file)
        if not path.exists():
            msg = f"Config file not found: {config_file!r}."
            raise ValueError(msg)
        raw, location = _resolve_explicit_payload(path)
        return _decode_root_config(raw, location=location)

    merged: dict[str, object] = {}
    pyproject_path = _find_in_parents("pyproject.toml", start=start)
    if pyproject_path is not None:
        nested = _extract_tool_config(_read_toml(pyproject_path))
        if nested is not None:
            location = f"{pyproject_path}:tool.{_TOOL_KEY}"
            merged.update(_non_null(_decode_root_config(nested, location=location)))
    stubcache_path = _find_in_parents(CONFIG_FILE_NAME, start=start)
    if stubcache_path is not None:
        raw = _read_toml(stubcache_path)
        merged.update(_non_null(_decode_root_config(raw, location=str(stubcache_path))))
    return msgspec.convert(merged, type=RootConfigSpec, strict=True)


def _find_in_parents(filename: str, *, start: Path | None = None) -> Path | None:
    """Walk parents from ``start`` to find a filename.

    Returns
    -------
    Path | None
        Path to the first matching file in the start directory or parents.
    """
    path = start or Path.cwd()
    while True:
        candidate = path / filename
        if candidate.exists():
            return candidate
        if path.parent == path:
            return None
        path = path.parent


def _read_toml(path: Path) -> dict[str, object]:
    payload = msgspec.toml.decode(path.read_text(encoding="utf-8"), type=object, strict=True)
    if not isinstance(payload, dict):
        msg = f"Expected TOML mapping in {path}, got {type(payload).__name__}."
        raise TypeError(msg)
    return cast("dict[str, object]", payload)


def _decode_root_config(raw: Mapping[str, object], *, location: str) -> RootConfigSpec:
    try:
        config = msgspec.convert(raw, type=RootConfigSpec, strict=True)
    except msgspec.ValidationError as exc:
        details = validation_error_payload(exc)
        msg = f"Config validation failed for {location}: {details}"
        raise ValueError(msg) from exc
    logger.debug("Loaded stubcache config from %s", location)
    return config


def _non_null(config: RootConfigSpec) -> dict[str, object]:
    payload = cast("dict[str, object]", msgspec.to_builtins(config, str_keys=True))
    return {key: value for key, value in payload.items() if value is not None}


def _resolve_explicit_payload(path: Path) -> tuple[Mapping[str, object], str]:
    raw = _read_toml(path)
    if path.name == "pyproject.toml":
        nested = _extract_tool_config(raw)
        if nested is None:
            msg = f"Config validation failed for {path}: missing [tool.{_TOOL_KEY}] section."
            raise ValueError(msg)
        return nested, f"{path}:tool.{_TOOL_KEY}"
    return raw, str(path)


def _extract_tool_config(raw: Mapping[str, object]) -> dict[str, object] | None:
    tool_section = raw.get("tool")
    if not isinstance(tool_section, dict):
        return None
    nested = tool_section.get(_TOOL_KEY)
    if not isinstance(nested, dict):
        return None
    return cast("dict[str, object]", nested)


__all__ = ["CONFIG_FILE_NAME", "load_effective_config"]
