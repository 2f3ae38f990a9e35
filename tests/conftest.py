"""Pytest session setup and environment isolation for stubcache tests."""

from __future__ import annotations

import json
import os
import platform
import sys
from collections.abc import Iterator
from importlib import metadata
from pathlib import Path
from typing import Any

import pytest

from cache.diskcache_factory import close_cache_pool

_DIAG_DIR = Path("build/test-results")
_ENV_PATH = _DIAG_DIR / "diagnostics_env.json"
_VERSIONS_PATH = _DIAG_DIR / "diagnostics_versions.json"


def _collect_env() -> dict[str, Any]:
    return {
        "python": sys.version,
        "executable": sys.executable,
        "platform": platform.platform(),
        "env": {key: value for key, value in os.environ.items() if key.startswith("STUBCACHE")},
        "sys_path": list(sys.path),
    }


def _collect_versions() -> dict[str, str]:
    versions: dict[str, str] = {}
    for name in ("cyclopts", "diskcache", "msgspec", "pytest", "rich"):
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            continue
    return versions


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    try:
        path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    except OSError:
        return


def pytest_sessionstart(session: object) -> None:
    """Record interpreter and dependency versions for the session."""
    try:
        _DIAG_DIR.mkdir(parents=True, exist_ok=True)
    except OSError:
        return
    _write_json(_ENV_PATH, _collect_env())
    _write_json(_VERSIONS_PATH, _collect_versions())
    _ = session


def pytest_sessionfinish(session: object, exitstatus: int) -> None:
    """Close pooled DiskCache instances at session end."""
    close_cache_pool()
    _ = (session, exitstatus)


@pytest.fixture(autouse=True)
def isolated_stubcache_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests away from the user's stub and DiskCache directories."""
    for key in list(os.environ):
        if key.startswith("STUBCACHE_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("STUBCACHE_ROOT", str(tmp_path / "stubcache-root"))
    monkeypatch.setenv("STUBCACHE_DISKCACHE_DIR", str(tmp_path / "stubcache-diskcache"))
    yield
