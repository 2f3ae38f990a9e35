"""Exception taxonomy for stub cache refreshes."""

from __future__ import annotations

from pathlib import Path


class StubCacheError(RuntimeError):
    """Base exception for stub cache refresh failures."""


class CacheSetupError(StubCacheError):
    """Raised when the stub cache directory cannot be created."""

    def __init__(self, path: Path, reason: str | None = None) -> None:
        msg = f"Can't create stub cache directory {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.path = path


class RefreshCancelledError(StubCacheError):
    """Raised when a refresh run is cancelled cooperatively."""


class RefresherReusedError(StubCacheError):
    """Raised when a single-use refresher is asked to run twice."""


class GeneratorCommandError(StubCacheError):
    """Raised when the external generator command cannot list binaries."""

    def __init__(self, rc: int, stderr: str) -> None:
        detail = stderr.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")
        msg = f"stub generator failed rc={rc}\n{detail}"
        super().__init__(msg)
        self.rc = rc


__all__ = [
    "CacheSetupError",
    "GeneratorCommandError",
    "RefreshCancelledError",
    "RefresherReusedError",
    "StubCacheError",
]
