"""DiskCache configuration and factory helpers."""

from __future__ import annotations

from collections.abc import Mapping
from functools import cache
from pathlib import Path
from typing import Literal, TypedDict

import msgspec
from diskcache import Cache

from serde_msgspec import StructBaseStrict
from utils.env_utils import env_path
from utils.hashing import hash_json_canonical

type DiskCacheKind = Literal["version_policy"]


def _default_cache_root() -> Path:
    """Return the default DiskCache root path.

    Returns
    -------
    pathlib.Path
        Default cache root path.
    """
    root = env_path("STUBCACHE_DISKCACHE_DIR")
    if root is not None:
        return root
    return Path.home() / ".cache" / "stubcache" / "diskcache"


class DiskCacheSettings(StructBaseStrict, frozen=True):
    """Settings shared by DiskCache instances."""

    size_limit_bytes: int
    cull_limit: int = 10
    eviction_policy: str = "least-recently-used"
    statistics: bool = False
    timeout_seconds: float = 60.0
    sqlite_journal_mode: str | None = "wal"

    def fingerprint_payload(self) -> Mapping[str, object]:
        """Return canonical payload for settings fingerprinting.

        Returns
        -------
        Mapping[str, object]
            Payload used for settings fingerprinting.
        """
        return {
            "size_limit_bytes": self.size_limit_bytes,
            "cull_limit": self.cull_limit,
            "eviction_policy": self.eviction_policy,
            "statistics": self.statistics,
            "timeout_seconds": self.timeout_seconds,
            "sqlite_journal_mode": self.sqlite_journal_mode,
        }

    def fingerprint(self) -> str:
        """Return a stable fingerprint for cache settings.

        Returns
        -------
        str
            Stable fingerprint for settings.
        """
        return hash_json_canonical(self.fingerprint_payload(), str_keys=True)


class DiskCacheKwargs(TypedDict, total=False):
    cull_limit: int
    eviction_policy: str
    statistics: bool
    sqlite_journal_mode: str


class DiskCacheProfile(StructBaseStrict, frozen=True):
    """DiskCache profile with per-kind overrides."""

    root: Path = msgspec.field(default_factory=_default_cache_root)
    base_settings: DiskCacheSettings = msgspec.field(
        default_factory=lambda: DiskCacheSettings(size_limit_bytes=16 * 1024 * 1024)
    )
    overrides: Mapping[DiskCacheKind, DiskCacheSettings] = msgspec.field(default_factory=dict)

    def settings_for(self, kind: DiskCacheKind) -> DiskCacheSettings:
        """Return settings for a cache kind.

        Returns
        -------
        DiskCacheSettings
            Settings for the cache kind.
        """
        override = self.overrides.get(kind)
        return override if override is not None else self.base_settings

    def fingerprint(self, kind: DiskCacheKind) -> str:
        """Return a fingerprint for the profile+kind combination.

        Returns
        -------
        str
            Stable profile fingerprint for the cache kind.
        """
        payload = {
            "root": str(self.root),
            "kind": kind,
            "settings": self.settings_for(kind).fingerprint(),
        }
        return hash_json_canonical(payload, str_keys=True)


@cache
def default_diskcache_profile() -> DiskCacheProfile:
    """Return the default DiskCache profile.

    Returns
    -------
    DiskCacheProfile
        Default DiskCache profile.
    """
    overrides: dict[DiskCacheKind, DiskCacheSettings] = {
        "version_policy": DiskCacheSettings(
            size_limit_bytes=16 * 1024 * 1024,
            eviction_policy="none",
        ),
    }
    return DiskCacheProfile(root=_default_cache_root(), overrides=overrides)


_CACHE_POOL: dict[str, Cache] = {}


def cache_for_kind(profile: DiskCacheProfile, kind: DiskCacheKind) -> Cache:
    """Return a pooled Cache instance for the kind.

    Returns
    -------
    Cache
        Cache instance for the kind.
    """
    fingerprint = profile.fingerprint(kind)
    cached = _CACHE_POOL.get(fingerprint)
    if cached is not None:
        return cached
    settings = profile.settings_for(kind)
    base_dir = profile.root / kind
    instance = Cache(
        str(base_dir),
        size_limit=settings.size_limit_bytes,
        timeout=int(settings.timeout_seconds),
        **_settings_kwargs(settings),
    )
    _CACHE_POOL[fingerprint] = instance
    return instance


def close_cache_pool() -> None:
    """Close and forget every pooled cache instance."""
    for instance in _CACHE_POOL.values():
        instance.close()
    _CACHE_POOL.clear()


def _settings_kwargs(settings: DiskCacheSettings) -> DiskCacheKwargs:
    kwargs: DiskCacheKwargs = {
        "cull_limit": settings.cull_limit,
        "eviction_policy": settings.eviction_policy,
        "statistics": settings.statistics,
    }
    if settings.sqlite_journal_mode is not None:
        kwargs["sqlite_journal_mode"] = settings.sqlite_journal_mode
    return kwargs


__all__ = [
    "DiskCacheKind",
    "DiskCacheProfile",
    "DiskCacheSettings",
    "cache_for_kind",
    "close_cache_pool",
    "default_diskcache_profile",
]
