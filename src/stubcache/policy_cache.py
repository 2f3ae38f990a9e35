"""Disk-backed cache of the version policy observed per environment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import msgspec

from cache.diskcache_factory import DiskCacheProfile, cache_for_kind, default_diskcache_profile
from serde_msgspec import dumps_json, loads_json
from stubcache.versions import VersionPolicy
from utils.hashing import CacheKeyBuilder

if TYPE_CHECKING:
    from diskcache import Cache

logger = logging.getLogger(__name__)


@dataclass
class VersionPolicyCache:
    """Keep the last version policy of each environment between runs."""

    cache_profile: DiskCacheProfile | None = field(default_factory=default_diskcache_profile)
    _cache: Cache | None = field(default=None, init=False, repr=False)

    def _ensure_cache(self) -> Cache | None:
        if self._cache is not None:
            return self._cache
        profile = self.cache_profile
        if profile is None:
            return None
        self._cache = cache_for_kind(profile, "version_policy")
        return self._cache

    def get(self, home_path: str) -> VersionPolicy | None:
        """Return the cached policy of an environment.

        Parameters
        ----------
        home_path
            Interpreter path identifying the environment.

        Returns
        -------
        VersionPolicy | None
            Cached policy when available and decodable.
        """
        cache = self._ensure_cache()
        if cache is None:
            return None
        payload = cache.get(_policy_cache_key(home_path), default=None, retry=True)
        if not isinstance(payload, bytes):
            return None
        try:
            return loads_json(payload, target_type=VersionPolicy)
        except msgspec.DecodeError as exc:
            logger.warning("Dropping undecodable version policy for %s: %s", home_path, exc)
            return None

    def put(self, home_path: str, policy: VersionPolicy) -> None:
        """Store the policy of an environment."""
        cache = self._ensure_cache()
        if cache is None:
            return
        cache.set(_policy_cache_key(home_path), dumps_json(policy), retry=True)


def _policy_cache_key(home_path: str) -> str:
    builder = CacheKeyBuilder(prefix="version_policy")
    builder.add("home_path", home_path)
    return builder.build()


__all__ = ["VersionPolicyCache"]
