"""Cache utilities."""

from cache.diskcache_factory import (
    DiskCacheKind,
    DiskCacheProfile,
    DiskCacheSettings,
    cache_for_kind,
    close_cache_pool,
    default_diskcache_profile,
)

__all__ = [
    "DiskCacheKind",
    "DiskCacheProfile",
    "DiskCacheSettings",
    "cache_for_kind",
    "close_cache_pool",
    "default_diskcache_profile",
]
