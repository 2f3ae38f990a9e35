"""Shared utilities for stubcache."""

from utils.env_utils import env_float, env_path, env_value
from utils.hashing import CacheKeyBuilder, hash_json_canonical, hash_sha256_hex

__all__ = [
    "CacheKeyBuilder",
    "env_float",
    "env_path",
    "env_value",
    "hash_json_canonical",
    "hash_sha256_hex",
]
