"""Stub cache refresher for binary modules of a Python runtime."""

from stubcache.blacklist import BlacklistEntry, load_blacklist, store_blacklist
from stubcache.bundles import DirectoryBundleProvider, PregeneratedBundle
from stubcache.errors import (
    CacheSetupError,
    GeneratorCommandError,
    RefreshCancelledError,
    RefresherReusedError,
    StubCacheError,
)
from stubcache.headers import HeaderFormat, StubHeader, read_stub_header
from stubcache.models import BinaryListing, BinaryModule, RuntimeEnvironment, UpdateResult
from stubcache.ports import MigrationFlag, NullNotifier, NullProgress
from stubcache.refresher import RefreshResult, RefreshState, StubCacheRefresher
from stubcache.versions import VersionPolicy, VersionRule, VersionRuleTable

__all__ = [
    "BinaryListing",
    "BinaryModule",
    "BlacklistEntry",
    "CacheSetupError",
    "DirectoryBundleProvider",
    "GeneratorCommandError",
    "HeaderFormat",
    "MigrationFlag",
    "NullNotifier",
    "NullProgress",
    "PregeneratedBundle",
    "RefreshCancelledError",
    "RefreshResult",
    "RefreshState",
    "RefresherReusedError",
    "RuntimeEnvironment",
    "StubCacheError",
    "StubCacheRefresher",
    "StubHeader",
    "UpdateResult",
    "VersionPolicy",
    "VersionRule",
    "VersionRuleTable",
    "load_blacklist",
    "read_stub_header",
    "store_blacklist",
]
