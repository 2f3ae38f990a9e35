"""Per-run state threaded through the refresh pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from stubcache.ports import NullProgress

if TYPE_CHECKING:
    from stubcache.blacklist import BlacklistEntry
    from stubcache.bundles import PregeneratedBundle
    from stubcache.models import RuntimeEnvironment
    from stubcache.ports import RefreshProgress, StubGenerator
    from stubcache.versions import VersionPolicy


@dataclass(frozen=True)
class RefreshContext:
    """Inputs shared by every stage of one refresh run.

    Parameters
    ----------
    environment
        Environment being refreshed.
    cache_dir
        Stub cache directory of the environment.
    generator
        Stub generator session bound to ``cache_dir``.
    generator_version
        Generator version observed by the lister in this run.
    policy
        Required-version policy of this run.
    blacklist
        Blacklist snapshot loaded at the start of the run.
    extra_search_path
        Search path handed to the lister and the generator.
    bundle
        Pregenerated bundle matching the environment, if any.
    progress
        Progress and cancellation capability.
    """

    environment: RuntimeEnvironment
    cache_dir: Path
    generator: StubGenerator
    generator_version: int
    policy: VersionPolicy
    blacklist: Mapping[str, BlacklistEntry] = field(default_factory=dict)
    extra_search_path: str = ""
    bundle: PregeneratedBundle | None = None
    progress: RefreshProgress = field(default_factory=NullProgress)


__all__ = ["RefreshContext"]
