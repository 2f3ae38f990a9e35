"""Seeding a missing or legacy stub cache without running the generator.

Two independent sources are used when the built-in stub is absent or has
version 0:

* a pregenerated bundle matching platform, generator and runtime version is
  extracted as a whole;
* for a derived environment (virtualenv), stubs of the base environment are
  copied for every binary whose byte size is identical in both environments.

The second source is a deliberately weak equality check: two different
binaries of the same size are treated as identical.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING

from serde_msgspec import StructBaseStrict
from stubcache.bundles import extract_bundle
from stubcache.layout import extra_search_path, stub_cache_dir, stub_path

if TYPE_CHECKING:
    from stubcache.context import RefreshContext
    from stubcache.models import BinaryModule
    from stubcache.ports import BinaryLister

logger = logging.getLogger(__name__)


class BootstrapOutcome(StructBaseStrict, frozen=True):
    """What a bootstrap pass put into the cache."""

    bundle_extracted: bool = False
    copied_from_base: tuple[str, ...] = ()


def copy_base_environment_stubs(
    modules: Mapping[str, BinaryModule],
    base_modules: Mapping[str, BinaryModule],
    *,
    base_cache_dir: Path,
    cache_dir: Path,
) -> list[str]:
    """Copy stubs of size-identical binaries from a base environment cache.

    Parameters
    ----------
    modules
        Binary modules of the derived environment.
    base_modules
        Binary modules of the base environment.
    base_cache_dir
        Stub cache directory of the base environment.
    cache_dir
        Stub cache directory of the derived environment.

    Returns
    -------
    list[str]
        Names of modules whose stubs were copied, sorted.
    """
    copied: list[str] = []
    for name in sorted(modules):
        base_binary = base_modules.get(name)
        if base_binary is None or base_binary.byte_size != modules[name].byte_size:
            continue
        source = stub_path(name, base_cache_dir)
        if not source.is_file():
            continue
        target = cache_dir / source.relative_to(base_cache_dir)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError as exc:
            logger.info("Error copying base environment stub for %s: %s", name, exc)
            continue
        copied.append(name)
    return copied


def bootstrap_cache(
    context: RefreshContext,
    modules: Mapping[str, BinaryModule],
    *,
    lister: BinaryLister,
    cache_root: Path,
) -> BootstrapOutcome:
    """Seed a missing or legacy cache from a bundle and a base environment.

    Parameters
    ----------
    context
        Run context of the environment being refreshed.
    modules
        Binary modules of the environment.
    lister
        Lister used to list the base environment's binaries.
    cache_root
        Root holding the base environment's stub cache.

    Returns
    -------
    BootstrapOutcome
        Bundle extraction status and modules copied from the base environment.
    """
    bundle_extracted = False
    if context.bundle is not None:
        context.progress.check_cancelled()
        context.progress.report_text("Unpacking pregenerated stubs...")
        bundle_extracted = extract_bundle(context.bundle, context.cache_dir)
    copied: list[str] = []
    base = context.environment.base
    if base is not None:
        context.progress.check_cancelled()
        context.progress.report_text("Copying base environment stubs...")
        base_cache_dir = stub_cache_dir(cache_root, base.home_path)
        base_listing = lister.list_binaries(base, extra_search_path(base, base_cache_dir))
        copied = copy_base_environment_stubs(
            modules,
            base_listing.modules,
            base_cache_dir=base_cache_dir,
            cache_dir=context.cache_dir,
        )
        logger.info("Copied %d stubs from base environment %s", len(copied), base.home_path)
    return BootstrapOutcome(bundle_extracted=bundle_extracted, copied_from_base=tuple(copied))


__all__ = ["BootstrapOutcome", "bootstrap_cache", "copy_base_environment_stubs"]
