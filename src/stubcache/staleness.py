"""Per-module decision whether a stub must be rebuilt."""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from serde_msgspec import StructBaseStrict
from stubcache.headers import read_stub_header
from stubcache.layout import modified_at_millis, stub_path

if TYPE_CHECKING:
    from stubcache.context import RefreshContext
    from stubcache.models import BinaryModule

logger = logging.getLogger(__name__)


class RebuildReason(StrEnum):
    """Why a stub is or isn't rebuilt."""

    MISSING = "missing"
    OUTDATED = "outdated"
    BINARY_CHANGED = "binary_changed"
    UP_TO_DATE = "up_to_date"


class StalenessDecision(StructBaseStrict, frozen=True):
    """Outcome of checking one module's stub.

    ``suppressed`` is set when the module is blacklisted and neither the
    generator nor the binary changed since the recorded failure.
    """

    module_name: str
    stub_path: Path
    reason: RebuildReason
    must_rebuild: bool
    suppressed: bool = False


def _stub_reason(module: BinaryModule, path: Path, required_version: int) -> RebuildReason:
    header = read_stub_header(path)
    if header is None:
        return RebuildReason.MISSING
    if header.generator_version < required_version:
        return RebuildReason.OUTDATED
    try:
        stub_mtime = modified_at_millis(path)
    except OSError:
        return RebuildReason.MISSING
    if module.modified_at_millis > stub_mtime:
        return RebuildReason.BINARY_CHANGED
    return RebuildReason.UP_TO_DATE


def assess_module(module: BinaryModule, context: RefreshContext) -> StalenessDecision:
    """Decide whether the stub of a binary module must be rebuilt.

    Parameters
    ----------
    module
        Binary module from the current listing.
    context
        Run context providing the policy, blacklist and cache directory.

    Returns
    -------
    StalenessDecision
        Decision combining header version, file timestamps and blacklist.
    """
    path = stub_path(module.name, context.cache_dir)
    reason = _stub_reason(module, path, context.policy.required_version(module.name))
    must_rebuild = reason is not RebuildReason.UP_TO_DATE
    suppressed = False
    entry = context.blacklist.get(module.origin_path)
    if entry is not None:
        retry = (
            entry.generator_version < context.generator_version
            or entry.binary_modified_at_millis < module.modified_at_millis
        )
        must_rebuild = must_rebuild and retry
        suppressed = not must_rebuild
    if suppressed:
        logger.debug("Stub for %s is blacklisted (%s)", module.name, module.origin_path)
    return StalenessDecision(
        module_name=module.name,
        stub_path=path,
        reason=reason,
        must_rebuild=must_rebuild,
        suppressed=suppressed,
    )


__all__ = ["RebuildReason", "StalenessDecision", "assess_module"]
