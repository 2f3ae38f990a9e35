"""Negative cache of modules whose stub generation keeps failing.

The blacklist lives in ``<cache_dir>/.blacklist``. Each run reads the whole
file once, and writes the whole resulting mapping once at the end::

    # comment lines
    /usr/lib/python3/foo.so = 1.145 1700000000000

The ``=`` separator lets origin paths contain spaces. Paths are kept as
raw bytes through ``surrogateescape``, so non-UTF-8 names survive a round trip.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from serde_msgspec import StructBaseStrict
from stubcache.models import BLACKLIST_FILE_NAME, UpdateResult
from stubcache.versions import from_version_string, to_version_string

logger = logging.getLogger(__name__)

_BLACKLIST_LINE = re.compile(r"^([^=]+) = (\d+\.\d+) (\d+)\s*$")

BLACKLIST_HEADER = (
    "# Stub generation failed for these modules.",
    "# These stubs will be re-generated automatically",
    "# when a newer module version or an updated generator becomes available.",
)

type Blacklist = Mapping[str, BlacklistEntry]


class BlacklistEntry(StructBaseStrict, frozen=True):
    """Generator version and binary timestamp recorded at failure time."""

    generator_version: int
    binary_modified_at_millis: int


def blacklist_path(cache_dir: Path) -> Path:
    """Return the blacklist file path of a cache directory.

    Returns
    -------
    pathlib.Path
        Blacklist file path.
    """
    return cache_dir / BLACKLIST_FILE_NAME


def parse_blacklist_line(line: str) -> tuple[str, BlacklistEntry] | None:
    """Parse one non-comment blacklist line.

    Returns
    -------
    tuple[str, BlacklistEntry] | None
        Origin path and entry, or None when the line is malformed.
    """
    match = _BLACKLIST_LINE.match(line)
    if match is None:
        return None
    version = from_version_string(match.group(2))
    if version <= 0:
        return None
    entry = BlacklistEntry(
        generator_version=version,
        binary_modified_at_millis=int(match.group(3)),
    )
    return match.group(1), entry


def load_blacklist(cache_dir: Path) -> dict[str, BlacklistEntry]:
    """Load the blacklist of a cache directory.

    Parameters
    ----------
    cache_dir
        Stub cache directory.

    Returns
    -------
    dict[str, BlacklistEntry]
        Entries keyed by binary origin path. Missing or unreadable files yield
        an empty mapping; malformed lines are logged and skipped.
    """
    path = blacklist_path(cache_dir)
    try:
        text = path.read_text(encoding="utf-8", errors="surrogateescape")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Failed to read blacklist in %s: %s", cache_dir, exc)
        return {}
    entries: dict[str, BlacklistEntry] = {}
    for line in text.splitlines():
        if not line or line.startswith("#"):
            continue
        parsed = parse_blacklist_line(line)
        if parsed is None:
            logger.warning("In blacklist at %s strange line %r", cache_dir, line)
            continue
        origin, entry = parsed
        entries[origin] = entry
    return entries


def render_blacklist(blacklist: Blacklist) -> str:
    """Render blacklist entries in file format.

    Returns
    -------
    str
        Comment header followed by one line per entry, sorted by path.
    """
    lines = list(BLACKLIST_HEADER)
    for origin in sorted(blacklist):
        entry = blacklist[origin]
        version = to_version_string(entry.generator_version)
        lines.append(f"{origin} = {version} {entry.binary_modified_at_millis}")
    return "\n".join(lines) + "\n"


def store_blacklist(cache_dir: Path, blacklist: Blacklist) -> bool:
    """Overwrite the blacklist file with the given entries.

    Returns
    -------
    bool
        True when the file was written; write failures are logged.
    """
    path = blacklist_path(cache_dir)
    try:
        path.write_text(render_blacklist(blacklist), encoding="utf-8", errors="surrogateescape")
    except OSError as exc:
        logger.warning("Failed to store blacklist in %s: %s", cache_dir, exc)
        return False
    return True


def remove_blacklist(cache_dir: Path) -> bool:
    """Delete the blacklist file when present.

    Returns
    -------
    bool
        True when no blacklist file remains.
    """
    path = blacklist_path(cache_dir)
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not delete blacklist file in %s: %s", cache_dir, exc)
        return False
    return True


def blacklist_from_failures(
    failures: Iterable[UpdateResult],
    *,
    generator_version: int,
) -> dict[str, BlacklistEntry]:
    """Build the blacklist snapshot written at the end of a run.

    Returns
    -------
    dict[str, BlacklistEntry]
        One entry per still-failing module; entries of modules that are no
        longer failing are dropped.
    """
    return {
        failure.origin_path: BlacklistEntry(
            generator_version=generator_version,
            binary_modified_at_millis=failure.modified_at_millis,
        )
        for failure in failures
    }


def persist_blacklist(cache_dir: Path, blacklist: Blacklist) -> bool:
    """Write the blacklist snapshot, deleting the file when it is empty.

    Returns
    -------
    bool
        True when the on-disk state matches the snapshot.
    """
    if blacklist:
        return store_blacklist(cache_dir, blacklist)
    return remove_blacklist(cache_dir)


__all__ = [
    "BLACKLIST_HEADER",
    "Blacklist",
    "BlacklistEntry",
    "blacklist_from_failures",
    "blacklist_path",
    "load_blacklist",
    "parse_blacklist_line",
    "persist_blacklist",
    "remove_blacklist",
    "render_blacklist",
    "store_blacklist",
]
