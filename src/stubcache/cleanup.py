"""Removal of stubs whose binary no longer exists."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from stubcache.headers import read_stub_header
from stubcache.models import BLACKLIST_FILE_NAME, BUILTIN_ORIGIN, INIT_FILE_NAME

if TYPE_CHECKING:
    from stubcache.ports import RefreshProgress, StubGenerator

logger = logging.getLogger(__name__)


def _is_placeholder(path: Path) -> bool:
    try:
        return path.name == INIT_FILE_NAME and path.stat().st_size == 0
    except OSError:
        return False


def _children(directory: Path) -> list[Path] | None:
    try:
        return sorted(directory.iterdir())
    except OSError as exc:
        logger.warning("Failed to list stub directory %s: %s", directory, exc)
        return None


class OrphanCleaner:
    """Delete stub files and directories that no binary backs anymore."""

    def __init__(self, generator: StubGenerator, progress: RefreshProgress) -> None:
        self._generator = generator
        self._progress = progress
        self.deleted: list[Path] = []

    def clean(self, directory: Path) -> None:
        """Recursively clean a stub directory tree.

        Directories emptied by the sweep are removed, as are directories left
        holding only an empty ``__init__.py`` placeholder.
        """
        self._progress.report_text(str(directory))
        items = _children(directory)
        if items is None:
            return
        for item in items:
            if item.is_dir():
                self.clean(item)
                self._clean_emptied_dir(item)
            elif item.is_file():
                self._clean_file(item)

    def _clean_emptied_dir(self, directory: Path) -> None:
        remaining = _children(directory)
        if remaining is None:
            return
        if not remaining:
            self._delete(directory)
        elif len(remaining) == 1 and _is_placeholder(remaining[0]):
            if self._delete(remaining[0]):
                self._delete(directory)

    def _clean_file(self, path: Path) -> None:
        if path.name == BLACKLIST_FILE_NAME or _is_placeholder(path):
            return
        header = read_stub_header(path)
        can_live = header is not None and (
            header.origin == BUILTIN_ORIGIN or self._generator.exists(header.origin)
        )
        if not can_live:
            logger.debug("Removing orphaned stub %s", path)
            self._delete(path)

    def _delete(self, path: Path) -> bool:
        deleted = self._generator.delete_or_log(path)
        if deleted:
            self.deleted.append(path)
        return deleted


def clean_orphans(
    cache_dir: Path,
    *,
    generator: StubGenerator,
    progress: RefreshProgress,
) -> list[Path]:
    """Remove orphaned stubs under a cache directory.

    Parameters
    ----------
    cache_dir
        Stub cache directory to sweep; the directory itself is kept.
    generator
        Generator confirming origin existence and performing deletions.
    progress
        Progress capability receiving the directory being swept.

    Returns
    -------
    list[pathlib.Path]
        Paths deleted by the sweep.
    """
    cleaner = OrphanCleaner(generator, progress)
    cleaner.clean(cache_dir)
    return cleaner.deleted


__all__ = ["OrphanCleaner", "clean_orphans"]
