"""Pregenerated stub bundles shipped alongside the generator."""

from __future__ import annotations

import logging
import platform
import shutil
import sys
import zipfile
from functools import lru_cache
from pathlib import Path, PurePosixPath

from serde_msgspec import StructBaseStrict
from stubcache.models import INIT_FILE_NAME, RuntimeEnvironment

logger = logging.getLogger(__name__)

BUNDLE_PREFIX = "stubs"


class PregeneratedBundle(StructBaseStrict, frozen=True):
    """Zip archive of stubs for one platform, generator and runtime version."""

    path: Path
    platform_tag: str
    generator_version: int
    runtime_version: str


def current_platform_tag() -> str:
    """Return the bundle platform tag of the running system.

    Returns
    -------
    str
        ``mac-<major.minor>`` on macOS, ``win`` on Windows, ``nix`` otherwise.
    """
    if sys.platform == "darwin":
        release = platform.mac_ver()[0]
        major_minor = ".".join(release.split(".")[:2])
        return f"mac-{major_minor}"
    if sys.platform.startswith("win"):
        return "win"
    return "nix"


def runtime_version_tag(version_string: str) -> str:
    """Normalize an interpreter version string for bundle names.

    Returns
    -------
    str
        Lower-cased version string with spaces replaced by dashes.
    """
    return version_string.lower().replace(" ", "-")


def bundle_file_name(platform_tag: str, generator_version: int, runtime_version: str) -> str:
    """Return the archive name of a bundle.

    The macOS tag carries the OS version after the generator version, e.g.
    ``stubs-mac-1145-14.2-python-3.12.1.zip``.

    Returns
    -------
    str
        Archive file name.
    """
    os_name, _, os_version = platform_tag.partition("-")
    if os_version:
        return f"{BUNDLE_PREFIX}-{os_name}-{generator_version}-{os_version}-{runtime_version}.zip"
    return f"{BUNDLE_PREFIX}-{os_name}-{generator_version}-{runtime_version}.zip"


class DirectoryBundleProvider:
    """Resolve bundles by file name inside a directory."""

    def __init__(self, root: Path, *, platform_tag: str | None = None) -> None:
        self.root = root
        self.platform_tag = platform_tag or current_platform_tag()

    def find_bundle(
        self,
        environment: RuntimeEnvironment,
        generator_version: int,
    ) -> PregeneratedBundle | None:
        """Return the bundle matching the environment, if present.

        Parameters
        ----------
        environment
            Environment being refreshed.
        generator_version
            Generator version reported by the lister.

        Returns
        -------
        PregeneratedBundle | None
            Matching bundle, or None for remote environments, unknown runtime
            versions and missing archives.
        """
        if environment.remote or not environment.version_string:
            return None
        runtime_version = runtime_version_tag(environment.version_string)
        path = self.root / bundle_file_name(self.platform_tag, generator_version, runtime_version)
        if not path.is_file():
            logger.info("Not found pregenerated stubs at %s", path)
            return None
        logger.info("Found pregenerated stubs at %s", path)
        return PregeneratedBundle(
            path=path,
            platform_tag=self.platform_tag,
            generator_version=generator_version,
            runtime_version=runtime_version,
        )


def extract_bundle(bundle: PregeneratedBundle, cache_dir: Path) -> bool:
    """Extract a whole bundle into a cache directory.

    Returns
    -------
    bool
        True when extraction completed; failures are logged.
    """
    try:
        with zipfile.ZipFile(bundle.path) as archive:
            archive.extractall(cache_dir)
    except (OSError, zipfile.BadZipFile) as exc:
        logger.info("Error unpacking pregenerated stubs %s: %s", bundle.path, exc)
        return False
    return True


@lru_cache(maxsize=8)
def _bundle_members(path: Path, mtime_ns: int) -> frozenset[str]:
    _ = mtime_ns
    with zipfile.ZipFile(path) as archive:
        return frozenset(archive.namelist())


def copy_bundled_stub(bundle: PregeneratedBundle, module_name: str, cache_dir: Path) -> bool:
    """Copy one module's stub out of a bundle.

    Parameters
    ----------
    bundle
        Bundle to copy from.
    module_name
        Dotted module name.
    cache_dir
        Target stub cache directory.

    Returns
    -------
    bool
        True when the bundle had a stub for the module and it was copied.
    """
    module_path = PurePosixPath(*module_name.split("."))
    candidates = (
        module_path.with_name(f"{module_path.name}.py"),
        module_path / INIT_FILE_NAME,
    )
    try:
        names = _bundle_members(bundle.path, bundle.path.stat().st_mtime_ns)
        member = next((str(item) for item in candidates if str(item) in names), None)
        if member is None:
            return False
        with zipfile.ZipFile(bundle.path) as archive:
            target = cache_dir.joinpath(*PurePosixPath(member).parts)
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member) as source, target.open("wb") as sink:
                shutil.copyfileobj(source, sink)
    except (OSError, zipfile.BadZipFile) as exc:
        logger.info("Error copying pregenerated stub for %s: %s", module_name, exc)
        return False
    logger.info("Pregenerated stub for %s", module_name)
    return True


__all__ = [
    "BUNDLE_PREFIX",
    "DirectoryBundleProvider",
    "PregeneratedBundle",
    "bundle_file_name",
    "copy_bundled_stub",
    "current_platform_tag",
    "extract_bundle",
    "runtime_version_tag",
]
