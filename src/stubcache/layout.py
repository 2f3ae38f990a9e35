"""On-disk layout of a stub cache directory."""

from __future__ import annotations

import os
from pathlib import Path

from stubcache.models import INIT_FILE_NAME, RuntimeEnvironment
from utils.env_utils import env_path
from utils.hashing import hash_sha256_hex

STUBS_DIR_NAME = "python_stubs"
_HOME_HASH_LENGTH = 16


def default_cache_root() -> Path:
    """Return the root directory holding stub caches of all environments.

    Returns
    -------
    pathlib.Path
        ``$STUBCACHE_ROOT`` when set, otherwise ``~/.cache/stubcache``.
    """
    root = env_path("STUBCACHE_ROOT")
    if root is not None:
        return root
    return Path.home() / ".cache" / "stubcache"


def stub_cache_dir(cache_root: Path, home_path: str) -> Path:
    """Return the stub cache directory for an interpreter.

    Returns
    -------
    pathlib.Path
        Directory keyed by a stable hash of the interpreter path.
    """
    digest = hash_sha256_hex(home_path.encode("utf-8"), length=_HOME_HASH_LENGTH)
    return cache_root / STUBS_DIR_NAME / digest


def module_stub_path(module_name: str, cache_dir: Path) -> Path:
    """Return ``a/b/c.py`` for module ``a.b.c``.

    Returns
    -------
    pathlib.Path
        Stub path for a plain module.
    """
    parts = module_name.split(".")
    return cache_dir.joinpath(*parts[:-1], f"{parts[-1]}.py")


def package_stub_path(module_name: str, cache_dir: Path) -> Path:
    """Return ``a/b/c/__init__.py`` for package ``a.b.c``.

    Returns
    -------
    pathlib.Path
        Stub path for a package.
    """
    return cache_dir.joinpath(*module_name.split("."), INIT_FILE_NAME)


def stub_path(module_name: str, cache_dir: Path) -> Path:
    """Return the existing stub path for a module, preferring plain modules.

    Returns
    -------
    pathlib.Path
        Module stub path when it exists, otherwise the package stub path.
    """
    module = module_stub_path(module_name, cache_dir)
    return module if module.exists() else package_stub_path(module_name, cache_dir)


def builtins_file_name(environment: RuntimeEnvironment) -> str:
    """Return the file name of the built-in namespace stub.

    Returns
    -------
    str
        ``__builtin__.py`` for 2.x runtimes, ``builtins.py`` otherwise.
    """
    return "__builtin__.py" if environment.is_python2 else "builtins.py"


def extra_search_path(environment: RuntimeEnvironment, cache_dir: Path) -> str:
    """Join the environment's class roots, excluding the stub cache itself.

    Returns
    -------
    str
        ``os.pathsep``-joined search path.
    """
    excluded = os.path.normpath(str(cache_dir))
    roots = [root for root in environment.class_roots if os.path.normpath(root) != excluded]
    return os.pathsep.join(roots)


def modified_at_millis(path: Path) -> int:
    """Return a file's modification time in milliseconds.

    Raises
    ------
    OSError
        Raised when the file can't be stat'ed.
    """
    return int(path.stat().st_mtime * 1000)


__all__ = [
    "STUBS_DIR_NAME",
    "builtins_file_name",
    "default_cache_root",
    "extra_search_path",
    "modified_at_millis",
    "module_stub_path",
    "package_stub_path",
    "stub_cache_dir",
    "stub_path",
]
