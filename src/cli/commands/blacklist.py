"""Inspect and reset the generation blacklist of a stub cache."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

from cyclopts import Parameter
from rich.console import Console
from rich.table import Table

from cli.config_models import RootConfigSpec
from cli.context import RunContext
from cli.groups import cache_group, environment_group
from cli.result import CliResult
from stubcache.blacklist import blacklist_path, load_blacklist, remove_blacklist
from stubcache.layout import default_cache_root, stub_cache_dir
from stubcache.versions import to_version_string

InterpreterArg = Annotated[
    str | None,
    Parameter(
        help="Interpreter whose stub cache is inspected (defaults to the running one).",
        env_var="STUBCACHE_INTERPRETER",
        group=environment_group,
    ),
]
CacheRootArg = Annotated[
    Path | None,
    Parameter(
        name="--cache-root",
        help="Root directory holding the stub caches of all interpreters.",
        env_var="STUBCACHE_ROOT",
        group=cache_group,
    ),
]
CacheDirArg = Annotated[
    Path | None,
    Parameter(
        name="--cache-dir",
        help="Explicit stub cache directory.",
        env_var="STUBCACHE_CACHE_DIR",
        group=cache_group,
    ),
]
RunContextArg = Annotated[RunContext | None, Parameter(parse=False)]


def resolve_cache_dir(
    interpreter: str | None,
    cache_root: Path | None,
    cache_dir: Path | None,
    config: RootConfigSpec,
) -> Path:
    """Return the stub cache directory addressed by the arguments.

    Returns
    -------
    pathlib.Path
        Explicit cache directory, or the one derived from the interpreter.
    """
    if cache_dir is not None:
        return cache_dir
    if config.cache_dir:
        return Path(config.cache_dir).expanduser()
    root = cache_root or (Path(config.cache_root).expanduser() if config.cache_root else None)
    home_path = interpreter or config.interpreter or sys.executable
    return stub_cache_dir(root or default_cache_root(), home_path)


def show_blacklist(
    interpreter: InterpreterArg = None,
    *,
    cache_root: CacheRootArg = None,
    cache_dir: CacheDirArg = None,
    run_context: RunContextArg = None,
) -> CliResult:
    """Show modules whose stub generation failed.

    Returns
    -------
    CliResult
        Summary naming the blacklist file.
    """
    config = run_context.config if run_context is not None else RootConfigSpec()
    directory = resolve_cache_dir(interpreter, cache_root, cache_dir, config)
    blacklist = load_blacklist(directory)
    if not blacklist:
        return CliResult.success(summary=f"No blacklisted modules in {directory}")

    table = Table(title=str(blacklist_path(directory)))
    table.add_column("Binary")
    table.add_column("Generator")
    table.add_column("Modified (ms)", justify="right")
    for name in sorted(blacklist):
        entry = blacklist[name]
        table.add_row(
            name,
            to_version_string(entry.generator_version),
            str(entry.binary_modified_at_millis),
        )
    Console().print(table)
    return CliResult.success(summary=f"{len(blacklist)} blacklisted module(s)")


def clear_blacklist(
    interpreter: InterpreterArg = None,
    *,
    cache_root: CacheRootArg = None,
    cache_dir: CacheDirArg = None,
    run_context: RunContextArg = None,
) -> CliResult:
    """Delete the blacklist so every failed module is retried.

    Returns
    -------
    CliResult
        Summary of the removal.
    """
    config = run_context.config if run_context is not None else RootConfigSpec()
    directory = resolve_cache_dir(interpreter, cache_root, cache_dir, config)
    path = blacklist_path(directory)
    if not path.exists():
        return CliResult.success(summary=f"No blacklist at {path}")
    if not remove_blacklist(directory):
        return CliResult.error(1, summary=f"Failed to remove {path}")
    return CliResult.success(summary=f"Removed {path}")


__all__ = ["clear_blacklist", "resolve_cache_dir", "show_blacklist"]
