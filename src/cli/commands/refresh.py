"""Refresh the stub cache of one interpreter."""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from cyclopts import Parameter

from cache.diskcache_factory import DiskCacheProfile, default_diskcache_profile
from cli.config_models import RootConfigSpec
from cli.context import RunContext
from cli.exit_codes import ExitCode
from cli.groups import cache_group, environment_group, generator_group
from cli.progress import ConsoleNotifier, ConsoleProgress
from cli.result import CliResult
from stubcache.bundles import DirectoryBundleProvider
from stubcache.command_generator import (
    DEFAULT_GENERATION_TIMEOUT_S,
    CommandStubGenerator,
    probe_environment,
)
from stubcache.errors import StubCacheError
from stubcache.layout import default_cache_root, stub_cache_dir
from stubcache.policy_cache import VersionPolicyCache
from stubcache.ports import MigrationFlag
from stubcache.refresher import RefreshResult, StubCacheRefresher
from stubcache.versions import VERSION_RULES_FILE_NAME, load_version_rules, to_version_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshOptions:
    """Options of the refresh command; unset values fall back to config files."""

    base_interpreter: Annotated[
        str | None,
        Parameter(
            name="--base-interpreter",
            help="Interpreter of the base environment whose stubs can be reused.",
            env_var="STUBCACHE_BASE_INTERPRETER",
            group=environment_group,
        ),
    ] = None
    generator_script: Annotated[
        Path | None,
        Parameter(
            name="--generator-script",
            help="Stub generator script run under the target interpreter.",
            env_var="STUBCACHE_GENERATOR_SCRIPT",
            group=generator_group,
        ),
    ] = None
    generation_timeout_s: Annotated[
        float | None,
        Parameter(
            name="--generation-timeout",
            help="Time limit in seconds for one generator run.",
            env_var="STUBCACHE_GENERATION_TIMEOUT_S",
            group=generator_group,
        ),
    ] = None
    version_rules: Annotated[
        Path | None,
        Parameter(
            name="--version-rules",
            help="Required-version rule file (defaults to the one next to the script).",
            env_var="STUBCACHE_VERSION_RULES",
            group=generator_group,
        ),
    ] = None
    cache_root: Annotated[
        Path | None,
        Parameter(
            name="--cache-root",
            help="Root directory holding the stub caches of all interpreters.",
            env_var="STUBCACHE_ROOT",
            group=cache_group,
        ),
    ] = None
    cache_dir: Annotated[
        Path | None,
        Parameter(
            name="--cache-dir",
            help="Explicit stub cache directory for this interpreter.",
            env_var="STUBCACHE_CACHE_DIR",
            group=cache_group,
        ),
    ] = None
    bundle_dir: Annotated[
        Path | None,
        Parameter(
            name="--bundle-dir",
            help="Directory holding pregenerated stub bundles.",
            env_var="STUBCACHE_BUNDLE_DIR",
            group=cache_group,
        ),
    ] = None
    policy_cache_dir: Annotated[
        Path | None,
        Parameter(
            name="--policy-cache-dir",
            help="DiskCache directory remembering version policies between runs.",
            env_var="STUBCACHE_POLICY_CACHE_DIR",
            group=cache_group,
        ),
    ] = None


_DEFAULT_REFRESH_OPTIONS = RefreshOptions()


@dataclass(frozen=True)
class RefreshSettings:
    """Refresh settings after merging CLI options with config values."""

    interpreter: str
    generator_script: Path | None
    base_interpreter: str | None = None
    cache_root: Path | None = None
    cache_dir: Path | None = None
    bundle_dir: Path | None = None
    version_rules: Path | None = None
    generation_timeout_s: float = DEFAULT_GENERATION_TIMEOUT_S
    policy_cache_dir: Path | None = None


def _path_or_none(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


def resolve_refresh_settings(
    interpreter: str | None,
    options: RefreshOptions,
    config: RootConfigSpec,
) -> RefreshSettings:
    """Merge command-line options over configuration values.

    Returns
    -------
    RefreshSettings
        Effective settings; the interpreter defaults to the running one.
    """
    timeout = options.generation_timeout_s
    if timeout is None:
        timeout = config.generation_timeout_s
    return RefreshSettings(
        interpreter=interpreter or config.interpreter or sys.executable,
        generator_script=options.generator_script or _path_or_none(config.generator_script),
        base_interpreter=options.base_interpreter or config.base_interpreter,
        cache_root=options.cache_root or _path_or_none(config.cache_root),
        cache_dir=options.cache_dir or _path_or_none(config.cache_dir),
        bundle_dir=options.bundle_dir or _path_or_none(config.bundle_dir),
        version_rules=options.version_rules or _path_or_none(config.version_rules),
        generation_timeout_s=timeout if timeout is not None else DEFAULT_GENERATION_TIMEOUT_S,
        policy_cache_dir=options.policy_cache_dir or _path_or_none(config.policy_cache_dir),
    )


def _policy_cache(settings: RefreshSettings) -> VersionPolicyCache:
    if settings.policy_cache_dir is None:
        return VersionPolicyCache()
    base = default_diskcache_profile()
    profile = DiskCacheProfile(
        root=settings.policy_cache_dir,
        base_settings=base.base_settings,
        overrides=base.overrides,
    )
    return VersionPolicyCache(cache_profile=profile)


def _summarize(result: RefreshResult, *, elapsed_ms: float) -> CliResult:
    policy_version = to_version_string(result.policy.generator_version)
    parts = [f"Stub cache refreshed (generator {policy_version})"]
    if result.migrated:
        parts.append("rebuilt from scratch")
    if result.generated:
        parts.append(f"{len(result.generated)} generated")
    if result.removed:
        parts.append(f"{len(result.removed)} removed")
    failed = result.failed_modules
    if failed:
        parts.append(f"{len(failed)} still failing:")
    return CliResult.success(
        summary=", ".join(parts),
        details=failed,
        metrics={"duration_ms": elapsed_ms},
    )


def refresh_command(
    interpreter: Annotated[
        str | None,
        Parameter(
            help="Interpreter to refresh stubs for (defaults to the running one).",
            env_var="STUBCACHE_INTERPRETER",
            group=environment_group,
        ),
    ] = None,
    options: Annotated[RefreshOptions, Parameter(name="*")] = _DEFAULT_REFRESH_OPTIONS,
    *,
    run_context: Annotated[RunContext | None, Parameter(parse=False)] = None,
) -> CliResult:
    """Bring the stub cache of an interpreter up to date.

    Returns
    -------
    CliResult
        Summary with the modules whose stubs are still missing.
    """
    config = run_context.config if run_context is not None else RootConfigSpec()
    settings = resolve_refresh_settings(interpreter, options, config)
    if settings.generator_script is None:
        return CliResult.error(
            ExitCode.CONFIG_ERROR,
            summary="No generator script configured; pass --generator-script.",
        )

    t0 = time.perf_counter()
    try:
        environment = probe_environment(
            settings.interpreter,
            base_interpreter=settings.base_interpreter,
        )
        cache_root = settings.cache_root or default_cache_root()
        cache_dir = settings.cache_dir or stub_cache_dir(cache_root, environment.home_path)
        generator = CommandStubGenerator(
            settings.interpreter,
            settings.generator_script,
            cache_dir,
            timeout_s=settings.generation_timeout_s,
        )
        rules_path = settings.version_rules or settings.generator_script.with_name(
            VERSION_RULES_FILE_NAME
        )
        bundle_provider = (
            DirectoryBundleProvider(settings.bundle_dir) if settings.bundle_dir else None
        )
        progress = ConsoleProgress()
        refresher = StubCacheRefresher(
            environment,
            lister=generator,
            generator=generator,
            cache_root=cache_root,
            cache_dir=cache_dir,
            bundle_provider=bundle_provider,
            version_rules=load_version_rules(rules_path) if rules_path.exists() else None,
            progress=progress,
            notifier=ConsoleNotifier(progress.console),
        )
        policy_cache = _policy_cache(settings)
        with progress.interrupt_cancels():
            result = refresher.refresh(
                cached_policy=policy_cache.get(environment.home_path),
                migration_flag=MigrationFlag(),
            )
        policy_cache.put(environment.home_path, result.policy)
    except StubCacheError as exc:
        logger.debug("Refresh of %s failed", settings.interpreter, exc_info=True)
        return CliResult.from_exception(exc)
    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    return _summarize(result, elapsed_ms=elapsed_ms)


__all__ = ["RefreshOptions", "RefreshSettings", "refresh_command", "resolve_refresh_settings"]
