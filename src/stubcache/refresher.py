"""One-shot refresh of an environment's stub cache.

A refresh loads the blacklist, lists binaries, optionally bootstraps a
missing or legacy cache, rebuilds the built-in stub and stale module stubs,
rewrites the blacklist and finally removes orphaned stubs. Refreshers are
single-use; build a new one per refresh request.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

import msgspec

from serde_msgspec import StructBaseStrict
from stubcache.blacklist import blacklist_from_failures, load_blacklist, persist_blacklist
from stubcache.bootstrap import BootstrapOutcome, bootstrap_cache
from stubcache.cleanup import clean_orphans
from stubcache.context import RefreshContext
from stubcache.errors import CacheSetupError, RefresherReusedError
from stubcache.generation import GenerationDriver, GenerationReport
from stubcache.headers import read_stub_header
from stubcache.layout import (
    builtins_file_name,
    default_cache_root,
    extra_search_path,
    stub_cache_dir,
)
from stubcache.models import RuntimeEnvironment, UpdateResult
from stubcache.ports import NullNotifier, NullProgress
from stubcache.versions import VersionPolicy, VersionRuleTable

if TYPE_CHECKING:
    from stubcache.ports import (
        BinaryLister,
        BundleProvider,
        MigrationFlag,
        RefreshNotifier,
        RefreshProgress,
        StubGenerator,
    )

logger = logging.getLogger(__name__)


class RefreshState(StrEnum):
    """Stages of a refresh run, in order; ``ERROR`` is terminal."""

    IDLE = "idle"
    BLACKLIST_LOADED = "blacklist_loaded"
    LISTED = "listed"
    BOOTSTRAPPED = "bootstrapped"
    BUILTIN_CHECKED = "builtin_checked"
    MODULES_UPDATED = "modules_updated"
    CLEANED = "cleaned"
    DONE = "done"
    ERROR = "error"


class RefreshResult(StructBaseStrict, frozen=True):
    """Outcome of a refresh run."""

    policy: VersionPolicy
    failures: tuple[UpdateResult, ...] = ()
    migrated: bool = False
    bootstrap: BootstrapOutcome = msgspec.field(default_factory=BootstrapOutcome)
    builtins_regenerated: bool = False
    generated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    @property
    def failed_modules(self) -> tuple[str, ...]:
        """Return names of all still-failing modules.

        Returns
        -------
        tuple[str, ...]
            Fresh failures and blacklist-suppressed modules.
        """
        return tuple(failure.module_name for failure in self.failures)

    @property
    def fresh_failed_modules(self) -> tuple[str, ...]:
        """Return names of modules whose generation failed in this run.

        Returns
        -------
        tuple[str, ...]
            Modules with fresh failures.
        """
        return tuple(failure.module_name for failure in self.failures if failure.fresh)


class StubCacheRefresher:
    """Bring the stub cache of one environment up to date.

    Parameters
    ----------
    environment
        Environment whose binary modules get stubs.
    lister
        Binary lister collaborator.
    generator
        Stub generator bound to the environment's cache directory.
    cache_root
        Root of all stub caches; defaults to ``default_cache_root()``.
    cache_dir
        Explicit cache directory; derived from ``cache_root`` when omitted.
    bundle_provider
        Resolver of pregenerated bundles, if bundles are shipped.
    version_rules
        Required-version rule table shipped with the generator.
    progress
        Progress and cancellation capability.
    notifier
        User notification capability.
    """

    def __init__(
        self,
        environment: RuntimeEnvironment,
        *,
        lister: BinaryLister,
        generator: StubGenerator,
        cache_root: Path | None = None,
        cache_dir: Path | None = None,
        bundle_provider: BundleProvider | None = None,
        version_rules: VersionRuleTable | None = None,
        progress: RefreshProgress | None = None,
        notifier: RefreshNotifier | None = None,
    ) -> None:
        self.environment = environment
        self.cache_root = cache_root or default_cache_root()
        self._cache_dir = cache_dir
        self._lister = lister
        self._generator = generator
        self._bundle_provider = bundle_provider
        self._version_rules = version_rules
        self._progress: RefreshProgress = progress or NullProgress()
        self._notifier: RefreshNotifier = notifier or NullNotifier()
        self._state = RefreshState.IDLE

    @property
    def state(self) -> RefreshState:
        """Return the stage reached by this refresher.

        Returns
        -------
        RefreshState
            Current stage.
        """
        return self._state

    @property
    def cache_dir(self) -> Path:
        """Return the stub cache directory of the environment.

        Returns
        -------
        pathlib.Path
            Explicit cache directory or the one derived from ``cache_root``.
        """
        if self._cache_dir is None:
            self._cache_dir = stub_cache_dir(self.cache_root, self.environment.home_path)
        return self._cache_dir

    def ensure_cache_dir(self) -> Path:
        """Create the stub cache directory if needed.

        Returns
        -------
        pathlib.Path
            Existing cache directory.

        Raises
        ------
        CacheSetupError
            Raised when the directory can't be created.
        """
        path = self.cache_dir
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheSetupError(path, str(exc)) from exc
        return path

    def refresh(
        self,
        *,
        cached_policy: VersionPolicy | None = None,
        migration_flag: MigrationFlag | None = None,
    ) -> RefreshResult:
        """Run the refresh once.

        Parameters
        ----------
        cached_policy
            Version policy of a previous run, used when the generator version
            is unknown in this run.
        migration_flag
            Shared flag limiting the conversion notice to one per session.

        Returns
        -------
        RefreshResult
            Still-failing modules and what the run changed.

        Raises
        ------
        RefresherReusedError
            Raised when the refresher already ran.
        """
        if self._state is not RefreshState.IDLE:
            msg = f"Stub cache refresher for {self.environment.home_path} already ran."
            raise RefresherReusedError(msg)
        try:
            result = self._run(cached_policy=cached_policy, migration_flag=migration_flag)
        except BaseException:
            self._state = RefreshState.ERROR
            raise
        self._advance(RefreshState.DONE)
        return result

    def _advance(self, state: RefreshState) -> None:
        logger.debug("Stub refresh of %s: %s -> %s", self.environment.home_path, self._state, state)
        self._state = state

    def _run(
        self,
        *,
        cached_policy: VersionPolicy | None,
        migration_flag: MigrationFlag | None,
    ) -> RefreshResult:
        environment = self.environment
        cache_dir = self.ensure_cache_dir()
        blacklist = load_blacklist(cache_dir)
        self._advance(RefreshState.BLACKLIST_LOADED)

        self._progress.check_cancelled()
        self._progress.report_text(f"Querying environment {environment.home_path}")
        search_path = extra_search_path(environment, cache_dir)
        listing = self._lister.list_binaries(environment, search_path)
        self._advance(RefreshState.LISTED)

        bundle = None
        if self._bundle_provider is not None:
            bundle = self._bundle_provider.find_bundle(environment, listing.generator_version)
        context = RefreshContext(
            environment=environment,
            cache_dir=cache_dir,
            generator=self._generator,
            generator_version=listing.generator_version,
            policy=VersionPolicy.resolve(
                listing.generator_version,
                rules=self._version_rules,
                cached=cached_policy,
            ),
            blacklist=blacklist,
            extra_search_path=search_path,
            bundle=bundle,
            progress=self._progress,
        )

        builtins_path = cache_dir / builtins_file_name(environment)
        old_header = read_stub_header(builtins_path)
        old_or_nonexisting = old_header is None or old_header.generator_version == 0
        bootstrap = BootstrapOutcome()
        if old_or_nonexisting:
            if migration_flag is not None and not migration_flag.notified:
                migration_flag.notified = True
                self._notifier.converting_old_stubs(environment)
            bootstrap = bootstrap_cache(
                context,
                listing.modules,
                lister=self._lister,
                cache_root=self.cache_root,
            )
            self._advance(RefreshState.BOOTSTRAPPED)

        builtins_regenerated = self._update_builtins(context, builtins_path)
        self._advance(RefreshState.BUILTIN_CHECKED)

        report = GenerationReport()
        if listing.modules:
            self._progress.check_cancelled()
            self._progress.report_text(f"Updating stubs of {environment.home_path}")
            report = GenerationDriver(context).update_modules(listing.modules)
        persist_blacklist(
            cache_dir,
            blacklist_from_failures(report.failures, generator_version=listing.generator_version),
        )
        self._advance(RefreshState.MODULES_UPDATED)

        removed: list[Path] = []
        if not old_or_nonexisting:
            self._progress.check_cancelled()
            self._progress.report_text(f"Cleaning up stubs of {environment.home_path}")
            removed = clean_orphans(cache_dir, generator=self._generator, progress=self._progress)
            self._advance(RefreshState.CLEANED)

        result = RefreshResult(
            policy=context.policy,
            failures=tuple(report.failures),
            migrated=old_or_nonexisting,
            bootstrap=bootstrap,
            builtins_regenerated=builtins_regenerated,
            generated=tuple(report.generated + report.copied_from_bundle),
            removed=tuple(str(path) for path in removed),
        )
        if result.fresh_failed_modules and not old_or_nonexisting:
            self._notifier.generation_failed(environment, result.fresh_failed_modules)
        return result

    def _update_builtins(self, context: RefreshContext, builtins_path: Path) -> bool:
        header = read_stub_header(builtins_path)
        if header is not None and header.generator_version >= context.policy.builtin_version:
            return False
        self._progress.check_cancelled()
        self._progress.report_text(f"Updating built-in stubs of {context.environment.home_path}")
        self._generator.generate_builtins(context.environment)
        return True


__all__ = [
    "RefreshResult",
    "RefreshState",
    "StubCacheRefresher",
]
