"""Scenario tests for the stub cache refresher."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from stubcache.blacklist import BlacklistEntry, blacklist_path, load_blacklist
from stubcache.bundles import DirectoryBundleProvider, bundle_file_name
from stubcache.errors import CacheSetupError, RefreshCancelledError, RefresherReusedError
from stubcache.headers import read_stub_header
from stubcache.models import BUILTIN_ORIGIN, RuntimeEnvironment
from stubcache.ports import MigrationFlag
from stubcache.refresher import RefreshState, StubCacheRefresher
from stubcache.versions import VersionPolicy
from tests.test_helpers.stub_fakes import (
    FakeStubTool,
    RecordingNotifier,
    RecordingProgress,
    make_binary,
    write_stub,
)

GENERATOR_VERSION = 1145
NEXT_GENERATOR_VERSION = 1146
BINARY_MTIME_MS = 1_600_000_000_000
HOME = "/usr/bin/python3"
ENVIRONMENT = RuntimeEnvironment(home_path=HOME, version_string="Python 3.12.1")


def _tool(tmp_path: Path, *, failing: set[str] | None = None) -> FakeStubTool:
    tool = FakeStubTool(tmp_path / "cache", GENERATOR_VERSION, failing=failing or set())
    tool.add_modules(
        make_binary(tmp_path / "bin", name, modified_at_millis=BINARY_MTIME_MS)
        for name in ("a", "b")
    )
    return tool


def _refresher(
    tool: FakeStubTool,
    *,
    notifier: RecordingNotifier | None = None,
    progress: RecordingProgress | None = None,
    bundle_provider: DirectoryBundleProvider | None = None,
) -> StubCacheRefresher:
    return StubCacheRefresher(
        ENVIRONMENT,
        lister=tool,
        generator=tool,
        cache_root=tool.cache_dir.parent / "root",
        cache_dir=tool.cache_dir,
        bundle_provider=bundle_provider,
        progress=progress,
        notifier=notifier,
    )


def test_first_refresh_builds_everything(tmp_path: Path) -> None:
    """A fresh cache gets the built-in stub and one stub per binary."""
    tool = _tool(tmp_path)
    refresher = _refresher(tool)
    result = refresher.refresh()
    assert refresher.state is RefreshState.DONE
    assert result.migrated
    assert result.builtins_regenerated
    assert result.failures == ()
    assert sorted(result.generated) == ["a", "b"]
    for name in ("a", "b"):
        header = read_stub_header(tool.cache_dir / f"{name}.py")
        assert header is not None
        assert header.generator_version == GENERATOR_VERSION
        assert header.origin == tool.modules[name].origin_path
    builtins_header = read_stub_header(tool.cache_dir / "builtins.py")
    assert builtins_header is not None
    assert builtins_header.origin == BUILTIN_ORIGIN
    assert not blacklist_path(tool.cache_dir).exists()


def test_second_refresh_is_idempotent(tmp_path: Path) -> None:
    """A refresh right after a successful one generates nothing."""
    tool = _tool(tmp_path)
    _refresher(tool).refresh()
    tool.generated.clear()
    result = _refresher(tool).refresh()
    assert not result.migrated
    assert not result.builtins_regenerated
    assert result.generated == ()
    assert result.removed == ()
    assert tool.generated == []
    assert tool.builtins_generated == 1


def test_failing_module_is_blacklisted_then_suppressed(tmp_path: Path) -> None:
    """A failure is recorded and not retried until something changes."""
    tool = _tool(tmp_path, failing={"b"})
    first = _refresher(tool).refresh()
    assert first.fresh_failed_modules == ("b",)
    origin = tool.modules["b"].origin_path
    assert load_blacklist(tool.cache_dir) == {
        origin: BlacklistEntry(
            generator_version=GENERATOR_VERSION,
            binary_modified_at_millis=BINARY_MTIME_MS,
        )
    }

    tool.generated.clear()
    notifier = RecordingNotifier()
    second = _refresher(tool, notifier=notifier).refresh()
    assert tool.generated == []
    assert second.failed_modules == ("b",)
    assert second.fresh_failed_modules == ()
    assert notifier.failed == []
    assert origin in load_blacklist(tool.cache_dir)


def test_blacklisted_module_retried_after_generator_upgrade(tmp_path: Path) -> None:
    """A newer generator retries the failure and clears the blacklist on success."""
    tool = _tool(tmp_path, failing={"b"})
    _refresher(tool).refresh()
    tool.failing.clear()
    tool.generator_version = NEXT_GENERATOR_VERSION
    tool.generated.clear()
    result = _refresher(tool).refresh()
    assert sorted(tool.generated) == ["a", "b"]
    assert result.failures == ()
    assert result.policy.generator_version == NEXT_GENERATOR_VERSION
    assert not blacklist_path(tool.cache_dir).exists()


def test_generation_failure_notified_for_existing_cache(tmp_path: Path) -> None:
    """Fresh failures on an existing cache are reported to the notifier."""
    tool = _tool(tmp_path)
    _refresher(tool).refresh()
    added = make_binary(tmp_path / "bin", "c", modified_at_millis=BINARY_MTIME_MS)
    tool.add_modules([added])
    tool.failing.add("c")
    notifier = RecordingNotifier()
    result = _refresher(tool, notifier=notifier).refresh()
    assert result.fresh_failed_modules == ("c",)
    assert notifier.failed == [(HOME, ("c",))]


def test_migration_suppresses_failure_notice(tmp_path: Path) -> None:
    """Converting a missing cache announces once and reports no failures."""
    tool = _tool(tmp_path, failing={"a"})
    notifier = RecordingNotifier()
    flag = MigrationFlag()
    result = _refresher(tool, notifier=notifier).refresh(migration_flag=flag)
    assert flag.notified
    assert notifier.converted == [HOME]
    assert notifier.failed == []
    assert result.failed_modules == ("a",)

    other = FakeStubTool(tmp_path / "other-cache", GENERATOR_VERSION)
    _refresher(other, notifier=notifier).refresh(migration_flag=flag)
    assert notifier.converted == [HOME]


def test_legacy_builtins_header_triggers_migration(tmp_path: Path) -> None:
    """A version-0 built-in stub marks the cache as legacy and skips cleanup."""
    tool = _tool(tmp_path)
    write_stub(tool.cache_dir, "builtins", origin=BUILTIN_ORIGIN, generator_version=0)
    write_stub(tool.cache_dir, "orphan", origin=str(tmp_path / "missing.so"), generator_version=0)
    result = _refresher(tool).refresh()
    assert result.migrated
    assert result.builtins_regenerated
    assert result.removed == ()
    assert (tool.cache_dir / "orphan.py").exists()


def test_orphans_removed_on_existing_cache(tmp_path: Path) -> None:
    """Stubs of binaries that disappeared are removed on the next refresh."""
    tool = _tool(tmp_path)
    _refresher(tool).refresh()
    Path(tool.modules["b"].origin_path).unlink()
    del tool.modules["b"]
    result = _refresher(tool).refresh()
    assert result.removed == (str(tool.cache_dir / "b.py"),)
    assert not (tool.cache_dir / "b.py").exists()
    assert (tool.cache_dir / "a.py").exists()


def test_bundle_seeds_missing_cache(tmp_path: Path) -> None:
    """A matching bundle is unpacked before generation on a missing cache."""
    tool = _tool(tmp_path)
    bundle_dir = tmp_path / "bundles"
    bundle_dir.mkdir()
    archive = bundle_dir / bundle_file_name("nix", GENERATOR_VERSION, "python-3.12.1")
    stub_text = (
        "# encoding: utf-8\n# module a\n"
        f"# from {tool.modules['a'].origin_path}\n# by generator 1.145\n"
    )
    with zipfile.ZipFile(archive, "w") as handle:
        handle.writestr("a.py", stub_text)
    provider = DirectoryBundleProvider(bundle_dir, platform_tag="nix")
    result = _refresher(tool, bundle_provider=provider).refresh()
    assert result.bootstrap.bundle_extracted
    assert tool.generated == ["b"]


def test_refresher_is_single_use(tmp_path: Path) -> None:
    """Running a refresher twice is rejected."""
    refresher = _refresher(_tool(tmp_path))
    refresher.refresh()
    with pytest.raises(RefresherReusedError):
        refresher.refresh()


def test_cancellation_marks_error_state(tmp_path: Path) -> None:
    """Cancellation propagates and leaves the refresher in the error state."""
    tool = _tool(tmp_path)
    refresher = _refresher(tool, progress=RecordingProgress(cancel_after_checks=0))
    with pytest.raises(RefreshCancelledError):
        refresher.refresh()
    assert refresher.state is RefreshState.ERROR
    assert tool.generated == []


def test_unusable_cache_dir_raises_setup_error(tmp_path: Path) -> None:
    """A cache directory that can't be created is fatal."""
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    tool = FakeStubTool(blocker / "cache", GENERATOR_VERSION)
    refresher = _refresher(tool)
    with pytest.raises(CacheSetupError):
        refresher.refresh()
    assert refresher.state is RefreshState.ERROR


def test_unknown_generator_version_keeps_cached_policy(tmp_path: Path) -> None:
    """An unknown generator version reuses the policy of the previous run."""
    tool = _tool(tmp_path)
    cached = _refresher(tool).refresh().policy
    tool.generator_version = 0
    result = _refresher(tool).refresh(cached_policy=cached)
    assert result.policy == cached
    assert VersionPolicy.resolve(0, cached=cached) is cached


def test_undecodable_blacklist_entry_does_not_abort_refresh(tmp_path: Path) -> None:
    """A blacklist holding a non-UTF-8 path still lets the refresh complete."""
    tool = _tool(tmp_path)
    tool.cache_dir.mkdir(parents=True)
    blacklist_path(tool.cache_dir).write_bytes(b"/lib/caf\xe9.so = 1.145 100\n")
    refresher = _refresher(tool)
    result = refresher.refresh()
    assert refresher.state is RefreshState.DONE
    assert sorted(result.generated) == ["a", "b"]
    assert not blacklist_path(tool.cache_dir).exists()


def test_current_cache_skips_bundle_bootstrap(tmp_path: Path) -> None:
    """An up-to-date built-in stub keeps a matching bundle unused."""
    tool = _tool(tmp_path)
    _refresher(tool).refresh()
    bundle_dir = tmp_path / "bundles"
    bundle_dir.mkdir()
    archive = bundle_dir / bundle_file_name("nix", GENERATOR_VERSION, "python-3.12.1")
    with zipfile.ZipFile(archive, "w") as handle:
        handle.writestr("bundled_only.py", "# encoding: utf-8\n# module bundled_only\n")
    Path(tool.modules["b"].origin_path).unlink()
    del tool.modules["b"]
    provider = DirectoryBundleProvider(bundle_dir, platform_tag="nix")
    result = _refresher(tool, bundle_provider=provider).refresh()
    assert result.bootstrap.bundle_extracted is False
    assert result.migrated is False
    assert not (tool.cache_dir / "bundled_only.py").exists()
    assert result.removed == (str(tool.cache_dir / "b.py"),)
