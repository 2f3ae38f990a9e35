"""Unit tests for the serial generation driver."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from stubcache.bundles import PregeneratedBundle
from stubcache.context import RefreshContext
from stubcache.errors import RefreshCancelledError
from stubcache.generation import GenerationDriver
from stubcache.headers import StubHeader, render_stub_header
from stubcache.models import RuntimeEnvironment
from stubcache.versions import VersionPolicy
from tests.test_helpers.stub_fakes import FakeStubTool, RecordingProgress, make_binary

GENERATOR_VERSION = 1145
BINARY_MTIME_MS = 1_600_000_000_000


def _driver(
    tool: FakeStubTool,
    *,
    progress: RecordingProgress | None = None,
    bundle: PregeneratedBundle | None = None,
) -> GenerationDriver:
    context = RefreshContext(
        environment=RuntimeEnvironment(home_path="/usr/bin/python3"),
        cache_dir=tool.cache_dir,
        generator=tool,
        generator_version=tool.generator_version,
        policy=VersionPolicy.resolve(tool.generator_version),
        bundle=bundle,
        progress=progress or RecordingProgress(),
    )
    return GenerationDriver(context)


def test_modules_generated_in_name_order(tmp_path: Path) -> None:
    """Stale modules are generated one by one in lexicographic order."""
    tool = FakeStubTool(tmp_path / "cache", GENERATOR_VERSION)
    tool.add_modules(
        make_binary(tmp_path / "bin", name, modified_at_millis=BINARY_MTIME_MS)
        for name in ("zlib", "_ssl", "array")
    )
    progress = RecordingProgress()
    report = _driver(tool, progress=progress).update_modules(tool.modules)
    assert tool.generated == ["_ssl", "array", "zlib"]
    assert report.generated == ["_ssl", "array", "zlib"]
    assert report.failures == []
    assert progress.fractions == [0.0, pytest.approx(1 / 3), pytest.approx(2 / 3)]
    assert tool.finalized == 1


def test_failed_generation_is_reported_fresh(tmp_path: Path) -> None:
    """A failed generator run yields a fresh failure."""
    tool = FakeStubTool(tmp_path / "cache", GENERATOR_VERSION, failing={"b"})
    tool.add_modules(
        make_binary(tmp_path / "bin", name, modified_at_millis=BINARY_MTIME_MS)
        for name in ("a", "b")
    )
    report = _driver(tool).update_modules(tool.modules)
    assert [failure.module_name for failure in report.failures] == ["b"]
    assert report.fresh_failures == report.failures
    assert report.failures[0].origin_path == tool.modules["b"].origin_path
    assert report.failures[0].modified_at_millis == BINARY_MTIME_MS


def test_cancellation_between_modules(tmp_path: Path) -> None:
    """Cancellation stops before the next module and still finalizes."""
    tool = FakeStubTool(tmp_path / "cache", GENERATOR_VERSION)
    tool.add_modules(
        make_binary(tmp_path / "bin", name, modified_at_millis=BINARY_MTIME_MS)
        for name in ("a", "b", "c")
    )
    progress = RecordingProgress(cancel_after_checks=1)
    with pytest.raises(RefreshCancelledError):
        _driver(tool, progress=progress).update_modules(tool.modules)
    assert tool.generated == ["a"]
    assert tool.finalized == 1


def test_up_to_date_modules_are_skipped(tmp_path: Path) -> None:
    """A second pass over fresh stubs generates nothing."""
    tool = FakeStubTool(tmp_path / "cache", GENERATOR_VERSION)
    tool.add_modules([make_binary(tmp_path / "bin", "a", modified_at_millis=BINARY_MTIME_MS)])
    _driver(tool).update_modules(tool.modules)
    report = _driver(tool).update_modules(tool.modules)
    assert tool.generated == ["a"]
    assert report.generated == []


def test_bundled_stub_replaces_generation(tmp_path: Path) -> None:
    """A stale module found in the bundle is copied instead of generated."""
    tool = FakeStubTool(tmp_path / "cache", GENERATOR_VERSION)
    tool.add_modules(
        make_binary(tmp_path / "bin", name, modified_at_millis=BINARY_MTIME_MS)
        for name in ("a", "pkg", "z")
    )
    archive = tmp_path / "stubs-nix-1145-python-3.12.1.zip"
    with zipfile.ZipFile(archive, "w") as handle:
        handle.writestr("a.py", _bundled_stub("a", tool.modules["a"].origin_path))
        handle.writestr("pkg/__init__.py", _bundled_stub("pkg", tool.modules["pkg"].origin_path))
    bundle = PregeneratedBundle(
        path=archive,
        platform_tag="nix",
        generator_version=GENERATOR_VERSION,
        runtime_version="python-3.12.1",
    )
    report = _driver(tool, bundle=bundle).update_modules(tool.modules)
    assert report.copied_from_bundle == ["a", "pkg"]
    assert report.generated == ["z"]
    assert tool.generated == ["z"]
    assert report.failures == []
    assert (tool.cache_dir / "a.py").is_file()
    assert (tool.cache_dir / "pkg" / "__init__.py").is_file()


def _bundled_stub(name: str, origin: str) -> str:
    header = StubHeader(origin=origin, generator_version=GENERATOR_VERSION)
    return render_stub_header(name, header)
