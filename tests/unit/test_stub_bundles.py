"""Unit tests for pregenerated stub bundles."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from stubcache.bundles import (
    DirectoryBundleProvider,
    PregeneratedBundle,
    bundle_file_name,
    copy_bundled_stub,
    extract_bundle,
    runtime_version_tag,
)
from stubcache.models import RuntimeEnvironment

GENERATOR_VERSION = 1145
ENVIRONMENT = RuntimeEnvironment(home_path="/usr/bin/python3", version_string="Python 3.12.1")


def _write_bundle(path: Path, members: dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w") as archive:
        for name, text in members.items():
            archive.writestr(name, text)
    return path


def _bundle(path: Path) -> PregeneratedBundle:
    return PregeneratedBundle(
        path=path,
        platform_tag="nix",
        generator_version=GENERATOR_VERSION,
        runtime_version="python-3.12.1",
    )


def test_bundle_file_names() -> None:
    """Bundle names carry platform, generator and runtime versions."""
    assert runtime_version_tag("Python 3.12.1") == "python-3.12.1"
    assert bundle_file_name("nix", GENERATOR_VERSION, "python-3.12.1") == (
        "stubs-nix-1145-python-3.12.1.zip"
    )
    assert bundle_file_name("mac-14.2", GENERATOR_VERSION, "python-3.12.1") == (
        "stubs-mac-1145-14.2-python-3.12.1.zip"
    )


def test_find_bundle(tmp_path: Path) -> None:
    """The provider resolves an existing archive for the environment."""
    archive = _write_bundle(tmp_path / "stubs-nix-1145-python-3.12.1.zip", {"a.py": ""})
    provider = DirectoryBundleProvider(tmp_path, platform_tag="nix")
    bundle = provider.find_bundle(ENVIRONMENT, GENERATOR_VERSION)
    assert bundle == _bundle(archive)
    assert provider.find_bundle(ENVIRONMENT, GENERATOR_VERSION + 1) is None


def test_no_bundle_for_remote_or_unknown_runtime(tmp_path: Path) -> None:
    """Remote environments and unknown versions never get a bundle."""
    _write_bundle(tmp_path / "stubs-nix-1145-python-3.12.1.zip", {"a.py": ""})
    provider = DirectoryBundleProvider(tmp_path, platform_tag="nix")
    remote = RuntimeEnvironment(home_path="ssh://host/python", version_string="Python 3.12.1", remote=True)
    assert provider.find_bundle(remote, GENERATOR_VERSION) is None
    assert provider.find_bundle(RuntimeEnvironment(home_path="p"), GENERATOR_VERSION) is None


def test_extract_bundle(tmp_path: Path) -> None:
    """Whole bundles unpack into the cache directory."""
    archive = _write_bundle(tmp_path / "b.zip", {"a.py": "# a\n", "pkg/__init__.py": ""})
    cache_dir = tmp_path / "cache"
    assert extract_bundle(_bundle(archive), cache_dir)
    assert (cache_dir / "a.py").read_text() == "# a\n"
    assert (cache_dir / "pkg" / "__init__.py").exists()


def test_extract_corrupt_bundle(tmp_path: Path) -> None:
    """Corrupt archives are reported as not extracted."""
    archive = tmp_path / "b.zip"
    archive.write_bytes(b"not a zip")
    assert not extract_bundle(_bundle(archive), tmp_path / "cache")


def test_copy_bundled_stub(tmp_path: Path) -> None:
    """Single stubs are copied as module or package files."""
    archive = _write_bundle(
        tmp_path / "b.zip",
        {"a/b/c.py": "# c\n", "pkg/sub/__init__.py": "# sub\n"},
    )
    cache_dir = tmp_path / "cache"
    assert copy_bundled_stub(_bundle(archive), "a.b.c", cache_dir)
    assert (cache_dir / "a" / "b" / "c.py").read_text() == "# c\n"
    assert copy_bundled_stub(_bundle(archive), "pkg.sub", cache_dir)
    assert (cache_dir / "pkg" / "sub" / "__init__.py").read_text() == "# sub\n"
    assert not copy_bundled_stub(_bundle(archive), "missing", cache_dir)


def test_bundle_listing_read_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Lookups of absent modules reuse the bundle's member listing."""
    archive = _write_bundle(tmp_path / "bundle.zip", {"present.py": "x = 1\n"})
    opened: list[object] = []
    real_zipfile = zipfile.ZipFile

    def _counting_zipfile(*args: object, **kwargs: object) -> zipfile.ZipFile:
        opened.append(args[0])
        return real_zipfile(*args, **kwargs)

    monkeypatch.setattr(zipfile, "ZipFile", _counting_zipfile)
    bundle = _bundle(archive)
    cache_dir = tmp_path / "cache"
    assert not copy_bundled_stub(bundle, "missing_one", cache_dir)
    assert not copy_bundled_stub(bundle, "missing_two", cache_dir)
    assert len(opened) == 1
    assert copy_bundled_stub(bundle, "present", cache_dir)
    assert len(opened) == 2
    assert (cache_dir / "present.py").read_text() == "x = 1\n"
