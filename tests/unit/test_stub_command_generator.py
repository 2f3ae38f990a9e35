"""Tests for the subprocess-backed lister and generator."""

from __future__ import annotations

import os
import sys
import textwrap
from pathlib import Path

import pytest

from stubcache.command_generator import CommandStubGenerator, parse_listing, probe_environment
from stubcache.errors import GeneratorCommandError
from stubcache.headers import read_stub_header
from stubcache.models import BinaryModule, RuntimeEnvironment

GENERATOR_VERSION = 1145

_SCRIPT = textwrap.dedent(
    """
    import os
    import sys

    args = sys.argv[1:]
    if args[0] == "-L":
        print("1.145")
        print("\\t".join(["_ssl", "/lib/_ssl.so", "10", "1600000000.5"]))
        sys.stdout.flush()
        sys.stdout.buffer.write(b"caf\\t/lib/caf\\xe9.so\\t4\\t1600000000\\n")
        sys.exit(0)
    cache_dir = args[1]
    if "-b" in args:
        name, origin = "builtins", "(built-in)"
    else:
        name, origin = args[4], args[5]
    if name == "broken":
        sys.stderr.write("boom")
        sys.exit(3)
    if name == "latin":
        sys.stderr.flush()
        sys.stderr.buffer.write(b"caf\\xe9")
        sys.exit(1)
    path = os.path.join(cache_dir, *name.split(".")) + ".py"
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as handle:
        handle.write(f"# encoding: utf-8\\n# module {name}\\n# from {origin}\\n# by generator 1.145\\n")
    """
)


def _generator(tmp_path: Path) -> CommandStubGenerator:
    script = tmp_path / "generator.py"
    script.write_text(_SCRIPT)
    return CommandStubGenerator(sys.executable, script, tmp_path / "cache")


def test_parse_listing() -> None:
    """Listing output decodes the version and tab-separated records."""
    listing = parse_listing("1.145\n_ssl\t/lib/_ssl.so\t10\t1600000000.5\nbad line\n\n")
    assert listing.generator_version == GENERATOR_VERSION
    assert listing.modules == {
        "_ssl": BinaryModule(
            name="_ssl",
            origin_path="/lib/_ssl.so",
            byte_size=10,
            modified_at_millis=1_600_000_000_500,
        )
    }


def test_parse_listing_skips_bad_numbers() -> None:
    """Records with non-numeric size or mtime are skipped."""
    listing = parse_listing("1.145\nx\t/lib/x.so\tten\t1\n")
    assert listing.modules == {}
    assert parse_listing("").generator_version == 0


def test_list_binaries_runs_script(tmp_path: Path) -> None:
    """The listing mode runs under the environment interpreter."""
    generator = _generator(tmp_path)
    environment = RuntimeEnvironment(home_path=sys.executable)
    listing = generator.list_binaries(environment, "")
    assert listing.generator_version == GENERATOR_VERSION
    assert list(listing.modules) == ["_ssl", "caf"]


def test_list_binaries_keeps_undecodable_paths(tmp_path: Path) -> None:
    """Origin paths that are not valid UTF-8 keep their original bytes."""
    generator = _generator(tmp_path)
    listing = generator.list_binaries(RuntimeEnvironment(home_path=sys.executable), "")
    assert os.fsencode(listing.modules["caf"].origin_path) == b"/lib/caf\xe9.so"


def test_list_binaries_failure(tmp_path: Path) -> None:
    """A missing interpreter surfaces as a generator command error."""
    generator = _generator(tmp_path)
    environment = RuntimeEnvironment(home_path=str(tmp_path / "no-python"))
    with pytest.raises(GeneratorCommandError):
        generator.list_binaries(environment, "")


def test_generate_writes_stub(tmp_path: Path) -> None:
    """Successful runs report success and leave a stub behind."""
    generator = _generator(tmp_path)
    assert generator.generate("pkg.mod", "/lib/mod.so", "", sys.executable)
    header = read_stub_header(tmp_path / "cache" / "pkg" / "mod.py")
    assert header is not None
    assert header.origin == "/lib/mod.so"
    assert not generator.generate("broken", "/lib/broken.so", "", sys.executable)


def test_generate_survives_undecodable_stderr(tmp_path: Path) -> None:
    """A failing run with non-UTF-8 error output is an ordinary failure."""
    generator = _generator(tmp_path)
    assert not generator.generate("latin", "/lib/latin.so", "", sys.executable)
    assert generator.generate("pkg.after", "/lib/after.so", "", sys.executable)


def test_generate_builtins(tmp_path: Path) -> None:
    """The built-in stub is written with the built-in origin."""
    generator = _generator(tmp_path)
    generator.generate_builtins(RuntimeEnvironment(home_path=sys.executable))
    header = read_stub_header(tmp_path / "cache" / "builtins.py")
    assert header is not None
    assert header.origin == "(built-in)"


def test_delete_or_log(tmp_path: Path) -> None:
    """Files and empty directories are deleted; failures return False."""
    generator = _generator(tmp_path)
    target = tmp_path / "stub.py"
    target.write_text("")
    assert generator.delete_or_log(target)
    assert not target.exists()
    assert not generator.delete_or_log(target)
    assert generator.exists(str(tmp_path / "generator.py"))


def test_probe_environment() -> None:
    """Probing the running interpreter reports its version and path."""
    environment = probe_environment(sys.executable)
    assert environment.home_path == sys.executable
    assert environment.version_string is not None
    assert environment.version_string.startswith("Python 3.")
    assert not environment.is_python2
