"""Lister and generator backed by an external generator script.

The script runs under the target interpreter. Listing prints the generator
version on the first line, then one tab-separated
``name, path, byte size, mtime seconds`` record per binary module.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from pathlib import Path

import msgspec

from serde_msgspec import StructBaseCompat, loads_json
from stubcache.errors import GeneratorCommandError
from stubcache.models import BinaryListing, BinaryModule, RuntimeEnvironment
from stubcache.versions import from_version_string
from utils.env_utils import env_float

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_TIMEOUT_S = 600.0
DEFAULT_PROBE_TIMEOUT_S = 60.0
_LISTING_FIELDS = 4

_PROBE_SOURCE = (
    "import json, platform, sys; "
    "print(json.dumps({'version': 'Python ' + platform.python_version(), "
    "'path': [p for p in sys.path if p]}))"
)


class EnvironmentProbe(StructBaseCompat, frozen=True):
    """Interpreter facts reported by the probe snippet."""

    version: str
    path: tuple[str, ...] = ()


def parse_listing(output: str) -> BinaryListing:
    """Parse the output of a listing run.

    Parameters
    ----------
    output
        Standard output of the generator's listing mode.

    Returns
    -------
    BinaryListing
        Generator version and modules; malformed records are skipped.
    """
    lines = output.splitlines()
    if not lines:
        return BinaryListing(generator_version=0)
    generator_version = from_version_string(lines[0])
    modules: dict[str, BinaryModule] = {}
    for line in lines[1:]:
        if not line.strip():
            continue
        fields = line.split("\t")
        if len(fields) != _LISTING_FIELDS:
            logger.warning("Unexpected binary listing line %r", line)
            continue
        name, path, length, mtime = fields
        try:
            module = BinaryModule(
                name=name,
                origin_path=path,
                byte_size=int(length),
                modified_at_millis=int(float(mtime) * 1000),
            )
        except ValueError:
            logger.warning("Unexpected binary listing line %r", line)
            continue
        modules[name] = module
    return BinaryListing(generator_version=generator_version, modules=modules)


class CommandStubGenerator:
    """Run the generator script for one interpreter and cache directory.

    Parameters
    ----------
    interpreter
        Interpreter executing the generator script.
    script
        Path of the generator script.
    cache_dir
        Stub cache directory written by the script.
    timeout_s
        Time limit for a single generation.
    """

    def __init__(
        self,
        interpreter: str,
        script: Path,
        cache_dir: Path,
        *,
        timeout_s: float = DEFAULT_GENERATION_TIMEOUT_S,
    ) -> None:
        self.interpreter = interpreter
        self.script = script
        self.cache_dir = cache_dir
        self.timeout_s = timeout_s

    def _command(self, args: Sequence[str], *, interpreter: str | None = None) -> list[str]:
        return [interpreter or self.interpreter, str(self.script), *args]

    def list_binaries(
        self,
        environment: RuntimeEnvironment,
        extra_search_path: str,
    ) -> BinaryListing:
        """List the binary modules of an environment.

        Returns
        -------
        BinaryListing
            Generator version and modules.

        Raises
        ------
        GeneratorCommandError
            Raised when the listing run fails.
        """
        cmd = self._command(["-L", "-s", extra_search_path], interpreter=environment.home_path)
        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                errors="surrogateescape",
                timeout=self.timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GeneratorCommandError(-1, str(exc)) from exc
        if result.returncode != 0:
            raise GeneratorCommandError(result.returncode, result.stderr)
        return parse_listing(result.stdout)

    def generate(
        self,
        module_name: str,
        origin_path: str | None,
        extra_search_path: str,
        environment_root: str,
    ) -> bool:
        """Generate one stub.

        Returns
        -------
        bool
            True when the script exited successfully.
        """
        args = ["-d", str(self.cache_dir), "-s", extra_search_path, module_name]
        if origin_path is not None:
            args.append(origin_path)
        return self._run(self._command(args, interpreter=environment_root), label=module_name)

    def generate_builtins(self, environment: RuntimeEnvironment) -> None:
        """Generate the built-in namespace stub."""
        cmd = self._command(["-d", str(self.cache_dir), "-b"], interpreter=environment.home_path)
        self._run(cmd, label="built-ins")

    def exists(self, origin_path: str) -> bool:
        """Return whether a binary origin path exists locally.

        Returns
        -------
        bool
            True when the path exists.
        """
        return os.path.exists(origin_path)

    def delete_or_log(self, path: Path) -> bool:
        """Delete a stub file or an empty directory.

        Returns
        -------
        bool
            True when deleted; failures are logged.
        """
        try:
            if path.is_dir():
                path.rmdir()
            else:
                path.unlink()
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", path, exc)
            return False
        return True

    def finalize(self) -> None:
        """Nothing to flush for local generator processes."""

    def _run(self, cmd: list[str], *, label: str) -> bool:
        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Stub generation for %s timed out after %.0fs", label, self.timeout_s)
            return False
        except OSError as exc:
            logger.warning("Stub generation for %s could not start: %s", label, exc)
            return False
        if result.returncode != 0:
            logger.info(
                "Stub generation for %s failed rc=%s: %s",
                label,
                result.returncode,
                result.stderr.strip(),
            )
            return False
        return True


def probe_environment(
    interpreter: str,
    *,
    base_interpreter: str | None = None,
    timeout_s: float | None = None,
) -> RuntimeEnvironment:
    """Describe an interpreter by running it.

    Parameters
    ----------
    interpreter
        Interpreter executable path.
    base_interpreter
        Interpreter of the base environment for derived environments.
    timeout_s
        Time limit for the probe; defaults to ``$STUBCACHE_PROBE_TIMEOUT_S`` or 60s.

    Returns
    -------
    RuntimeEnvironment
        Environment with version string and class roots filled in.

    Raises
    ------
    GeneratorCommandError
        Raised when the interpreter can't be probed.
    """
    if timeout_s is None:
        timeout_s = env_float("STUBCACHE_PROBE_TIMEOUT_S", default=DEFAULT_PROBE_TIMEOUT_S)
    try:
        result = subprocess.run(
            [interpreter, "-c", _PROBE_SOURCE],
            check=False,
            capture_output=True,
            text=True,
            errors="surrogateescape",
            timeout=timeout_s,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise GeneratorCommandError(-1, str(exc)) from exc
    if result.returncode != 0:
        raise GeneratorCommandError(result.returncode, result.stderr)
    try:
        probe = loads_json(result.stdout.strip(), target_type=EnvironmentProbe)
    except msgspec.DecodeError as exc:
        raise GeneratorCommandError(0, f"Unexpected probe output: {exc}") from exc
    base = None
    if base_interpreter is not None:
        base = probe_environment(base_interpreter, timeout_s=timeout_s)
    return RuntimeEnvironment(
        home_path=interpreter,
        version_string=probe.version,
        class_roots=probe.path,
        base=base,
    )


__all__ = [
    "CommandStubGenerator",
    "EnvironmentProbe",
    "parse_listing",
    "probe_environment",
]
