"""Collaborator ports consumed by the stub cache refresher."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from stubcache.bundles import PregeneratedBundle
    from stubcache.models import BinaryListing, RuntimeEnvironment


class BinaryLister(Protocol):
    """Port listing the binary modules of an environment."""

    def list_binaries(
        self,
        environment: RuntimeEnvironment,
        extra_search_path: str,
    ) -> BinaryListing:
        """Return the generator version and binary modules of ``environment``."""
        ...


class StubGenerator(Protocol):
    """Port running the external stub generator for one cache directory."""

    def generate(
        self,
        module_name: str,
        origin_path: str | None,
        extra_search_path: str,
        environment_root: str,
    ) -> bool:
        """Generate one stub; ``origin_path`` is None for the built-in namespace."""
        ...

    def generate_builtins(self, environment: RuntimeEnvironment) -> None:
        """Generate the built-in namespace stub."""
        ...

    def exists(self, origin_path: str) -> bool:
        """Return whether a binary origin path still exists."""
        ...

    def delete_or_log(self, path: Path) -> bool:
        """Delete a stub file or empty directory, logging failures."""
        ...

    def finalize(self) -> None:
        """Flush and shut down the generator session."""
        ...


class BundleProvider(Protocol):
    """Port resolving pregenerated stub bundles."""

    def find_bundle(
        self,
        environment: RuntimeEnvironment,
        generator_version: int,
    ) -> PregeneratedBundle | None:
        """Return the bundle matching the environment, if one exists."""
        ...


class RefreshProgress(Protocol):
    """Progress and cancellation capability injected into a refresh."""

    def report_text(self, text: str) -> None:
        """Describe the step being executed."""
        ...

    def report_progress(self, fraction: float) -> None:
        """Report completion of the current step as a fraction in ``[0, 1]``."""
        ...

    def check_cancelled(self) -> None:
        """Raise ``RefreshCancelledError`` when cancellation was requested."""
        ...


class RefreshNotifier(Protocol):
    """User-facing notifications emitted by a refresh."""

    def converting_old_stubs(self, environment: RuntimeEnvironment) -> None:
        """Announce that a legacy or missing cache is being rebuilt."""
        ...

    def generation_failed(
        self,
        environment: RuntimeEnvironment,
        module_names: Sequence[str],
    ) -> None:
        """Report modules whose stubs could not be generated."""
        ...


class NullProgress:
    """Progress capability that reports nothing and never cancels."""

    def report_text(self, text: str) -> None:
        """Ignore step descriptions."""

    def report_progress(self, fraction: float) -> None:
        """Ignore progress fractions."""

    def check_cancelled(self) -> None:
        """Never cancel."""


class NullNotifier:
    """Notifier that drops all notifications."""

    def converting_old_stubs(self, environment: RuntimeEnvironment) -> None:
        """Ignore the conversion notice."""

    def generation_failed(
        self,
        environment: RuntimeEnvironment,
        module_names: Sequence[str],
    ) -> None:
        """Ignore failure reports."""


@dataclass
class MigrationFlag:
    """Shared flag so a conversion notice is emitted once per session."""

    notified: bool = False


__all__ = [
    "BinaryLister",
    "BundleProvider",
    "MigrationFlag",
    "NullNotifier",
    "NullProgress",
    "RefreshNotifier",
    "RefreshProgress",
    "StubGenerator",
]
