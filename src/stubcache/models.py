"""Records exchanged between the refresher and its collaborators."""

from __future__ import annotations

from collections.abc import Mapping

import msgspec

from serde_msgspec import StructBaseStrict

BLACKLIST_FILE_NAME = ".blacklist"
BUILTIN_ORIGIN = "(built-in)"
INIT_FILE_NAME = "__init__.py"


class BinaryModule(StructBaseStrict, frozen=True):
    """Binary module reported by the lister for one refresh run."""

    name: str
    origin_path: str
    byte_size: int
    modified_at_millis: int


class BinaryListing(StructBaseStrict, frozen=True):
    """Generator version and binary modules of an environment."""

    generator_version: int
    modules: Mapping[str, BinaryModule] = msgspec.field(default_factory=dict)


class RuntimeEnvironment(StructBaseStrict, frozen=True):
    """Interpreter environment whose binary modules get stubs.

    ``base`` is set for derived environments (virtualenvs) that share the
    installed binaries of another environment.
    """

    home_path: str
    version_string: str | None = None
    class_roots: tuple[str, ...] = ()
    base: RuntimeEnvironment | None = None
    remote: bool = False

    @property
    def is_python2(self) -> bool:
        """Return whether the environment runs a 2.x interpreter.

        Returns
        -------
        bool
            True for 2.x version strings.
        """
        if not self.version_string:
            return False
        tokens = self.version_string.split()
        version = tokens[-1] if tokens else ""
        return version.startswith("2.")


class UpdateResult(StructBaseStrict, frozen=True):
    """Module that is still failing after a refresh.

    ``fresh`` is True when generation was attempted in this run and failed;
    False when the attempt was suppressed by the blacklist.
    """

    module_name: str
    origin_path: str
    modified_at_millis: int
    fresh: bool


__all__ = [
    "BLACKLIST_FILE_NAME",
    "BUILTIN_ORIGIN",
    "INIT_FILE_NAME",
    "BinaryListing",
    "BinaryModule",
    "RuntimeEnvironment",
    "UpdateResult",
]
