"""Stub format versions and the required-version policy.

Stub format versions are written as ``"<major>.<minor>"`` strings and compared
as integers (``major * 1000 + minor``). They are format-version numbers, not
semantic versions.

The policy answers "which stub version is good enough for this module". It is
built from the generator version observed in the current run and a small table
of per-module rules shipped next to the generator (``required_gen_version``)::

    # comment
    (default) 1.145
    (built-in) 1.140
    PyQt4.* 1.108
    _sqlite3 1.100
"""

from __future__ import annotations

import logging
import re
from fnmatch import fnmatchcase
from pathlib import Path

import msgspec

from serde_msgspec import StructBaseStrict

logger = logging.getLogger(__name__)

DEFAULT_RULE_KEY = "(default)"
BUILTIN_RULE_KEY = "(built-in)"
VERSION_RULES_FILE_NAME = "required_gen_version"

_VERSION_STRING = re.compile(r"^(\d+)\.(\d+)$")
_RULE_LINE = re.compile(r"^(\S+)\s+(\S+)\s*$")
_MINOR_LIMIT = 1000


def from_version_string(value: str) -> int:
    """Decode a ``major.minor`` version string.

    Parameters
    ----------
    value
        Version string such as ``"1.145"``.

    Returns
    -------
    int
        Integer version, or 0 when the string is not a version.
    """
    match = _VERSION_STRING.match(value.strip())
    if match is None:
        return 0
    return int(match.group(1)) * _MINOR_LIMIT + int(match.group(2))


def to_version_string(version: int) -> str:
    """Encode an integer version as a ``major.minor`` string.

    Returns
    -------
    str
        Version string.
    """
    return f"{version // _MINOR_LIMIT}.{version % _MINOR_LIMIT}"


class VersionRule(StructBaseStrict, frozen=True):
    """Minimum stub version for modules whose name matches a glob."""

    pattern: str
    version: int

    def matches(self, module_name: str) -> bool:
        """Return whether the rule applies to a module name.

        Returns
        -------
        bool
            True when the module name matches the rule pattern.
        """
        return fnmatchcase(module_name, self.pattern)


class VersionRuleTable(StructBaseStrict, frozen=True):
    """Ordered rule table with optional default and built-in minimums."""

    default_version: int | None = None
    builtin_version: int | None = None
    rules: tuple[VersionRule, ...] = ()


def parse_version_rules(text: str, *, source: str = "<string>") -> VersionRuleTable:
    """Parse the text of a required-version rule file.

    Parameters
    ----------
    text
        Rule file contents.
    source
        Label used when logging malformed lines.

    Returns
    -------
    VersionRuleTable
        Parsed rule table; malformed lines are skipped.
    """
    default_version: int | None = None
    builtin_version: int | None = None
    rules: list[VersionRule] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _RULE_LINE.match(line)
        version = from_version_string(match.group(2)) if match else 0
        if match is None or version <= 0:
            logger.warning("In version rules at %s:%d strange line %r", source, lineno, raw)
            continue
        key = match.group(1)
        if key == DEFAULT_RULE_KEY:
            default_version = version
        elif key == BUILTIN_RULE_KEY:
            builtin_version = version
        else:
            rules.append(VersionRule(pattern=key, version=version))
    return VersionRuleTable(
        default_version=default_version,
        builtin_version=builtin_version,
        rules=tuple(rules),
    )


def load_version_rules(path: Path) -> VersionRuleTable:
    """Load a required-version rule file.

    Returns
    -------
    VersionRuleTable
        Parsed rule table, or an empty table when the file can't be read.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to read version rules at %s: %s", path, exc)
        return VersionRuleTable()
    return parse_version_rules(text, source=str(path))


class VersionPolicy(StructBaseStrict, frozen=True):
    """Required stub versions for one refresh run.

    No requirement ever exceeds ``generator_version``, so requirements never
    decrease as the generator version grows.
    """

    generator_version: int
    table: VersionRuleTable = msgspec.field(default_factory=VersionRuleTable)

    @classmethod
    def resolve(
        cls,
        generator_version: int,
        *,
        rules: VersionRuleTable | None = None,
        cached: VersionPolicy | None = None,
    ) -> VersionPolicy:
        """Return the policy for a newly observed generator version.

        Parameters
        ----------
        generator_version
            Generator version reported by the lister; 0 or less when unknown.
        rules
            Rule table shipped with the generator, if any.
        cached
            Policy from a previous run, if any.

        Returns
        -------
        VersionPolicy
            The cached policy when the new version is unknown, otherwise a
            policy for the new version.
        """
        if generator_version <= 0 and cached is not None:
            return cached
        table = rules
        if table is None:
            table = cached.table if cached is not None else VersionRuleTable()
        return cls(generator_version=max(generator_version, 0), table=table)

    @property
    def default_version(self) -> int:
        """Return the requirement for modules no rule matches.

        Returns
        -------
        int
            Default required version.
        """
        return self._clamp(self.table.default_version)

    @property
    def builtin_version(self) -> int:
        """Return the requirement for the built-in namespace stub.

        Returns
        -------
        int
            Required built-in stub version.
        """
        if self.table.builtin_version is None:
            return self.default_version
        return self._clamp(self.table.builtin_version)

    def required_version(self, module_name: str) -> int:
        """Return the minimum acceptable stub version for a module.

        Parameters
        ----------
        module_name
            Dotted module name.

        Returns
        -------
        int
            Required version; the first matching rule wins.
        """
        for rule in self.table.rules:
            if rule.matches(module_name):
                return self._clamp(rule.version)
        return self.default_version

    def _clamp(self, version: int | None) -> int:
        if version is None:
            return self.generator_version
        return min(version, self.generator_version)


__all__ = [
    "BUILTIN_RULE_KEY",
    "DEFAULT_RULE_KEY",
    "VERSION_RULES_FILE_NAME",
    "VersionPolicy",
    "VersionRule",
    "VersionRuleTable",
    "from_version_string",
    "load_version_rules",
    "parse_version_rules",
    "to_version_string",
]
