"""Provenance header embedded in generated stub files.

Lines 1 and 2 of a stub hold the encoding and module-name declarations. The
provenance follows in one of two formats:

``V1`` (legacy, whitespace-unsafe)::

    # from /usr/lib/python3/foo.so by generator 1.145

``V2``::

    # from /path with spaces/foo.so
    # by generator 1.145
"""

from __future__ import annotations

import re
from enum import StrEnum
from itertools import islice
from pathlib import Path

from serde_msgspec import StructBaseStrict
from stubcache.versions import from_version_string, to_version_string

_SKIPPED_LINES = 2

_VERSION_LINE_V1 = re.compile(r"# from (\S+) by generator (\S+)\s*")
_FROM_LINE_V2 = re.compile(r"# from (.*)")
_BY_LINE_V2 = re.compile(r"# by generator (.*)")


class HeaderFormat(StrEnum):
    """Provenance header layouts."""

    V1 = "v1"
    V2 = "v2"


class StubHeader(StructBaseStrict, frozen=True):
    """Binary origin and generator version recorded in a stub."""

    origin: str
    generator_version: int
    header_format: HeaderFormat = HeaderFormat.V2


def _decode_v1(line: str) -> StubHeader | None:
    match = _VERSION_LINE_V1.fullmatch(line)
    if match is None:
        return None
    return StubHeader(
        origin=match.group(1),
        generator_version=from_version_string(match.group(2)),
        header_format=HeaderFormat.V1,
    )


def _decode_v2(line: str, next_line: str | None) -> StubHeader | None:
    from_match = _FROM_LINE_V2.fullmatch(line)
    if from_match is None or next_line is None:
        return None
    by_match = _BY_LINE_V2.fullmatch(next_line)
    if by_match is None:
        return None
    return StubHeader(
        origin=from_match.group(1),
        generator_version=from_version_string(by_match.group(1)),
        header_format=HeaderFormat.V2,
    )


def decode_stub_header(lines: list[str]) -> StubHeader | None:
    """Decode a provenance header from the leading lines of a stub.

    Parameters
    ----------
    lines
        Leading lines of the stub without line terminators.

    Returns
    -------
    StubHeader | None
        Decoded header, or None when neither format matches.
    """
    if len(lines) <= _SKIPPED_LINES:
        return None
    line = lines[_SKIPPED_LINES]
    header = _decode_v1(line)
    if header is not None:
        return header
    next_line = lines[_SKIPPED_LINES + 1] if len(lines) > _SKIPPED_LINES + 1 else None
    return _decode_v2(line, next_line)


def read_stub_header(path: Path) -> StubHeader | None:
    """Read the provenance header of a stub file.

    Parameters
    ----------
    path
        Stub file path.

    Returns
    -------
    StubHeader | None
        Header when present; None when the file is missing, unreadable or
        carries no recognizable header.
    """
    try:
        with path.open(encoding="utf-8", errors="surrogateescape") as handle:
            lines = [line.rstrip("\r\n") for line in islice(handle, _SKIPPED_LINES + 2)]
    except OSError:
        return None
    return decode_stub_header(lines)


def render_stub_header(
    module_name: str,
    header: StubHeader,
    *,
    encoding: str = "utf-8",
) -> str:
    """Render the leading lines of a stub for a header.

    Parameters
    ----------
    module_name
        Dotted module name declared on line 2.
    header
        Provenance to record.
    encoding
        Encoding declared on line 1.

    Returns
    -------
    str
        Header text ending with a newline.
    """
    version = to_version_string(header.generator_version)
    lines = [f"# encoding: {encoding}", f"# module {module_name}"]
    if header.header_format is HeaderFormat.V1:
        lines.append(f"# from {header.origin} by generator {version}")
    else:
        lines.extend((f"# from {header.origin}", f"# by generator {version}"))
    return "\n".join(lines) + "\n"


__all__ = [
    "HeaderFormat",
    "StubHeader",
    "decode_stub_header",
    "read_stub_header",
    "render_stub_header",
]
