#!/usr/bin/env python3
"""
Link Shard Validator - Record Parser

Splits the text of a file_N.cfg shard into [link_N] sections and classifies
individual body lines. Extraction never validates: every body line is kept
verbatim (blank and malformed lines included) so the record validator can
report on it.

Format:

    # comments before the first section are ignored
    [link_0]
    url="https://example.com"
    developer="Name"
    dev_link="https://example.com/dev"
    preview_image="https://example.com/img.png"
    [link_1]
    ...
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Literal

from lsv_validation_common import REQUIRED_FIELDS

# A record header: "[link_<digits>]" at the start of a line
LINK_HEADER_PATTERN = re.compile(r"^\[link_[0-9]+\]")

# Any line opening a bracketed section ends the current record body
SECTION_START = "["

_FIELD_ALTERNATION = "|".join(re.escape(name) for name in REQUIRED_FIELDS)

# Strict mode: field="value" with the whole value wrapped in double quotes
STRICT_FIELD_PATTERN = re.compile(rf'^({_FIELD_ALTERNATION})="(.*)"$')

# Lenient mode: field=value, anything after the "="
LENIENT_FIELD_PATTERN = re.compile(rf"^({_FIELD_ALTERNATION})=(.*)$")

LineKind = Literal["field", "empty", "unquoted", "invalid"]


@dataclass(frozen=True)
class Section:
    """One [link_N] section of a record file.

    Attributes:
        name: Header text without brackets (e.g. "link_0")
        body: Every line after the header up to the next section, verbatim
        line: 1-based line number of the header in the file
    """

    name: str
    body: tuple[str, ...]
    line: int


def _section_name(header: str) -> str:
    return header.strip().replace("[", "").replace("]", "")


def split_lines(text: str) -> list[str]:
    """Split on LF only, dropping one trailing CR per line (CRLF files).

    Other Unicode line separators (U+2028, U+0085, form feed) stay inside
    the line they appear in.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def iter_sections(text: str) -> Iterator[Section]:
    """Yield the link sections of a record file lazily, in file order."""
    name: str | None = None
    start = 0
    body: list[str] = []

    for line_no, line in enumerate(split_lines(text), start=1):
        if line.startswith(SECTION_START):
            if name is not None:
                yield Section(name, tuple(body), start)
            if LINK_HEADER_PATTERN.match(line):
                name, start, body = _section_name(line), line_no, []
            else:
                name, body = None, []
            continue
        if name is not None:
            body.append(line)

    if name is not None:
        yield Section(name, tuple(body), start)


class SectionStream:
    """Restartable view over the sections of one file's text.

    Each iteration starts a fresh pass, so the same stream can be walked by
    the validator and again by a counter without re-reading the file.
    """

    def __init__(self, text: str) -> None:
        self.text = text

    def __iter__(self) -> Iterator[Section]:
        return iter_sections(self.text)


def count_link_headers(text: str) -> int:
    """Count [link_N] header lines without validating the records."""
    return sum(1 for line in split_lines(text) if LINK_HEADER_PATTERN.match(line))


def _field_pattern(quoting: str) -> re.Pattern[str]:
    return STRICT_FIELD_PATTERN if quoting == "strict" else LENIENT_FIELD_PATTERN


def classify_line(line: str, quoting: str = "strict") -> LineKind:
    """Classify one record body line under the given quoting mode.

    Returns:
        "field" for an accepted field assignment, "empty" for a blank line,
        "unquoted" for a known field missing its quotes (strict mode only),
        "invalid" for anything else
    """
    if _field_pattern(quoting).match(line):
        return "field"
    if not line:
        return "empty"
    if quoting == "strict" and LENIENT_FIELD_PATTERN.match(line):
        return "unquoted"
    return "invalid"


def parse_field_line(line: str, quoting: str = "strict") -> tuple[str, str] | None:
    """Return (field, value) for an accepted field line, else None."""
    match = _field_pattern(quoting).match(line)
    if match is None:
        return None
    return match.group(1), match.group(2)


def unquote(value: str) -> str:
    """Strip one pair of surrounding double quotes, if present."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def record_fields(body: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Map each field to its first value in a body, accepting either quoting style."""
    values: dict[str, str] = {}
    for line in body:
        parsed = parse_field_line(line, "lenient")
        if parsed is None:
            continue
        name, value = parsed
        values.setdefault(name, unquote(value))
    return values
