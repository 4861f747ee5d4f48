#!/usr/bin/env python3
"""
Link Shard Validator - Record Module

Validates a single [link_N] section against the record schema.

Record Checks Implemented (in order, none of them stops the later ones):
1. Section name must be link_N
2. N should match the running index within the file (WARNING only)
3. Body must contain exactly 4 lines
4. Every line must be a recognized field assignment in the active quoting mode
5. url, developer, dev_link and preview_image must each appear exactly once
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from lsv_config import ValidatorConfig
from lsv_record_parser import Section, classify_line, parse_field_line
from lsv_validation_common import (
    REQUIRED_FIELDS,
    SECTION_NAME_PATTERN,
    ValidationReport,
)


@dataclass
class RecordReport(ValidationReport):
    """Validation outcome for one record."""

    section: str = ""
    expected_index: int = 0
    file: str | None = None
    field_counts: dict[str, int] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        """A valid record contributes one link to its file's count."""
        return not self.has_critical


def check_section_name(section: Section, expected_index: int, report: RecordReport) -> None:
    """Rules 1-2: header must be link_N, and N should follow the sequence."""
    name = section.name
    if not SECTION_NAME_PATTERN.match(name):
        report.critical(f"Invalid section name '{name}' (should be link_N)", report.file, section.line, name)
        return

    expected = f"link_{expected_index}"
    if name != expected:
        report.warning(f"Expected {expected} but found {name}", report.file, section.line, name)


def check_line_count(section: Section, report: RecordReport) -> None:
    """Rule 3: exactly one line per required field."""
    found = len(section.body)
    if found != len(REQUIRED_FIELDS):
        report.critical(
            f"Section must contain exactly {len(REQUIRED_FIELDS)} lines (found {found})",
            report.file,
            section.line,
            section.name,
        )


def check_field_lines(section: Section, quoting: str, report: RecordReport) -> Counter[str]:
    """Rule 4: classify each body line, returning how often each field was seen."""
    seen: Counter[str] = Counter()

    for offset, line in enumerate(section.body, start=1):
        line_no = section.line + offset
        kind = classify_line(line, quoting)

        if kind == "field":
            parsed = parse_field_line(line, quoting)
            if parsed is not None:
                seen[parsed[0]] += 1
            continue

        if kind == "empty":
            report.critical("Empty line not allowed", report.file, line_no, section.name)
        elif kind == "unquoted":
            name = line.split("=", 1)[0]
            report.critical(
                f"Value of '{name}' must be wrapped in double quotes: '{line}'",
                report.file,
                line_no,
                section.name,
                name,
            )
        else:
            report.critical(f"Invalid line: '{line}'", report.file, line_no, section.name)

    return seen


def check_field_cardinality(section: Section, seen: Counter[str], report: RecordReport) -> None:
    """Rule 5: every required field exactly once."""
    for name in REQUIRED_FIELDS:
        found = seen.get(name, 0)
        if found != 1:
            report.critical(
                f"Must have exactly 1 '{name}' field (found {found})",
                report.file,
                section.line,
                section.name,
                name,
            )


def validate_record(
    section: Section,
    expected_index: int,
    config: ValidatorConfig | None = None,
    file: str | None = None,
) -> RecordReport:
    """Run every record check on one section.

    Args:
        section: Parsed section (name, verbatim body, header line)
        expected_index: 0-based position of the section within its file
        config: Active settings (quoting mode); defaults when omitted
        file: File path used to label diagnostics

    Returns:
        RecordReport; ``valid`` is False when any CRITICAL result was added
    """
    config = config or ValidatorConfig()
    report = RecordReport(section=section.name, expected_index=expected_index, file=file)

    check_section_name(section, expected_index, report)
    check_line_count(section, report)
    seen = check_field_lines(section, config.quoting, report)
    check_field_cardinality(section, seen, report)

    report.field_counts = {name: seen.get(name, 0) for name in REQUIRED_FIELDS}
    if report.valid:
        report.passed(f"{section.name} is a valid record", file, section.name)
    return report
