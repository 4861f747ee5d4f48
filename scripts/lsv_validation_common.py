#!/usr/bin/env python3
"""
Link Shard Validator - Common Module

Shared validation infrastructure for the link shard validators.
This module contains:
- Type definitions (Level, ValidationResult, ValidationReport)
- Dataset constants (record fields, file patterns, per-file capacity)
- Utility functions (natural sorting, formatting, exit codes)

All individual validators import from this module to ensure consistency.
"""

from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass, field
from typing import Literal, TextIO

__version__ = "1.0.0"

# =============================================================================
# Type Definitions
# =============================================================================

# Validation result severity levels (uppercase for consistency)
# Hierarchy: CRITICAL > MAJOR > WARNING > INFO > PASSED
# - CRITICAL: structural errors, abort the run before the index is written
# - MAJOR: remote verification failures, tallied and reported at the end
# - WARNING: never blocks (numbering gaps, degraded image checks)
# - INFO: informational only, shown in verbose mode
# - PASSED: check passed, shown in verbose mode
Level = Literal["CRITICAL", "MAJOR", "WARNING", "INFO", "PASSED"]

LEVELS: tuple[Level, ...] = ("CRITICAL", "MAJOR", "WARNING", "INFO", "PASSED")

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0  # All checks passed (or only WARNING/INFO/PASSED)
EXIT_FAILED = 1  # Any CRITICAL or MAJOR result, missing input, bad config

# =============================================================================
# Dataset Constants
# =============================================================================

# Maximum number of [link_N] records in one file_N.cfg shard
LINKS_PER_FILE = 100

# Fields every record must carry exactly once, in canonical order
REQUIRED_FIELDS: tuple[str, ...] = ("url", "developer", "dev_link", "preview_image")

# Fields whose values are checked by the remote verifier
URL_FIELDS: tuple[str, ...] = ("url", "dev_link")
IMAGE_FIELD = "preview_image"

RECORD_FILE_PATTERN = "file_*.cfg"
INDEX_FILE_NAME = "_index.cfg"
INDEX_HEADER_COMMENT = "# DO NOT EDIT THIS FILE MANUALLY"

# Section name accepted by the record validator
SECTION_NAME_PATTERN = re.compile(r"^link_[0-9]+$")

# Target preview image shape: 460x215 (~2.1395:1)
TARGET_ASPECT_RATIO = 460 / 215
ASPECT_RATIO_TOLERANCE = 0.1

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ValidationResult:
    """Single validation check result.

    Attributes:
        level: Severity level (CRITICAL, MAJOR, WARNING, INFO, PASSED)
        message: Human-readable description of the result
        file: Optional file path related to the result
        line: Optional line number in the file
        section: Optional record section name (link_N)
        field: Optional record field name
    """

    level: Level
    message: str
    file: str | None = None
    line: int | None = None
    section: str | None = None
    field: str | None = None

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, str | int | None] = {"level": self.level, "message": self.message}
        if self.file is not None:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.section is not None:
            result["section"] = self.section
        if self.field is not None:
            result["field"] = self.field
        return result


@dataclass
class ValidationReport:
    """Validation report with results collection.

    This is the base class that all validators use (or extend).
    Provides consistent methods for adding results and computing exit codes.
    Subclasses carry the per-unit payload (record, file, run).
    """

    results: list[ValidationResult] = field(default_factory=list)

    def add(
        self,
        level: Level,
        message: str,
        file: str | None = None,
        line: int | None = None,
        section: str | None = None,
        field: str | None = None,
    ) -> None:
        """Add a validation result."""
        self.results.append(ValidationResult(level, message, file, line, section, field))

    def passed(self, message: str, file: str | None = None, section: str | None = None) -> None:
        """Add a passed check."""
        self.add("PASSED", message, file, section=section)

    def info(self, message: str, file: str | None = None) -> None:
        """Add an info message."""
        self.add("INFO", message, file)

    def warning(
        self, message: str, file: str | None = None, line: int | None = None, section: str | None = None
    ) -> None:
        """Add a warning (reported, but never blocks validation)."""
        self.add("WARNING", message, file, line, section)

    def major(
        self,
        message: str,
        file: str | None = None,
        line: int | None = None,
        section: str | None = None,
        field: str | None = None,
    ) -> None:
        """Add a major issue (remote verification failure)."""
        self.add("MAJOR", message, file, line, section, field)

    def critical(
        self,
        message: str,
        file: str | None = None,
        line: int | None = None,
        section: str | None = None,
        field: str | None = None,
    ) -> None:
        """Add a critical issue (structural error)."""
        self.add("CRITICAL", message, file, line, section, field)

    @property
    def has_critical(self) -> bool:
        """Check if any CRITICAL issues exist."""
        return any(r.level == "CRITICAL" for r in self.results)

    @property
    def has_major(self) -> bool:
        """Check if any MAJOR issues exist."""
        return any(r.level == "MAJOR" for r in self.results)

    @property
    def has_warning(self) -> bool:
        """Check if any WARNING issues exist."""
        return any(r.level == "WARNING" for r in self.results)

    @property
    def has_errors(self) -> bool:
        """Check if any blocking (CRITICAL or MAJOR) issues exist."""
        return self.has_critical or self.has_major

    @property
    def exit_code(self) -> int:
        """Get exit code: any blocking issue fails the run.

        WARNING never affects the exit code.
        """
        if self.has_errors:
            return EXIT_FAILED
        return EXIT_OK

    def count_by_level(self) -> dict[str, int]:
        """Get count of results by level."""
        counts: dict[str, int] = {level: 0 for level in LEVELS}
        for r in self.results:
            counts[r.level] = counts.get(r.level, 0) + 1
        return counts

    def get_all_errors(self) -> list[ValidationResult]:
        """Get all blocking results (CRITICAL, MAJOR)."""
        return [r for r in self.results if r.level in ("CRITICAL", "MAJOR")]

    def get_errors_by_level(self, level: Level) -> list[ValidationResult]:
        """Get all results of a specific level."""
        return [r for r in self.results if r.level == level]

    def merge(self, other: ValidationReport) -> None:
        """Merge results from another report into this one."""
        self.results.extend(other.results)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "exit_code": self.exit_code,
            "counts": self.count_by_level(),
            "results": [r.to_dict() for r in self.results],
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert report to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


# =============================================================================
# Utility Functions
# =============================================================================

_DIGITS = re.compile(r"(\d+)")


def natural_sort_key(name: str) -> list[int | str]:
    """Sort key that orders embedded numbers numerically (file_2 < file_10)."""
    return [int(part) if part.isdigit() else part for part in _DIGITS.split(name)]


# =============================================================================
# Color Formatting (for terminal output)
# =============================================================================

# ANSI color codes
COLORS = {
    "CRITICAL": "\033[91m",  # Red
    "MAJOR": "\033[93m",  # Yellow
    "WARNING": "\033[95m",  # Magenta
    "INFO": "\033[94m",  # Blue
    "PASSED": "\033[92m",  # Green
    "RESET": "\033[0m",  # Reset
    "BOLD": "\033[1m",  # Bold
}


def _use_color(stream: TextIO) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, level: str, stream: TextIO | None = None) -> str:
    """Apply color to text based on level (plain text when not a terminal)."""
    if not _use_color(stream or sys.stderr):
        return text
    color = COLORS.get(level, "")
    return f"{color}{text}{COLORS['RESET']}"


def format_result(result: ValidationResult, show_file: bool = True, stream: TextIO | None = None) -> str:
    """Format a single validation result for terminal output."""
    parts = [f"{colorize(f'[{result.level}]', result.level, stream)} "]

    if show_file and result.file:
        location = result.file
        if result.line:
            location += f":{result.line}"
        if result.section:
            location += f" [{result.section}]"
        parts.append(f"{location}: ")

    parts.append(result.message)
    return "".join(parts)


def print_results_by_level(report: ValidationReport, verbose: bool = False, stream: TextIO | None = None) -> None:
    """Print validation results grouped by severity level to stderr."""
    out = stream or sys.stderr
    by_level: dict[str, list[ValidationResult]] = {level: [] for level in LEVELS}

    for result in report.results:
        by_level[result.level].append(result)

    # Always print blocking levels (CRITICAL, MAJOR)
    for level in ["CRITICAL", "MAJOR"]:
        results = by_level[level]
        if results:
            print(colorize(f"\n--- {level} ISSUES ({len(results)}) ---", level, out), file=out)
            for result in results:
                print(f"  {format_result(result, stream=out)}", file=out)

    # Always print WARNING (never blocks, but always visible)
    if by_level["WARNING"]:
        print(colorize(f"\n--- WARNINGS ({len(by_level['WARNING'])}) [non-blocking] ---", "WARNING", out), file=out)
        for result in by_level["WARNING"]:
            print(f"  {format_result(result, stream=out)}", file=out)

    # Only print INFO and PASSED in verbose mode
    if verbose:
        for level in ["INFO", "PASSED"]:
            results = by_level[level]
            if results:
                print(colorize(f"\n--- {level} ({len(results)}) ---", level, out), file=out)
                for result in results:
                    print(f"  {format_result(result, stream=out)}", file=out)


def print_report_summary(
    report: ValidationReport, title: str = "Validation Report", stream: TextIO | None = None
) -> None:
    """Print a formatted count summary of a validation report to stderr."""
    out = stream or sys.stderr
    counts = report.count_by_level()

    print(f"\n{'=' * 60}", file=out)
    print(colorize(title, "BOLD", out), file=out)
    print(f"{'=' * 60}", file=out)

    for level in LEVELS:
        print(colorize(f"{level + ':':<10}{counts[level]}", level, out), file=out)
