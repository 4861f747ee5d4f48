#!/usr/bin/env python3
"""
Link Shard Validator - File Module

Validates one file_N.cfg shard end-to-end: every [link_N] record goes
through the record validator, then the per-file capacity is enforced.

Error aggregation modes:
  fail-fast         stop at the first record with errors (that record's
                    diagnostics are all kept)
  collect-per-file  validate every record, then fail the file if any failed

Usage:
    python validate_link_file.py file_0.cfg [file_1.cfg ...] [--quoting lenient]
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path

from lsv_config import ERROR_AGGREGATIONS, QUOTING_MODES, ValidatorConfig
from lsv_record_parser import SectionStream
from lsv_validation_common import (
    EXIT_FAILED,
    EXIT_OK,
    LINKS_PER_FILE,
    ValidationReport,
    print_report_summary,
    print_results_by_level,
)
from validate_record import validate_record


@dataclass
class FileReport(ValidationReport):
    """Validation outcome for one record file."""

    path: str = ""
    link_count: int = 0
    invalid_records: list[str] = field(default_factory=list)
    stopped_early: bool = False

    @property
    def valid(self) -> bool:
        return not self.has_critical

    def to_dict(self) -> dict[str, object]:
        base = super().to_dict()
        base["path"] = self.path
        base["link_count"] = self.link_count
        base["invalid_records"] = self.invalid_records
        return base


def read_record_file(path: Path, report: FileReport) -> str | None:
    """Read a shard as UTF-8 (a leading BOM is dropped), recording a CRITICAL result on failure."""
    if not path.is_file():
        report.critical(f"File {report.path} does not exist", report.path)
        return None
    try:
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        report.critical(f"File is not valid UTF-8 (error at byte {e.start}: {e.reason})", report.path)
    except OSError as e:
        report.critical(f"Cannot read file: {e}", report.path)
    return None


def validate_link_file(path: Path, config: ValidatorConfig | None = None, label: str | None = None) -> FileReport:
    """Validate every record of one shard and enforce the capacity limit.

    Args:
        path: Path to the file_N.cfg shard
        config: Active settings (quoting mode, error aggregation)
        label: Name used in diagnostics; defaults to the file name

    Returns:
        FileReport whose ``link_count`` is the number of records found
    """
    config = config or ValidatorConfig()
    report = FileReport(path=label or path.name)

    text = read_record_file(path, report)
    if text is None:
        return report

    records = 0
    for expected_index, section in enumerate(SectionStream(text)):
        record = validate_record(section, expected_index, config, file=report.path)
        report.merge(record)
        records += 1

        if not record.valid:
            report.invalid_records.append(section.name)
            if config.fail_fast:
                report.stopped_early = True
                report.link_count = records
                return report

    report.link_count = records

    if records > LINKS_PER_FILE:
        report.critical(
            f"Contains {records} links (max {LINKS_PER_FILE} allowed). "
            "Please add a new file_*.cfg and put the new link(s) there.",
            report.path,
        )

    if report.valid:
        report.passed(f"{report.path} validated ({records} links)", report.path)
    return report


def main() -> int:
    """CLI entry point for validating individual shards without touching the index.

    Files are validated in order and the run stops at the first invalid file.
    """
    parser = argparse.ArgumentParser(description="Validate file_N.cfg link shards")
    parser.add_argument("files", nargs="+", type=Path, help="Record files to validate")
    parser.add_argument("--quoting", choices=QUOTING_MODES, help="Value quoting strictness")
    parser.add_argument("--error-aggregation", choices=ERROR_AGGREGATIONS, help="Per-file error handling")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show all results including INFO and PASSED")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    args = parser.parse_args()

    config = ValidatorConfig().with_overrides(quoting=args.quoting, error_aggregation=args.error_aggregation)

    combined = ValidationReport()
    reports = []
    for path in args.files:
        report = validate_link_file(path, config, label=str(path))
        combined.merge(report)
        reports.append(report)
        if not report.valid:
            break

    if args.json:
        print(json.dumps([r.to_dict() for r in reports], indent=2))
        return combined.exit_code

    print_results_by_level(combined, verbose=args.verbose)
    print_report_summary(combined, title="Link File Validation")

    if combined.has_critical:
        print("Validation failed")
        return EXIT_FAILED
    print(f"OK: {sum(r.link_count for r in reports)} links in {len(reports)} file(s)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
