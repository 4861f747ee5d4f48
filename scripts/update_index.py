#!/usr/bin/env python3
"""
Link Shard Validator - Index Module

Validates the file_N.cfg shards and regenerates the _index.cfg summary.

The index is a pure function of ALL record files (file count, total links),
even when validation itself is limited to the files changed on a branch.
Any structural error aborts the run before the index is touched.

Usage:
    python update_index.py [--all | --changed-only] [--check] [--root DIR]

Exit Codes:
    0 - All validated files passed and the index is up to date
    1 - Structural errors, no record files, or a stale index (--check)
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path

from lsv_changes import ChangeSetProvider, GitChangeSetProvider
from lsv_config import ERROR_AGGREGATIONS, ConfigError, ValidatorConfig, add_config_arguments, config_from_args
from lsv_record_parser import count_link_headers
from lsv_validation_common import (
    EXIT_FAILED,
    EXIT_OK,
    INDEX_HEADER_COMMENT,
    LINKS_PER_FILE,
    ValidationReport,
    natural_sort_key,
    print_report_summary,
    print_results_by_level,
)
from validate_link_file import FileReport, read_record_file, validate_link_file

# =============================================================================
# Index Summary
# =============================================================================


@dataclass(frozen=True)
class IndexSummary:
    """Contents of _index.cfg."""

    file_count: int
    link_count: int
    links_per_file: int = LINKS_PER_FILE

    def render(self, header: bool = True) -> str:
        """Render the index file text (always newline-terminated)."""
        lines = [INDEX_HEADER_COMMENT] if header else []
        lines += [
            "[index]",
            f'file_count="{self.file_count}"',
            f'link_count="{self.link_count}"',
            f'links_per_file="{self.links_per_file}"',
        ]
        return "\n".join(lines) + "\n"


@dataclass
class RunReport(ValidationReport):
    """Outcome of one validate-and-update run."""

    index_path: str = ""
    validated_files: list[str] = field(default_factory=list)
    file_counts: dict[str, int] = field(default_factory=dict)
    summary: IndexSummary | None = None
    index_written: bool = False

    def to_dict(self) -> dict[str, object]:
        base = super().to_dict()
        base["validated_files"] = self.validated_files
        base["file_counts"] = self.file_counts
        base["index_written"] = self.index_written
        if self.summary is not None:
            base["summary"] = {
                "file_count": self.summary.file_count,
                "link_count": self.summary.link_count,
                "links_per_file": self.summary.links_per_file,
            }
        return base


# =============================================================================
# File Discovery and Counting
# =============================================================================


def discover_record_files(root: Path, pattern: str = "file_*.cfg") -> list[Path]:
    """List record files directly under root in natural order (file_2 before file_10)."""
    return sorted((p for p in root.glob(pattern) if p.is_file()), key=lambda p: natural_sort_key(p.name))


def select_changed_files(
    root: Path,
    all_files: list[Path],
    config: ValidatorConfig,
    provider: ChangeSetProvider,
    report: RunReport,
) -> list[Path] | None:
    """Pick the files to validate in --changed-only mode.

    Returns:
        The changed record files, or None when the index itself was edited
    """
    touched = provider.touches(config.index_name)
    if touched:
        report.critical(
            f"{config.index_name} has been manually modified! This file is only updated by the "
            "validation script. Please revert your changes to it.",
            config.index_name,
        )
        return None

    changed = provider.changed_files()
    if touched is None or changed is None:
        report.warning(
            f"Could not resolve a base ref ({', '.join(config.base_refs)}). "
            f"Skipping {config.index_name} check and validating all files."
        )
        return list(all_files)
    if not changed:
        report.info("No record files changed in this branch. Skipping validation step.")
        return []

    report.info(f"Changed files: {', '.join(changed)}")
    return sorted((root / name for name in changed), key=lambda p: natural_sort_key(p.name))


def count_all_links(all_files: list[Path], report: RunReport, validated: dict[str, int]) -> dict[str, int] | None:
    """Link count of every record file, reusing counts from validated files."""
    counts: dict[str, int] = {}
    for path in all_files:
        if path.name in validated:
            counts[path.name] = validated[path.name]
            continue
        probe = FileReport(path=path.name)
        text = read_record_file(path, probe)
        if text is None:
            report.merge(probe)
            return None
        counts[path.name] = count_link_headers(text)
    return counts


# =============================================================================
# Validate and Update
# =============================================================================


def write_index(path: Path, summary: IndexSummary, header: bool = True) -> None:
    """Overwrite the index file with the rendered summary."""
    path.write_text(summary.render(header), encoding="utf-8")


def run_validation(
    root: Path,
    config: ValidatorConfig | None = None,
    changed_only: bool = False,
    change_provider: ChangeSetProvider | None = None,
    check_only: bool = False,
) -> RunReport:
    """Validate record files and regenerate (or check) the index.

    Args:
        root: Directory holding the shards and _index.cfg
        config: Active settings; defaults when omitted
        changed_only: Validate only files changed versus the base ref
        change_provider: Source of changed files (git by default)
        check_only: Compare the existing index instead of writing it

    Returns:
        RunReport; ``index_written`` tells whether _index.cfg was written
    """
    config = config or ValidatorConfig()
    report = RunReport(index_path=config.index_name)
    all_files = discover_record_files(root, config.record_pattern)

    if changed_only:
        provider = change_provider or GitChangeSetProvider(root, config.base_refs, config.record_pattern)
        to_validate = select_changed_files(root, all_files, config, provider, report)
        if to_validate is None:
            return report
    else:
        to_validate = list(all_files)

    if not all_files:
        report.critical(f"No {config.record_pattern} files found in {root}")
        return report

    validated: dict[str, int] = {}
    for path in to_validate:
        file_report = validate_link_file(path, config, label=path.name)
        report.merge(file_report)
        report.validated_files.append(path.name)
        if not file_report.valid:
            return report
        validated[path.name] = file_report.link_count

    counts = count_all_links(all_files, report, validated)
    if counts is None:
        return report

    report.file_counts = counts
    for name, count in counts.items():
        report.info(f"{name}: {count} links", name)
    summary = IndexSummary(file_count=len(all_files), link_count=sum(counts.values()))
    report.summary = summary
    report.info(f"Total files: {summary.file_count}, total links: {summary.link_count}")

    index_path = root / config.index_name
    expected = summary.render(config.index_header)
    if check_only:
        current = index_path.read_text(encoding="utf-8") if index_path.is_file() else None
        if current != expected:
            report.critical(
                f"{config.index_name} is out of date "
                f"(expected {summary.file_count} files, {summary.link_count} links)",
                config.index_name,
            )
        else:
            report.passed(f"{config.index_name} is up to date", config.index_name)
        return report

    write_index(index_path, summary, config.index_header)
    report.index_written = True
    report.passed(f"{config.index_name} updated", config.index_name)
    return report


# =============================================================================
# CLI Main
# =============================================================================


def add_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the validate command's options."""
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--all", dest="changed_only", action="store_false", help="Validate every record file (default)")
    scope.add_argument(
        "--changed-only",
        dest="changed_only",
        action="store_true",
        help="Validate only files changed versus the base ref",
    )
    parser.add_argument("--check", action="store_true", help="Fail if the index is stale instead of rewriting it")
    parser.add_argument("--error-aggregation", choices=ERROR_AGGREGATIONS, help="Per-file error handling")
    add_config_arguments(parser)
    parser.set_defaults(changed_only=False)


def run_cli(args: argparse.Namespace) -> int:
    """Run the validate command for parsed arguments."""
    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    report = run_validation(args.root, config, changed_only=args.changed_only, check_only=args.check)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return report.exit_code

    print_results_by_level(report, verbose=args.verbose)
    print_report_summary(report, title="Link Shard Validation")

    if report.has_critical:
        print(f"Validation failed with {len(report.get_all_errors())} error(s)")
        return EXIT_FAILED
    if report.summary is not None:
        action = "is up to date" if args.check else "updated"
        print(
            f"OK: {config.index_name} {action} "
            f"({report.summary.file_count} files, {report.summary.link_count} links)"
        )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the validate-and-update pass."""
    parser = argparse.ArgumentParser(
        description="Validate file_N.cfg link shards and regenerate _index.cfg",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit Codes:
  0 - Validation passed, index written (or up to date with --check)
  1 - Structural errors, no record files, or stale index
        """,
    )
    add_arguments(parser)
    return run_cli(parser.parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
