#!/usr/bin/env python3
"""
Link Shard Validator - URL Module

Checks that the links referenced by each [link_N] record are live:

1. url and dev_link must answer HTTP 200 (redirects followed)
2. preview_image must answer HTTP 200 with an image/* Content-Type
3. preview_image must have a ~460:215 aspect ratio, when Pillow is available

Failures accumulate across fields, records and files; the scan never stops
early. This pass is diagnostic only and never touches _index.cfg.

Usage:
    python validate_urls.py [--all] [--root DIR] [--workers N]

Exit Codes:
    0 - Every checked URL passed (or nothing changed)
    1 - At least one file has a failing URL, or a record file is missing
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Protocol

import httpx

from lsv_changes import ChangeSetProvider, GitChangeSetProvider
from lsv_config import ConfigError, ValidatorConfig, add_config_arguments, config_from_args
from lsv_record_parser import SectionStream, record_fields
from lsv_validation_common import (
    EXIT_FAILED,
    EXIT_OK,
    IMAGE_FIELD,
    URL_FIELDS,
    ValidationReport,
    colorize,
    natural_sort_key,
    print_report_summary,
    print_results_by_level,
)
from update_index import discover_record_files
from validate_link_file import FileReport, read_record_file

# =============================================================================
# Image Metadata
# =============================================================================


class ImageMetadataProvider(Protocol):
    """Extracts (width, height) from downloaded image bytes."""

    def dimensions(self, data: bytes) -> tuple[int, int] | None:
        """Return the image size, or None when it cannot be determined."""
        ...


class PillowImageMetadataProvider:
    """Image sizes via Pillow (only the header is decoded)."""

    def dimensions(self, data: bytes) -> tuple[int, int] | None:
        from PIL import Image, UnidentifiedImageError

        try:
            with Image.open(BytesIO(data)) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError, ValueError):
            return None
        return width, height


def default_image_metadata_provider() -> ImageMetadataProvider | None:
    """Pillow-backed provider, or None when Pillow is not importable."""
    try:
        import PIL  # noqa: F401
    except ImportError:
        return None
    return PillowImageMetadataProvider()


# =============================================================================
# Check Results
# =============================================================================


@dataclass(frozen=True)
class CheckTarget:
    """One URL-valued field of one record."""

    file: str
    section: str
    field: str
    url: str


@dataclass
class UrlCheck:
    """Outcome of checking one URL."""

    target: CheckTarget
    ok: bool
    status: int | None = None
    content_type: str | None = None
    dimensions: tuple[int, int] | None = None
    message: str = ""
    warnings: list[str] = field(default_factory=list)

    @property
    def status_text(self) -> str:
        """HTTP status as curl would print it ("000" when no response)."""
        return "000" if self.status is None else str(self.status)

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.target.file,
            "section": self.target.section,
            "field": self.target.field,
            "url": self.target.url,
            "ok": self.ok,
            "status": self.status_text,
            "content_type": self.content_type,
            "dimensions": list(self.dimensions) if self.dimensions else None,
            "message": self.message,
            "warnings": self.warnings,
        }


@dataclass
class FileVerification:
    """Every URL check of one record file."""

    path: str
    checks: list[UrlCheck] = field(default_factory=list)
    error: str | None = None

    @property
    def failures(self) -> list[UrlCheck]:
        return [c for c in self.checks if not c.ok]

    @property
    def failed(self) -> bool:
        return self.error is not None or bool(self.failures)


@dataclass
class VerificationReport(ValidationReport):
    """Outcome of a remote verification pass."""

    files: list[FileVerification] = field(default_factory=list)

    @property
    def failing_files(self) -> int:
        """Number of files with at least one failing field (the pass/fail signal)."""
        return sum(1 for f in self.files if f.failed)

    @property
    def checks(self) -> list[UrlCheck]:
        return [c for f in self.files for c in f.checks]

    @property
    def exit_code(self) -> int:
        if self.failing_files or self.has_errors:
            return EXIT_FAILED
        return EXIT_OK

    def to_dict(self) -> dict[str, object]:
        base = super().to_dict()
        base["exit_code"] = self.exit_code
        base["failing_files"] = self.failing_files
        base["checks"] = [c.to_dict() for c in self.checks]
        return base


# =============================================================================
# HTTP Checks
# =============================================================================


def fetch_status(client: httpx.Client, url: str, timeout: float) -> tuple[int | None, str | None]:
    """GET a URL without reading the body; (None, None) on timeout or connection failure."""
    try:
        with client.stream("GET", url, timeout=timeout) as response:
            return response.status_code, response.headers.get("content-type")
    except (httpx.HTTPError, httpx.InvalidURL):
        return None, None


def download(client: httpx.Client, url: str, timeout: float) -> bytes | None:
    """Fetch a URL body; None unless the final response is 200."""
    try:
        response = client.get(url, timeout=timeout)
    except (httpx.HTTPError, httpx.InvalidURL):
        return None
    if response.status_code != 200:
        return None
    return response.content


def check_url(client: httpx.Client, target: CheckTarget, config: ValidatorConfig) -> UrlCheck:
    """A link is live when it answers 200 after redirects."""
    status, content_type = fetch_status(client, target.url, config.url_timeout)
    check = UrlCheck(target, ok=status == 200, status=status, content_type=content_type)
    if check.ok:
        check.message = "OK (200)"
    else:
        check.message = f"{target.field} returned HTTP {check.status_text}"
    return check


def aspect_ratio_ok(width: int, height: int, target: float, tolerance: float) -> bool:
    """Compare width/height to the target ratio via squared difference."""
    if height <= 0:
        return False
    return (width / height - target) ** 2 < tolerance**2


def check_image_url(
    client: httpx.Client,
    target: CheckTarget,
    config: ValidatorConfig,
    image_provider: ImageMetadataProvider | None,
) -> UrlCheck:
    """A preview image must be live, typed image/*, and have the target shape."""
    check = check_url(client, target, config)
    if not check.ok:
        return check

    content_type = check.content_type or "unknown"
    if not content_type.lower().startswith("image/"):
        check.ok = False
        check.message = f"{target.field} is not an image (Content-Type: {content_type})"
        return check

    if not config.check_dimensions:
        check.message = f"OK (200, {content_type})"
        return check
    if image_provider is None:
        check.warnings.append("Pillow not available, skipping dimension check")
        check.message = f"OK (200, {content_type})"
        return check

    data = download(client, target.url, config.image_timeout)
    if data is None:
        check.ok = False
        check.message = f"Could not download {target.field}"
        return check

    size = image_provider.dimensions(data)
    if size is None:
        check.warnings.append("Could not determine image dimensions")
        check.message = f"OK (200, {content_type}, dimensions unknown)"
        return check

    width, height = size
    check.dimensions = size
    if not aspect_ratio_ok(width, height, config.target_ratio, config.ratio_tolerance):
        ratio = width / height if height else 0.0
        check.ok = False
        check.message = (
            f"{target.field} has wrong aspect ratio: {width}x{height} = {ratio:.4f}:1 "
            f"(expected ~{config.target_ratio:.4f}:1)"
        )
        return check

    check.message = f"OK (200, {content_type}, {width}x{height})"
    return check


def run_check(
    client: httpx.Client,
    target: CheckTarget,
    config: ValidatorConfig,
    image_provider: ImageMetadataProvider | None,
) -> UrlCheck:
    if target.field == IMAGE_FIELD:
        return check_image_url(client, target, config, image_provider)
    return check_url(client, target, config)


# =============================================================================
# File Verification
# =============================================================================


def collect_targets(text: str, label: str) -> list[CheckTarget]:
    """Every non-empty url, dev_link and preview_image value, in file order."""
    targets = []
    for section in SectionStream(text):
        values = record_fields(section.body)
        for name in (*URL_FIELDS, IMAGE_FIELD):
            url = values.get(name, "").strip()
            if url:
                targets.append(CheckTarget(label, section.name, name, url))
    return targets


def record_check(report: VerificationReport, check: UrlCheck) -> None:
    """Fold one finished check into the report."""
    target = check.target
    for warning in check.warnings:
        report.warning(f"{target.field}: {warning} ({target.url})", target.file, section=target.section)
    if check.ok:
        report.passed(f"{target.field}: {target.url} {check.message}", target.file, target.section)
    else:
        report.major(f"{check.message}. URL: {target.url}", target.file, section=target.section, field=target.field)


def verify_files(
    paths: list[Path],
    config: ValidatorConfig | None = None,
    client: httpx.Client | None = None,
    image_provider: ImageMetadataProvider | None = None,
    progress: Callable[[UrlCheck], None] | None = None,
) -> VerificationReport:
    """Check every URL of every record in the given files.

    Args:
        paths: Record files to scan
        config: Active settings (timeouts, ratio, workers)
        client: HTTP client; a redirect-following client is created when omitted
        image_provider: Dimension reader; Pillow is detected when omitted
        progress: Called on the calling thread as each check finishes

    Returns:
        VerificationReport; ``failing_files`` is the authoritative tally
    """
    config = config or ValidatorConfig()
    if image_provider is None and config.check_dimensions:
        image_provider = default_image_metadata_provider()

    report = VerificationReport()
    work: list[tuple[int, int, CheckTarget]] = []
    for file_idx, path in enumerate(paths):
        verification = FileVerification(path=path.name)
        report.files.append(verification)
        probe = FileReport(path=path.name)
        text = read_record_file(path, probe)
        if text is None:
            verification.error = probe.results[0].message if probe.results else "unreadable"
            report.merge(probe)
            continue
        targets = collect_targets(text, path.name)
        work.extend((file_idx, order, target) for order, target in enumerate(targets))

    owns_client = client is None
    if client is None:
        client = httpx.Client(follow_redirects=True, headers={"User-Agent": config.user_agent})

    finished: dict[tuple[int, int], UrlCheck] = {}
    try:
        for file_idx, order, check in _run_checks(client, work, config, image_provider):
            finished[(file_idx, order)] = check
            if progress is not None:
                progress(check)
    finally:
        if owns_client:
            client.close()

    for file_idx, order, _target in work:
        check = finished[(file_idx, order)]
        report.files[file_idx].checks.append(check)
        record_check(report, check)
    return report


def _run_checks(
    client: httpx.Client,
    work: list[tuple[int, int, CheckTarget]],
    config: ValidatorConfig,
    image_provider: ImageMetadataProvider | None,
) -> Iterator[tuple[int, int, UrlCheck]]:
    """Yield (file index, position, result) as checks finish."""
    if config.workers <= 1 or len(work) <= 1:
        for file_idx, order, target in work:
            yield file_idx, order, run_check(client, target, config, image_provider)
        return

    with ThreadPoolExecutor(max_workers=config.workers) as executor:
        futures = {
            executor.submit(run_check, client, target, config, image_provider): (file_idx, order)
            for file_idx, order, target in work
        }
        for future in as_completed(futures):
            file_idx, order = futures[future]
            yield file_idx, order, future.result()


def verify_root(
    root: Path,
    config: ValidatorConfig | None = None,
    check_all: bool = False,
    change_provider: ChangeSetProvider | None = None,
    client: httpx.Client | None = None,
    image_provider: ImageMetadataProvider | None = None,
    progress: Callable[[UrlCheck], None] | None = None,
) -> VerificationReport:
    """Select files (changed-only by default) and verify their URLs."""
    config = config or ValidatorConfig()
    all_files = discover_record_files(root, config.record_pattern)

    selection = VerificationReport()
    if check_all:
        paths = all_files
    else:
        provider = change_provider or GitChangeSetProvider(root, config.base_refs, config.record_pattern)
        changed = provider.changed_files()
        if changed is None:
            selection.warning(f"Could not resolve a base ref ({', '.join(config.base_refs)}). Checking all files.")
            paths = all_files
        elif not changed:
            selection.info("No changed files to validate. All URLs are OK!")
            return selection
        else:
            selection.info(f"Changed files: {', '.join(changed)}")
            paths = sorted((root / name for name in changed), key=lambda p: natural_sort_key(p.name))

    if not paths:
        selection.critical(f"No {config.record_pattern} files found in {root}")
        return selection

    report = verify_files(paths, config, client, image_provider, progress)
    report.results[:0] = selection.results
    return report


# =============================================================================
# CLI Main
# =============================================================================


def print_progress(check: UrlCheck) -> None:
    """Per-URL progress line on stderr."""
    target = check.target
    mark = colorize("✓", "PASSED") if check.ok else colorize("✗ FAILED", "CRITICAL")
    location = f"{target.file} [{target.section}] {target.field}"
    print(f"  {location}: {target.url} ... {mark} {check.message}", file=sys.stderr)


def add_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the verify-urls command's options."""
    parser.add_argument("--all", dest="check_all", action="store_true", help="Check every file, not only changed ones")
    parser.add_argument("--workers", type=int, help="Concurrent URL checks (default: 1)")
    parser.add_argument("--timeout", type=float, help="Seconds per liveness check (default: 10)")
    parser.add_argument("--image-timeout", type=float, help="Seconds per image download (default: 30)")
    add_config_arguments(parser)


def run_cli(args: argparse.Namespace) -> int:
    """Run the verify-urls command for parsed arguments."""
    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    progress = None if args.json else print_progress
    report = verify_root(args.root, config, check_all=args.check_all, progress=progress)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return report.exit_code

    print_results_by_level(report, verbose=args.verbose)
    print_report_summary(report, title="URL Verification")

    if report.exit_code != EXIT_OK:
        print(f"URL validation failed. Files with errors: {report.failing_files}")
        return EXIT_FAILED
    print(f"OK: {len(report.checks)} URL(s) in {len(report.files)} file(s) returned HTTP 200")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for remote URL verification."""
    parser = argparse.ArgumentParser(description="Verify the URLs and preview images of file_N.cfg link shards")
    add_arguments(parser)
    return run_cli(parser.parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
