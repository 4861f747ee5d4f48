#!/usr/bin/env python3
"""Tests for validate_urls.py - remote URL and preview image verification."""

import threading
from io import BytesIO
from pathlib import Path

import httpx
import pytest
from PIL import Image

from conftest import record_text
from lsv_config import ValidatorConfig
from validate_urls import (
    CheckTarget,
    PillowImageMetadataProvider,
    aspect_ratio_ok,
    check_image_url,
    collect_targets,
    verify_files,
    verify_root,
)


def png_bytes(width: int, height: int) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


class FakeWeb:
    """MockTransport handler serving a fixed table of URLs."""

    def __init__(self, routes: dict[str, httpx.Response | Exception]) -> None:
        self.routes = routes
        self.requested: list[str] = []
        self.lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        with self.lock:
            self.requested.append(url)
        # httpx normalizes "https://host" to "https://host/"
        route = self.routes.get(url, self.routes.get(url.rstrip("/")))
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self), follow_redirects=True)


def page() -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html></html>")


def image(width: int = 460, height: int = 215) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "image/png"}, content=png_bytes(width, height))


def healthy_routes(index: int) -> dict[str, httpx.Response]:
    """Routes matching conftest.record_text(index) defaults."""
    return {
        f"https://site{index}.test": page(),
        f"https://site{index}.test/dev": page(),
        f"https://site{index}.test/preview.png": image(),
    }


class NoDimensions:
    def dimensions(self, data: bytes) -> tuple[int, int] | None:
        return None


class TestAspectRatio:
    """Tests for the squared-difference ratio comparison."""

    def test_target_shape_passes(self) -> None:
        assert aspect_ratio_ok(460, 215, 460 / 215, 0.1)

    def test_narrow_image_fails(self) -> None:
        assert not aspect_ratio_ok(300, 215, 460 / 215, 0.1)

    def test_zero_height_fails(self) -> None:
        assert not aspect_ratio_ok(460, 0, 460 / 215, 0.1)


class TestPillowProvider:
    """Tests for reading image sizes."""

    def test_reads_png_size(self) -> None:
        assert PillowImageMetadataProvider().dimensions(png_bytes(460, 215)) == (460, 215)

    def test_garbage_is_unknown(self) -> None:
        assert PillowImageMetadataProvider().dimensions(b"not an image") is None


class TestImageCheck:
    """Tests for a single preview_image check."""

    target = CheckTarget("file_0.cfg", "link_0", "preview_image", "https://a.test/i.png")

    def _check(self, response: httpx.Response, provider=None, config: ValidatorConfig | None = None):
        web = FakeWeb({self.target.url: response})
        with web.client() as client:
            return check_image_url(client, self.target, config or ValidatorConfig(), provider)

    def test_460x215_passes(self) -> None:
        check = self._check(image(460, 215), PillowImageMetadataProvider())
        assert check.ok
        assert check.dimensions == (460, 215)

    def test_300x215_fails_ratio(self) -> None:
        check = self._check(image(300, 215), PillowImageMetadataProvider())
        assert not check.ok
        assert check.message.startswith("preview_image has wrong aspect ratio: 300x215 = 1.3953:1")

    def test_wrong_content_type(self) -> None:
        check = self._check(page(), PillowImageMetadataProvider())
        assert not check.ok
        assert check.message == "preview_image is not an image (Content-Type: text/html)"

    def test_missing_provider_degrades_to_warning(self) -> None:
        check = self._check(image(300, 215), None)
        assert check.ok
        assert check.warnings == ["Pillow not available, skipping dimension check"]

    def test_unknown_dimensions_degrade_to_warning(self) -> None:
        check = self._check(image(300, 215), NoDimensions())
        assert check.ok
        assert check.warnings == ["Could not determine image dimensions"]

    def test_dimension_check_can_be_disabled(self) -> None:
        check = self._check(image(300, 215), PillowImageMetadataProvider(), ValidatorConfig(check_dimensions=False))
        assert check.ok
        assert check.warnings == []

    def test_not_found(self) -> None:
        check = self._check(httpx.Response(404))
        assert not check.ok
        assert check.status_text == "404"
        assert check.message == "preview_image returned HTTP 404"


class TestCollectTargets:
    """Tests for extracting URL fields from a shard."""

    def test_order_and_unquoting(self) -> None:
        text = record_text(0) + record_text(1)
        targets = collect_targets(text, "file_0.cfg")
        assert [(t.section, t.field) for t in targets] == [
            ("link_0", "url"),
            ("link_0", "dev_link"),
            ("link_0", "preview_image"),
            ("link_1", "url"),
            ("link_1", "dev_link"),
            ("link_1", "preview_image"),
        ]
        assert targets[0].url == "https://site0.test"

    def test_unquoted_values_and_empty_fields(self) -> None:
        text = '[link_0]\nurl=https://a.test\ndeveloper="D"\ndev_link=""\n'
        targets = collect_targets(text, "file_0.cfg")
        assert [(t.field, t.url) for t in targets] == [("url", "https://a.test")]


class TestVerifyFiles:
    """Tests for verifying whole files."""

    def test_all_live(self, write_shard) -> None:
        web = FakeWeb(healthy_routes(0))
        with web.client() as client:
            report = verify_files([write_shard(0)], client=client, image_provider=PillowImageMetadataProvider())
        assert report.exit_code == 0
        assert report.failing_files == 0
        assert len(report.checks) == 3

    def test_failures_accumulate_without_stopping(self, write_shard) -> None:
        """Every URL is still checked after the first failure."""
        routes = {**healthy_routes(0), **healthy_routes(1)}
        routes["https://site0.test"] = httpx.Response(500)
        routes["https://site1.test/preview.png"] = image(300, 215)
        web = FakeWeb(routes)
        path = write_shard(0, record_text(0) + record_text(1))
        with web.client() as client:
            report = verify_files([path], client=client, image_provider=PillowImageMetadataProvider())
        assert report.exit_code == 1
        assert report.failing_files == 1
        assert len(report.files[0].failures) == 2
        assert "https://site1.test/dev" in web.requested
        majors = [r.message for r in report.get_errors_by_level("MAJOR")]
        assert majors[0] == "url returned HTTP 500. URL: https://site0.test"

    def test_tally_counts_files_not_fields(self, write_shard) -> None:
        web = FakeWeb({})
        paths = [write_shard(0), write_shard(1, record_text(0)), write_shard(2, record_text(0))]
        web.routes.update(healthy_routes(0))
        web.routes["https://site0.test/dev"] = httpx.Response(404)
        with web.client() as client:
            report = verify_files(paths, client=client, image_provider=PillowImageMetadataProvider())
        assert report.failing_files == 3
        assert len(report.get_errors_by_level("MAJOR")) == 3

    def test_connection_error_is_status_000(self, write_shard) -> None:
        routes = healthy_routes(0)
        routes["https://site0.test"] = httpx.ConnectError("connection refused")
        web = FakeWeb(routes)
        with web.client() as client:
            report = verify_files([write_shard(0)], client=client, image_provider=PillowImageMetadataProvider())
        failure = report.files[0].failures[0]
        assert failure.status_text == "000"
        assert failure.message == "url returned HTTP 000"

    def test_redirects_are_followed(self, write_shard) -> None:
        routes = healthy_routes(0)
        routes["https://site0.test"] = httpx.Response(301, headers={"location": "https://site0.test/home"})
        routes["https://site0.test/home"] = page()
        web = FakeWeb(routes)
        with web.client() as client:
            report = verify_files([write_shard(0)], client=client, image_provider=PillowImageMetadataProvider())
        assert report.exit_code == 0

    def test_dimension_check_disabled_accepts_any_shape(self, write_shard) -> None:
        routes = healthy_routes(0)
        routes["https://site0.test/preview.png"] = image(300, 215)
        web = FakeWeb(routes)
        with web.client() as client:
            report = verify_files(
                [write_shard(0)],
                ValidatorConfig(check_dimensions=False),
                client=client,
            )
        assert report.exit_code == 0

    def test_missing_file_fails(self, tmp_path: Path) -> None:
        web = FakeWeb({})
        with web.client() as client:
            report = verify_files([tmp_path / "file_4.cfg"], client=client)
        assert report.failing_files == 1
        assert report.exit_code == 1
        assert report.files[0].error == "File file_4.cfg does not exist"

    def test_workers_keep_file_order(self, write_shard) -> None:
        routes: dict[str, httpx.Response] = {}
        text = ""
        for i in range(6):
            routes.update(healthy_routes(i))
            text += record_text(i)
        routes["https://site4.test/dev"] = httpx.Response(403)
        web = FakeWeb(routes)
        seen = []
        with web.client() as client:
            report = verify_files(
                [write_shard(0, text)],
                ValidatorConfig(workers=4),
                client=client,
                image_provider=PillowImageMetadataProvider(),
                progress=seen.append,
            )
        assert len(seen) == 18
        assert [c.target.section for c in report.checks] == [f"link_{i}" for i in range(6) for _ in range(3)]
        assert report.failing_files == 1
        assert report.files[0].failures[0].target.section == "link_4"


class FakeChangeSet:
    def __init__(self, changed: list[str] | None) -> None:
        self.changed = changed

    def changed_files(self) -> list[str] | None:
        return self.changed

    def touches(self, name: str) -> bool | None:
        return False


class TestVerifyRoot:
    """Tests for file selection."""

    def test_nothing_changed(self, tmp_path: Path, write_shard) -> None:
        write_shard(0)
        report = verify_root(tmp_path, change_provider=FakeChangeSet([]))
        assert report.exit_code == 0
        assert report.files == []
        assert report.results[0].message == "No changed files to validate. All URLs are OK!"

    def test_only_changed_files_are_checked(self, tmp_path: Path, write_shard) -> None:
        write_shard(0)
        write_shard(1, record_text(1))
        web = FakeWeb(healthy_routes(1))
        with web.client() as client:
            report = verify_root(
                tmp_path,
                change_provider=FakeChangeSet(["file_1.cfg"]),
                client=client,
                image_provider=PillowImageMetadataProvider(),
            )
        assert report.exit_code == 0
        assert [f.path for f in report.files] == ["file_1.cfg"]
        assert not any("site0" in url for url in web.requested)

    def test_check_all(self, tmp_path: Path, write_shard) -> None:
        write_shard(0)
        write_shard(1, record_text(1))
        web = FakeWeb({**healthy_routes(0), **healthy_routes(1)})
        with web.client() as client:
            report = verify_root(tmp_path, check_all=True, client=client, image_provider=PillowImageMetadataProvider())
        assert [f.path for f in report.files] == ["file_0.cfg", "file_1.cfg"]

    def test_no_base_ref_checks_everything(self, tmp_path: Path, write_shard) -> None:
        write_shard(0)
        web = FakeWeb(healthy_routes(0))
        with web.client() as client:
            report = verify_root(
                tmp_path,
                change_provider=FakeChangeSet(None),
                client=client,
                image_provider=PillowImageMetadataProvider(),
            )
        assert report.has_warning
        assert [f.path for f in report.files] == ["file_0.cfg"]

    @pytest.mark.parametrize("check_all", [True, False])
    def test_no_record_files(self, tmp_path: Path, check_all: bool) -> None:
        report = verify_root(tmp_path, check_all=check_all, change_provider=FakeChangeSet(None))
        assert report.exit_code == 1
