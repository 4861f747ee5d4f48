"""Shared fixtures for the link shard validator tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest


def record_text(
    index: int,
    url: str | None = None,
    developer: str = "Dev",
    dev_link: str | None = None,
    preview_image: str | None = None,
    quoted: bool = True,
) -> str:
    """Render one well-formed [link_N] section."""
    values = {
        "url": url or f"https://site{index}.test",
        "developer": developer,
        "dev_link": dev_link or f"https://site{index}.test/dev",
        "preview_image": preview_image or f"https://site{index}.test/preview.png",
    }
    q = '"' if quoted else ""
    lines = [f"[link_{index}]"] + [f"{name}={q}{value}{q}" for name, value in values.items()]
    return "\n".join(lines) + "\n"


def shard_text(count: int, quoted: bool = True) -> str:
    """Render a shard holding ``count`` consecutive valid records."""
    return "".join(record_text(i, quoted=quoted) for i in range(count))


@pytest.fixture
def write_shard(tmp_path: Path) -> Callable[..., Path]:
    """Write a file_N.cfg shard under tmp_path and return its path."""

    def _write(number: int, text: str | None = None, links: int = 1) -> Path:
        path = tmp_path / f"file_{number}.cfg"
        path.write_text(text if text is not None else shard_text(links), encoding="utf-8")
        return path

    return _write
