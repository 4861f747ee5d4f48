#!/usr/bin/env python3
"""
Link Shard Validator - Change Sets

Finds the record files that differ from a base branch so validation can be
limited to what a pull request touched.

Fallback contract: when no base ref can be resolved (no remote, no git,
not a repository) ``changed_files()`` returns None and callers validate the
full file set instead.
"""

from __future__ import annotations

import fnmatch
import subprocess
from pathlib import Path
from typing import Protocol


class ChangeSetProvider(Protocol):
    """Supplies the record files changed versus a reference state."""

    def changed_files(self) -> list[str] | None:
        """Changed record file names, or None when no reference is available."""
        ...

    def touches(self, name: str) -> bool | None:
        """Whether a path changed, or None when no reference is available."""
        ...


def run_git_command(cwd: Path, *args: str) -> tuple[bool, str]:
    """Run a git command and return success status and output.

    Args:
        cwd: Working directory for the command
        *args: Git command arguments

    Returns:
        Tuple of (success, stdout); a missing git binary counts as failure
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=30,
        )
        return result.returncode == 0, result.stdout
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
        return False, str(e)


class GitChangeSetProvider:
    """Change sets from ``git diff <base>...HEAD`` run inside the data root."""

    def __init__(
        self,
        root: Path,
        base_refs: tuple[str, ...] = ("origin/main", "origin/master"),
        record_pattern: str = "file_*.cfg",
    ) -> None:
        self.root = root
        self.base_refs = base_refs
        self.record_pattern = record_pattern
        self._base: str | None = None
        self._resolved = False
        self._diff: list[str] | None = None

    @property
    def base(self) -> str | None:
        """First base ref git can resolve, or None."""
        if not self._resolved:
            self._resolved = True
            for ref in self.base_refs:
                ok, _ = run_git_command(self.root, "rev-parse", "--verify", "--quiet", ref)
                if ok:
                    self._base = ref
                    break
        return self._base

    def _changed_paths(self) -> list[str] | None:
        if self.base is None:
            return None
        if self._diff is None:
            # --relative keeps paths relative to (and limited to) the data root
            ok, output = run_git_command(self.root, "diff", "--name-only", "--relative", f"{self.base}...HEAD")
            if not ok:
                return None
            self._diff = [line.strip() for line in output.splitlines() if line.strip()]
        return self._diff

    def changed_files(self) -> list[str] | None:
        paths = self._changed_paths()
        if paths is None:
            return None
        # deleted shards have nothing left to validate
        return [
            p
            for p in paths
            if "/" not in p and fnmatch.fnmatch(p, self.record_pattern) and (self.root / p).is_file()
        ]

    def touches(self, name: str) -> bool | None:
        paths = self._changed_paths()
        if paths is None:
            return None
        return name in paths
