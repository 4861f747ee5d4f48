#!/usr/bin/env python3
"""
Link Shard Validator - Configuration

Loads validator settings from built-in defaults, an optional YAML file
(``lsv.yaml`` in the data root, or ``--config PATH``) and command-line
overrides, in that order of precedence.

Example lsv.yaml:

    quoting: lenient
    error_aggregation: collect-per-file
    workers: 8
    base_refs: [origin/main, origin/master]
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Literal

import yaml

from lsv_validation_common import (
    ASPECT_RATIO_TOLERANCE,
    INDEX_FILE_NAME,
    RECORD_FILE_PATTERN,
    TARGET_ASPECT_RATIO,
    __version__,
)

QuotingMode = Literal["strict", "lenient"]
ErrorAggregation = Literal["fail-fast", "collect-per-file"]

QUOTING_MODES: tuple[str, ...] = ("strict", "lenient")
ERROR_AGGREGATIONS: tuple[str, ...] = ("fail-fast", "collect-per-file")

DEFAULT_CONFIG_NAME = "lsv.yaml"


class ConfigError(ValueError):
    """Raised when a configuration file or override is invalid."""


@dataclass(frozen=True)
class ValidatorConfig:
    """Settings shared by the structural validator and the remote verifier."""

    quoting: QuotingMode = "strict"
    error_aggregation: ErrorAggregation = "fail-fast"
    index_header: bool = True
    record_pattern: str = RECORD_FILE_PATTERN
    index_name: str = INDEX_FILE_NAME
    base_refs: tuple[str, ...] = ("origin/main", "origin/master")
    url_timeout: float = 10.0
    image_timeout: float = 30.0
    target_ratio: float = TARGET_ASPECT_RATIO
    ratio_tolerance: float = ASPECT_RATIO_TOLERANCE
    workers: int = 1
    check_dimensions: bool = True
    user_agent: str = f"link-shard-validator/{__version__}"

    def __post_init__(self) -> None:
        if self.quoting not in QUOTING_MODES:
            raise ConfigError(f"quoting must be one of {', '.join(QUOTING_MODES)} (got {self.quoting!r})")
        if self.error_aggregation not in ERROR_AGGREGATIONS:
            raise ConfigError(
                f"error_aggregation must be one of {', '.join(ERROR_AGGREGATIONS)} (got {self.error_aggregation!r})"
            )
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1 (got {self.workers})")
        for name in ("url_timeout", "image_timeout", "target_ratio", "ratio_tolerance"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive (got {getattr(self, name)})")
        if not self.base_refs:
            raise ConfigError("base_refs must name at least one git ref")

    @property
    def fail_fast(self) -> bool:
        return self.error_aggregation == "fail-fast"

    def with_overrides(self, **overrides: Any) -> ValidatorConfig:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if "base_refs" in changes:
            changes["base_refs"] = _as_refs(changes["base_refs"])
        return replace(self, **changes) if changes else self


def _as_refs(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise ConfigError(f"base_refs must be a string or a list of strings (got {value!r})")


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Check a YAML value against the type of the field default."""
    if name == "base_refs":
        return _as_refs(value)
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{name} must be true or false (got {value!r})")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{name} must be an integer (got {value!r})")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{name} must be a number (got {value!r})")
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a string (got {value!r})")
    return value


def config_from_mapping(data: dict[str, Any], base: ValidatorConfig | None = None) -> ValidatorConfig:
    """Build a config from a parsed mapping, rejecting unknown keys."""
    base = base or ValidatorConfig()
    known = {f.name: getattr(base, f.name) for f in fields(ValidatorConfig)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")
    changes = {name: _coerce(name, value, known[name]) for name, value in data.items()}
    return replace(base, **changes)


def load_config(root: Path, config_path: Path | None = None) -> ValidatorConfig:
    """Load configuration for a data root.

    Args:
        root: Directory holding the file_N.cfg shards
        config_path: Explicit YAML file; must exist when given

    Returns:
        ValidatorConfig with file settings applied over the defaults
    """
    path = config_path if config_path is not None else root / DEFAULT_CONFIG_NAME
    if not path.is_file():
        if config_path is not None:
            raise ConfigError(f"Config file not found: {config_path}")
        return ValidatorConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return ValidatorConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a YAML mapping")
    return config_from_mapping(data)


# =============================================================================
# Command-line Overrides
# =============================================================================


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the options shared by the validate and verify-urls commands."""
    parser.add_argument("--root", type=Path, default=Path("."), help="Directory holding the file_N.cfg shards")
    parser.add_argument("--config", type=Path, help=f"YAML settings file (default: <root>/{DEFAULT_CONFIG_NAME})")
    parser.add_argument("--quoting", choices=QUOTING_MODES, help="Value quoting strictness")
    parser.add_argument("--base", help="Base git ref to diff against (default: origin/main, then origin/master)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show all results including INFO and PASSED")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")


def config_from_args(args: argparse.Namespace) -> ValidatorConfig:
    """Load the file configuration for ``args.root`` and apply CLI overrides."""
    config = load_config(args.root, args.config)
    return config.with_overrides(
        quoting=args.quoting,
        base_refs=args.base,
        error_aggregation=getattr(args, "error_aggregation", None),
        workers=getattr(args, "workers", None),
        url_timeout=getattr(args, "timeout", None),
        image_timeout=getattr(args, "image_timeout", None),
    )
