"""Configuration parsing from ``.covtree.yml``."""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from covtree.errors import ConfigurationError
from covtree.utils.sloc import KNOWN_LANGUAGES

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".covtree.yml"

DEFAULT_REPORT_FILE = "clover.xml"

# Istanbul's default watermarks are [50, 80]; the low mark is the minimum.
DEFAULT_WATERMARK = 0.5

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_MAX_PERCENTAGE = 100.0

_WATERMARK_PAIR_LENGTH = 2


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass(frozen=True)
class Watermarks:
    """Minimum acceptable coverage ratio (0.0 to 1.0) per dimension."""

    statements: float = DEFAULT_WATERMARK
    """Minimum statement coverage ratio."""

    branches: float = DEFAULT_WATERMARK
    """Minimum branch coverage ratio."""

    functions: float = DEFAULT_WATERMARK
    """Minimum function coverage ratio."""

    def __post_init__(self) -> None:
        for name in ("statements", "branches", "functions"):
            value = getattr(self, name)
            if (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or math.isnan(value)
                or not 0.0 <= value <= 1.0
            ):
                msg = f"watermarks.{name} must be a ratio between 0 and 1 (got: {value!r})"
                raise ConfigurationError(msg)

    @classmethod
    def from_percentages(
        cls,
        *,
        statements: float = DEFAULT_WATERMARK * 100,
        branches: float = DEFAULT_WATERMARK * 100,
        functions: float = DEFAULT_WATERMARK * 100,
    ) -> Watermarks:
        """Build watermarks from percentages (0 to 100)."""
        return cls(
            statements=statements / _MAX_PERCENTAGE,
            branches=branches / _MAX_PERCENTAGE,
            functions=functions / _MAX_PERCENTAGE,
        )


@dataclass
class ReportConfig:
    """Clover report configuration."""

    dir: str = "."
    """Directory the report artifacts are written to."""

    file: str = DEFAULT_REPORT_FILE
    """XML report file name; the digest is written next to it as ``<file>.json``."""

    watermarks: Watermarks = field(default_factory=Watermarks)
    """Per-file coverage minimums."""

    sync: bool = False
    """Write artifacts with blocking I/O instead of worker threads."""

    language: str = "javascript"
    """Source language used to tell comment lines from code lines."""

    def __post_init__(self) -> None:
        errors = validate_config(self)
        if errors:
            raise ConfigurationError("; ".join(errors))

    @property
    def output_path(self) -> Path:
        """Path of the XML report."""
        return Path(self.dir) / self.file

    @property
    def digest_path(self) -> Path:
        """Path of the JSON digest."""
        return Path(self.dir) / f"{self.file}.json"


def _parse_watermark(name: str, value: Any) -> float:
    """Parse a percentage or an Istanbul ``[low, high]`` pair into a ratio."""
    if isinstance(value, list):
        if len(value) != _WATERMARK_PAIR_LENGTH:
            msg = f"report.watermarks.{name} must be a percentage or a [low, high] pair"
            raise ConfigurationError(msg)
        value = value[0]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"report.watermarks.{name} must be a number (got: {value!r})"
        raise ConfigurationError(msg)
    return float(value) / _MAX_PERCENTAGE


def _parse_watermarks(raw: dict[str, Any]) -> Watermarks:
    """Parse the ``report.watermarks`` section."""
    watermarks_raw = raw.get("watermarks", {})
    if not isinstance(watermarks_raw, dict):
        watermarks_raw = {}

    default = DEFAULT_WATERMARK * _MAX_PERCENTAGE
    return Watermarks(
        statements=_parse_watermark("statements", watermarks_raw.get("statements", default)),
        branches=_parse_watermark("branches", watermarks_raw.get("branches", default)),
        functions=_parse_watermark("functions", watermarks_raw.get("functions", default)),
    )


def load_config(root: str | Path, config_file: str | Path | None = None) -> ReportConfig:
    """Load the report configuration for a project.

    Reads ``config_file`` or ``<root>/.covtree.yml`` and falls back to
    defaults when the file is missing or incomplete. A relative ``dir`` is
    resolved against *root*.

    Raises:
        ConfigurationError: When the file holds invalid values.
    """
    root_path = Path(root).resolve()
    path = Path(config_file) if config_file else root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if path.is_file():
        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            msg = f"Invalid YAML in {path}: {e}"
            raise ConfigurationError(msg) from e
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
    elif config_file:
        msg = f"Configuration file not found: {path}"
        raise ConfigurationError(msg)

    report_raw = raw.get("report", {})
    if not isinstance(report_raw, dict):
        report_raw = {}

    return ReportConfig(
        dir=str(root_path / str(report_raw.get("dir", "."))),
        file=str(report_raw.get("file", DEFAULT_REPORT_FILE)),
        watermarks=_parse_watermarks(report_raw),
        sync=bool(report_raw.get("sync", False)),
        language=str(report_raw.get("language", "javascript")),
    )


def validate_config(config: ReportConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid. Watermarks validate
    themselves on construction.
    """
    errors: list[str] = []

    if not config.file:
        errors.append("report.file is required")
    elif Path(config.file).name != config.file:
        errors.append(f"report.file must be a bare file name (got: {config.file})")

    if config.language not in KNOWN_LANGUAGES:
        errors.append(
            f"report.language must be one of {', '.join(sorted(KNOWN_LANGUAGES))} "
            f"(got: {config.language})"
        )

    return errors
