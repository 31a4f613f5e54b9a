"""Istanbul coverage collector for JavaScript/TypeScript projects.

Reads the ``coverage-final.json`` produced by nyc, c8, Jest and Vitest and
exposes it through the ``CoverageCollector`` interface.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from covtree.adapters.coverage.base import BranchPoint, CoverageCollector, FileCoverage
from covtree.errors import FilesystemError, MalformedCoverageDataError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────

# Coverage file locations (Istanbul standard paths)
_COVERAGE_PATHS = [
    "coverage/coverage-final.json",
    ".nyc_output/coverage-final.json",
]


# ── Collector ────────────────────────────────────────────────────


class IstanbulCollector(CoverageCollector):
    """Coverage collector over Istanbul's JSON coverage format.

    Istanbul format::

        {
          "/path/to/file.js": {
            "path": "/path/to/file.js",
            "statementMap": { "0": {"start": {"line": 1}, ...}, ... },
            "fnMap": { "0": {...}, ... },
            "branchMap": { "0": {"loc": {"start": {"line": 4}}, "type": "if", ...} },
            "s": { "0": 1, "1": 0, ... },   // statement hit counts
            "f": { "0": 1, ... },           // function hit counts
            "b": { "0": [1, 0], ... },      // branch outcome counts
            "l": { "1": 1, ... }            // optional derived line hits
          }
        }
    """

    def __init__(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict):
            msg = "Istanbul coverage must be a JSON object keyed by file path"
            raise MalformedCoverageDataError(msg)
        self._files = {key: _parse_file_coverage(key, value) for key, value in data.items()}

    @classmethod
    def from_file(cls, coverage_file: Path) -> IstanbulCollector:
        """Load a ``coverage-final.json`` file."""
        try:
            with coverage_file.open(encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON in {coverage_file}: {e}"
            raise MalformedCoverageDataError(msg) from e
        except OSError as e:
            msg = f"Failed to read coverage file {coverage_file}: {e}"
            raise FilesystemError(msg, coverage_file) from e

        logger.info("Loaded Istanbul coverage for %d files from %s", len(data), coverage_file)
        return cls(data)

    def list_covered_files(self) -> set[str]:
        return set(self._files)

    def coverage_of(self, path: str) -> FileCoverage:
        return self._files[path]


def find_coverage_file(project_path: Path) -> Path | None:
    """Return the first standard Istanbul coverage file under *project_path*."""
    for coverage_path in _COVERAGE_PATHS:
        full_path = project_path / coverage_path
        if full_path.is_file():
            return full_path
    logger.warning("No coverage file found in %s", project_path)
    return None


# ── Parsing ──────────────────────────────────────────────────────


def _parse_file_coverage(key: str, data: Any) -> FileCoverage:
    """Parse coverage data for a single file."""
    if not isinstance(data, dict):
        msg = "file coverage must be an object"
        raise MalformedCoverageDataError(msg, key)

    coverage = FileCoverage(
        path=key,
        line_hits=_parse_line_hits(key, data),
        branch_map=_parse_branch_map(key, _require_map(key, data, "branchMap")),
        branch_hits={str(k): v for k, v in _require_map(key, data, "b").items()},
        function_hits={str(k): v for k, v in _require_map(key, data, "f").items()},
    )
    coverage.validate()
    return coverage


def _require_map(key: str, data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    if not isinstance(value, dict):
        msg = f"missing or invalid '{name}' map"
        raise MalformedCoverageDataError(msg, key)
    return value


def _parse_line_hits(key: str, data: dict[str, Any]) -> dict[int, int]:
    """Return line hits, deriving them from statement data when ``l`` is absent."""
    if "l" in data:
        return {_as_line(key, line): count for line, count in _require_map(key, data, "l").items()}

    statement_map = _require_map(key, data, "statementMap")
    statement_counts = _require_map(key, data, "s")

    # A line's hit count is the highest count of any statement starting on it
    lines: dict[int, int] = {}
    for stmt_id, count in statement_counts.items():
        stmt_info = statement_map.get(stmt_id)
        if not isinstance(stmt_info, dict):
            msg = f"statement {stmt_id} has no location"
            raise MalformedCoverageDataError(msg, key)
        line = _as_line(key, stmt_info.get("start", {}).get("line"))
        if not isinstance(count, int) or isinstance(count, bool):
            msg = f"statement {stmt_id} has invalid hit count {count!r}"
            raise MalformedCoverageDataError(msg, key)
        if line not in lines or lines[line] < count:
            lines[line] = count

    return dict(sorted(lines.items()))


def _parse_branch_map(key: str, branch_map: dict[str, Any]) -> dict[str, BranchPoint]:
    points: dict[str, BranchPoint] = {}
    for branch_id, info in branch_map.items():
        if not isinstance(info, dict):
            msg = f"branch {branch_id} has no location"
            raise MalformedCoverageDataError(msg, key)
        # Legacy Istanbul stores the line directly; newer versions use loc.start.line
        line = info.get("line")
        if line is None:
            line = info.get("loc", {}).get("start", {}).get("line")
        points[str(branch_id)] = BranchPoint(
            line_number=_as_line(key, line),
            outcomes=len(info.get("locations", [])),
            kind=str(info.get("type", "")),
        )
    return points


def _as_line(key: str, value: Any) -> int:
    try:
        line = int(value)
    except (TypeError, ValueError) as e:
        msg = f"invalid line number {value!r}"
        raise MalformedCoverageDataError(msg, key) from e
    if line < 0:
        msg = f"invalid line number {value!r}"
        raise MalformedCoverageDataError(msg, key)
    return line
