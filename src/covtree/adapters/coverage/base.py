"""Base classes and data models for coverage collectors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from covtree.errors import MalformedCoverageDataError

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class BranchPoint:
    """A single branch point (if/else, switch, ternary, logical expression)."""

    line_number: int
    """Source line hosting the branch point."""

    outcomes: int
    """Number of outcome slots (2 for if/else, N for an N-way switch)."""

    kind: str = ""
    """Branch type as reported by the collector (``if``, ``cond-expr``, ...)."""


@dataclass
class FileCoverage:
    """Raw coverage counters for a single source file.

    Mirrors Istanbul's per-file object: line hits keyed by line number,
    branch points keyed by id with their outcome counts, and function hits
    keyed by id. Treated as read-only once handed to the report core.
    """

    path: str
    line_hits: dict[int, int] = field(default_factory=dict)
    branch_map: dict[str, BranchPoint] = field(default_factory=dict)
    branch_hits: dict[str, list[int]] = field(default_factory=dict)
    function_hits: dict[str, int] = field(default_factory=dict)

    def validate(self) -> None:
        """Raise ``MalformedCoverageDataError`` unless every map is well formed."""
        for name in ("line_hits", "branch_map", "branch_hits", "function_hits"):
            if not isinstance(getattr(self, name), dict):
                msg = f"{name} must be a mapping (got {type(getattr(self, name)).__name__})"
                raise MalformedCoverageDataError(msg, self.path)

        for line, count in self.line_hits.items():
            _check_count(count, f"line {line}", self.path)
        for fn_id, count in self.function_hits.items():
            _check_count(count, f"function {fn_id}", self.path)

        for branch_id, counts in self.branch_hits.items():
            if not isinstance(counts, list):
                msg = f"branch {branch_id} hits must be a list of counts"
                raise MalformedCoverageDataError(msg, self.path)
            for count in counts:
                _check_count(count, f"branch {branch_id}", self.path)

        for branch_id, point in self.branch_map.items():
            if not isinstance(point, BranchPoint):
                msg = f"branch {branch_id} has no location"
                raise MalformedCoverageDataError(msg, self.path)
            if branch_id not in self.branch_hits:
                msg = f"branch {branch_id} has no hit counts"
                raise MalformedCoverageDataError(msg, self.path)


def _check_count(count: Any, what: str, path: str) -> None:
    # bool is an int subclass but never a valid hit count
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        msg = f"{what} has invalid hit count {count!r}"
        raise MalformedCoverageDataError(msg, path)


class CoverageCollector(ABC):
    """Abstract source of per-file coverage data.

    The report core only ever asks a collector which files it knows about
    and for the raw counters of one of them.
    """

    @abstractmethod
    def list_covered_files(self) -> set[str]:
        """Return the keys (file paths) of every file with coverage data."""

    @abstractmethod
    def coverage_of(self, path: str) -> FileCoverage:
        """Return the raw coverage counters for *path*.

        Raises:
            KeyError: When *path* is not known to this collector.
        """


class MemoryCollector(CoverageCollector):
    """Collector backed by an in-process mapping of path to ``FileCoverage``."""

    def __init__(self, files: Mapping[str, FileCoverage] | None = None) -> None:
        self._files: dict[str, FileCoverage] = dict(files or {})

    def add(self, coverage: FileCoverage) -> None:
        """Register *coverage*, replacing any previous data for the same path."""
        self._files[coverage.path] = coverage

    def list_covered_files(self) -> set[str]:
        return set(self._files)

    def coverage_of(self, path: str) -> FileCoverage:
        return self._files[path]
