"""Coverage summary models and the metrics rollup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from covtree.adapters.coverage.base import FileCoverage


@dataclass(frozen=True)
class CoverageCounts:
    """Total and covered counts for one coverage dimension."""

    total: int = 0
    """Number of statements, branch outcomes or functions."""

    covered: int = 0
    """How many of ``total`` were executed at least once."""

    @property
    def ratio(self) -> float:
        """Return ``covered / total`` (0.0 to 1.0), or 1.0 when nothing is measured."""
        if self.total == 0:
            return 1.0
        return self.covered / self.total

    def __add__(self, other: CoverageCounts) -> CoverageCounts:
        return CoverageCounts(total=self.total + other.total, covered=self.covered + other.covered)


@dataclass(frozen=True)
class FileSummary:
    """Coverage metrics for a file, a package, or the whole project."""

    statements: CoverageCounts = CoverageCounts()
    """Statement (line) coverage counts."""

    branches: CoverageCounts = CoverageCounts()
    """Branch outcome coverage counts."""

    functions: CoverageCounts = CoverageCounts()
    """Function coverage counts."""

    @classmethod
    def empty(cls) -> FileSummary:
        """Return the identity element of ``combine``."""
        return cls()

    @property
    def elements(self) -> CoverageCounts:
        """Statements, branches and functions counted together."""
        return self.statements + self.branches + self.functions


def summarize(coverage: FileCoverage) -> FileSummary:
    """Compute the summary metrics of a single file.

    Every entry present in a map counts toward ``total``; only entries with a
    non-zero hit count count toward ``covered``.

    Raises:
        MalformedCoverageDataError: When any of the coverage maps is missing
            or holds invalid counts.
    """
    coverage.validate()

    lines = coverage.line_hits.values()
    functions = coverage.function_hits.values()
    outcomes = [count for counts in coverage.branch_hits.values() for count in counts]

    return FileSummary(
        statements=CoverageCounts(total=len(lines), covered=sum(1 for c in lines if c > 0)),
        branches=CoverageCounts(total=len(outcomes), covered=sum(1 for c in outcomes if c > 0)),
        functions=CoverageCounts(
            total=len(functions), covered=sum(1 for c in functions if c > 0)
        ),
    )


def combine(a: FileSummary, b: FileSummary) -> FileSummary:
    """Return the elementwise sum of two summaries."""
    return FileSummary(
        statements=a.statements + b.statements,
        branches=a.branches + b.branches,
        functions=a.functions + b.functions,
    )
