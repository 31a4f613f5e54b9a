"""Map branch outcomes back onto the source lines hosting them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from covtree.adapters.coverage.base import FileCoverage


@dataclass(frozen=True)
class LineBranchCoverage:
    """Branch outcomes taken on a single source line."""

    covered: int
    """Outcomes executed at least once."""

    total: int
    """All outcomes of every branch point on the line."""

    @property
    def percent(self) -> float:
        """Return covered outcomes as a percentage (0.0-100.0)."""
        return 100.0 * self.covered / self.total

    @property
    def missed(self) -> int:
        return self.total - self.covered


def correlate(coverage: FileCoverage) -> dict[int, LineBranchCoverage]:
    """Return branch coverage per line number.

    Outcome counts of all branch points on the same line (several ternaries,
    say) are summed. Lines whose branch points have no outcomes are left out.

    Raises:
        MalformedCoverageDataError: When a branch point has no hit counts or
            the maps are otherwise invalid.
    """
    coverage.validate()

    buckets: dict[int, list[int]] = {}
    for branch_id, point in coverage.branch_map.items():
        buckets.setdefault(point.line_number, []).extend(coverage.branch_hits[branch_id])

    return {
        line: LineBranchCoverage(covered=sum(1 for c in counts if c > 0), total=len(counts))
        for line, counts in sorted(buckets.items())
        if counts
    }
