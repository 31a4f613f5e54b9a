"""Threshold evaluation — pass/fail verdicts against coverage watermarks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from covtree.config import Watermarks
    from covtree.models.coverage import CoverageCounts, FileSummary


# (summary attribute, message noun, plural used in the counts clause)
_DIMENSIONS = (
    ("statements", "statement", "statements"),
    ("branches", "branch", "branches"),
    ("functions", "function", "functions"),
)


@dataclass(frozen=True)
class ThresholdVerdict:
    """Outcome of checking one file against the watermarks."""

    violations: list[str] = field(default_factory=list)
    """One message per violated dimension, in statement/branch/function order."""

    @property
    def passed(self) -> bool:
        return not self.violations

    @property
    def error(self) -> str:
        """All violations as one multi-line explanation."""
        return "\n".join(self.violations)


def format_percent(ratio: float) -> str:
    """Render *ratio* as a percentage rounded to two decimals, e.g. ``66.67``."""
    return f"{round(ratio * 100, 2):g}"


def _violation(noun: str, plural: str, counts: CoverageCounts, required: float) -> str:
    return (
        f"Insufficient {noun} coverage: actual={format_percent(counts.ratio)}% "
        f"required={format_percent(required)}% "
        f"({plural} covered = {counts.covered} total {plural} = {counts.total})"
    )


def evaluate(summary: FileSummary, watermarks: Watermarks) -> ThresholdVerdict:
    """Check *summary* against *watermarks*.

    A dimension with nothing to measure (``total == 0``) has ratio 1 and never
    violates.
    """
    violations = [
        _violation(noun, plural, getattr(summary, attr), getattr(watermarks, attr))
        for attr, noun, plural in _DIMENSIONS
        if getattr(summary, attr).ratio < getattr(watermarks, attr)
    ]
    return ThresholdVerdict(violations=violations)
