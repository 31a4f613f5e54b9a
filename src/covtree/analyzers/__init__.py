"""Per-file analyses run while the report is emitted."""

from covtree.analyzers.branches import LineBranchCoverage, correlate
from covtree.analyzers.thresholds import ThresholdVerdict, evaluate

__all__ = [
    "LineBranchCoverage",
    "ThresholdVerdict",
    "correlate",
    "evaluate",
]
