"""Report emitters."""

from covtree.reporters.clover import CloverReport, CloverReporter, build_project_tree
from covtree.reporters.digest import (
    Clock,
    DigestBuilder,
    DigestEntry,
    FixedClock,
    ReportDigest,
    SystemClock,
)

__all__ = [
    "Clock",
    "CloverReport",
    "CloverReporter",
    "DigestBuilder",
    "DigestEntry",
    "FixedClock",
    "ReportDigest",
    "SystemClock",
    "build_project_tree",
]
