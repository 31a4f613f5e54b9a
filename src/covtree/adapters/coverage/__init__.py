"""Coverage collectors feeding the report core."""

from covtree.adapters.coverage.base import (
    BranchPoint,
    CoverageCollector,
    FileCoverage,
    MemoryCollector,
)
from covtree.adapters.coverage.istanbul import IstanbulCollector, find_coverage_file

__all__ = [
    "BranchPoint",
    "CoverageCollector",
    "FileCoverage",
    "IstanbulCollector",
    "MemoryCollector",
    "find_coverage_file",
]
