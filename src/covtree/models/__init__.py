"""Coverage summary and tree models."""

from covtree.models.coverage import CoverageCounts, FileSummary, combine, summarize
from covtree.models.tree import FileNode, PackageNode, ProjectNode, build_tree, normalize_path

__all__ = [
    "CoverageCounts",
    "FileNode",
    "FileSummary",
    "PackageNode",
    "ProjectNode",
    "build_tree",
    "combine",
    "normalize_path",
    "summarize",
]
