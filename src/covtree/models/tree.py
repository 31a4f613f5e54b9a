"""Coverage tree — the project's directory hierarchy with rolled-up metrics."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, TypeVar

from covtree.models.coverage import FileSummary, combine

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

logger = logging.getLogger(__name__)

_E = TypeVar("_E")


class TreeEmitter(Protocol[_E]):
    """Renders tree nodes into output elements of type ``_E``.

    The nodes decide what is emitted and in which order; the emitter only
    builds one element per call and returns it as the parent for the
    node's contents.
    """

    def project(self, node: ProjectNode) -> _E: ...

    def package(self, node: PackageNode, parent: _E) -> _E: ...

    def file(self, node: FileNode, parent: _E) -> None: ...


@dataclass
class FileNode:
    """A source file in the coverage tree."""

    path: str
    """Normalized full path of the file."""

    source_key: str
    """Key under which the collector knows this file."""

    metrics: FileSummary
    """The file's own coverage summary."""

    @property
    def name(self) -> str:
        """Base name of the file."""
        return posixpath.basename(self.path)

    def emit(self, emitter: TreeEmitter[_E], parent: _E) -> None:
        emitter.file(self, parent)


@dataclass
class PackageNode:
    """A directory in the coverage tree."""

    path: str
    """Normalized directory path (empty for a relative, unnamed root)."""

    relative_name: str = ""
    """Path relative to the project root (empty for the root itself)."""

    children: list[PackageNode | FileNode] = field(default_factory=list)
    """Child directories and files, ordered by name."""

    package_metrics: FileSummary | None = None
    """Sum over all descendant files, ``None`` when the directory holds none."""

    @property
    def files(self) -> list[FileNode]:
        """Direct file children."""
        return [child for child in self.children if isinstance(child, FileNode)]

    @property
    def packages(self) -> list[PackageNode]:
        """Direct directory children."""
        return [child for child in self.children if isinstance(child, PackageNode)]

    def iter_packages(self) -> Iterator[PackageNode]:
        """Yield this directory and every descendant directory, pre-order."""
        yield self
        for package in self.packages:
            yield from package.iter_packages()

    def iter_files(self) -> Iterator[FileNode]:
        """Yield every file at or below this directory, pre-order."""
        for package in self.iter_packages():
            yield from package.files

    def emit(self, emitter: TreeEmitter[_E], parent: _E) -> None:
        """Emit this directory and its files, then its subdirectories.

        Every directory lands directly under *parent*, so the output is flat
        and in the order of ``iter_packages``. A directory without files
        emits nothing of its own.
        """
        if self.package_metrics is not None:
            element = emitter.package(self, parent)
            for node in self.files:
                node.emit(emitter, element)
        for package in self.packages:
            package.emit(emitter, parent)


@dataclass
class ProjectNode:
    """Root of the coverage tree, standing for the whole project."""

    root: PackageNode

    @property
    def path(self) -> str:
        return self.root.path

    @property
    def metrics(self) -> FileSummary:
        """Project-wide coverage summary."""
        return self.root.package_metrics or FileSummary.empty()

    def iter_packages(self) -> Iterator[PackageNode]:
        """Yield every directory that contains at least one file, pre-order."""
        return (p for p in self.root.iter_packages() if p.package_metrics is not None)

    def iter_files(self) -> Iterator[FileNode]:
        return self.root.iter_files()

    def emit(self, emitter: TreeEmitter[_E]) -> _E:
        """Emit the project element followed by every package, and return it."""
        element = emitter.project(self)
        self.root.emit(emitter, element)
        return element


def normalize_path(path: str) -> str:
    """Normalize *path* to forward slashes with redundant segments removed."""
    if not path:
        return ""
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return "" if normalized == "." else normalized


def _join(parent: str, segment: str) -> str:
    if not parent:
        return segment
    if parent.endswith("/"):
        return parent + segment
    return f"{parent}/{segment}"


def build_tree(
    paths: Iterable[str],
    summary_of: Callable[[str], FileSummary],
) -> ProjectNode:
    """Build the coverage tree for *paths*.

    Paths sharing a directory prefix share directory nodes. The root is the
    deepest directory common to every file. Keys that normalize to the same
    logical path collapse into a single file node; the first key in sorted
    order supplies its coverage.

    Args:
        paths: Collector keys of every covered file.
        summary_of: Returns the summary for a collector key.

    Returns:
        The project node wrapping the fully aggregated tree.
    """
    entries: dict[str, str] = {}
    for key in sorted(paths):
        normalized = normalize_path(key)
        if normalized in entries:
            logger.warning(
                "Coverage for %s duplicates %s; keeping the first", key, entries[normalized]
            )
            continue
        entries[normalized] = key

    split = {normalized: normalized.split("/") for normalized in entries}
    common = _common_prefix([segments[:-1] for segments in split.values()])
    root_path = "/" if common == [""] else "/".join(common)
    root = PackageNode(path=root_path)

    directories: dict[tuple[str, ...], PackageNode] = {(): root}
    for normalized, key in entries.items():
        relative = split[normalized][len(common) :]
        parent = root
        for depth in range(1, len(relative)):
            prefix = tuple(relative[:depth])
            node = directories.get(prefix)
            if node is None:
                node = PackageNode(
                    path=_join(parent.path, relative[depth - 1]),
                    relative_name="/".join(prefix),
                )
                directories[prefix] = node
                parent.children.append(node)
            parent = node
        parent.children.append(FileNode(path=normalized, source_key=key, metrics=summary_of(key)))

    _finalize(root)
    logger.debug("Built coverage tree rooted at %r with %d files", root_path, len(entries))
    return ProjectNode(root=root)


def _common_prefix(lists: list[list[str]]) -> list[str]:
    if not lists:
        return []
    prefix = lists[0]
    for segments in lists[1:]:
        size = 0
        for a, b in zip(prefix, segments, strict=False):
            if a != b:
                break
            size += 1
        prefix = prefix[:size]
    return list(prefix)


def _finalize(node: PackageNode) -> FileSummary | None:
    """Sort children and compute ``package_metrics`` bottom-up."""
    node.children.sort(key=lambda child: posixpath.basename(child.path.rstrip("/")))

    total: FileSummary | None = None
    for child in node.children:
        metrics = child.metrics if isinstance(child, FileNode) else _finalize(child)
        if metrics is not None:
            total = metrics if total is None else combine(total, metrics)

    node.package_metrics = total
    return total
