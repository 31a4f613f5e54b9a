"""Clover XML reporter — generates Clover 3.2 coverage reports.

Produces the XML consumed by Clover-aware CI plugins (Jenkins, Bamboo,
GitLab) from a coverage tree, together with a JSON digest that lists every
file as passing or failing its coverage watermarks.
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from covtree.analyzers.branches import correlate
from covtree.analyzers.thresholds import evaluate
from covtree.errors import FilesystemError
from covtree.models.coverage import summarize
from covtree.models.tree import build_tree
from covtree.reporters.digest import DigestBuilder, ReportDigest, SystemClock, epoch_millis
from covtree.utils.files import LocalFileSystem
from covtree.utils.sloc import LineCount, line_counter_for

if TYPE_CHECKING:
    from collections.abc import Callable

    from covtree.adapters.coverage.base import CoverageCollector, FileCoverage
    from covtree.config import ReportConfig, Watermarks
    from covtree.models.coverage import FileSummary
    from covtree.models.tree import FileNode, PackageNode, ProjectNode
    from covtree.reporters.digest import Clock
    from covtree.utils.files import FileSystem
    from covtree.utils.sloc import LineCounter

logger = logging.getLogger(__name__)

_CLOVER_VERSION = "3.2.0"
_PROJECT_NAME = "All Files"
_DEFAULT_PACKAGE = "default"
_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


@dataclass(frozen=True)
class CloverReport:
    """Rendered report artifacts."""

    xml: str
    digest: ReportDigest

    @property
    def json(self) -> str:
        return self.digest.to_json()


class _CloverEmitter:
    """Builds Clover elements for one walk of the coverage tree.

    Evaluates every file it emits and records the verdict in *digest*.
    """

    def __init__(
        self,
        coverage_of: Callable[[str], FileCoverage],
        watermarks: Watermarks,
        digest: DigestBuilder,
        lines: LineCount,
    ) -> None:
        self._coverage_of = coverage_of
        self._watermarks = watermarks
        self._digest = digest
        self._lines = lines
        self.document = ET.Element("coverage")

    def project(self, node: ProjectNode) -> ET.Element:
        stamp = str(epoch_millis(self._digest.start))
        self.document.set("generated", stamp)
        self.document.set("clover", _CLOVER_VERSION)

        project_elem = ET.SubElement(self.document, "project")
        project_elem.set("timestamp", stamp)
        project_elem.set("name", _PROJECT_NAME)
        _add_project_metrics(project_elem, node, self._lines)
        return project_elem

    def package(self, node: PackageNode, parent: ET.Element) -> ET.Element:
        package_elem = ET.SubElement(parent, "package")
        package_elem.set("name", package_name(node))
        _add_metrics(package_elem, node.package_metrics)
        return package_elem

    def file(self, node: FileNode, parent: ET.Element) -> None:
        file_elem = ET.SubElement(parent, "file")
        file_elem.set("name", node.name)
        file_elem.set("path", node.path)
        _add_metrics(file_elem, node.metrics)

        verdict = evaluate(node.metrics, self._watermarks)
        self._digest.record(node, verdict)
        logger.debug("%s: %s", node.path, "pass" if verdict.passed else verdict.error)

        coverage = self._coverage_of(node.source_key)
        branches = correlate(coverage)
        for line_number, count in sorted(coverage.line_hits.items()):
            line_elem = ET.SubElement(file_elem, "line")
            line_elem.set("num", str(line_number))
            line_elem.set("count", str(count))
            branch = branches.get(line_number)
            if branch is None:
                line_elem.set("type", "stmt")
            else:
                line_elem.set("type", "cond")
                line_elem.set("truecount", str(branch.covered))
                line_elem.set("falsecount", str(branch.missed))


class CloverReporter:
    """Generate Clover XML reports and pass/fail digests.

    Args:
        clock: Time source for the report timestamps and digest duration.
        line_counter: Counts code/comment lines for the ``loc``/``ncloc``
            project metrics. Defaults to the JavaScript counter.
        filesystem: Reads source files and writes the artifacts. Defaults
            to the local disk with atomic writes.
        source_root: Directory that relative collector keys are read from.
            Defaults to the current working directory.
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        line_counter: LineCounter | None = None,
        filesystem: FileSystem | None = None,
        source_root: Path | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._line_counter = line_counter or line_counter_for("javascript")
        self._filesystem = filesystem or LocalFileSystem()
        self._source_root = source_root

    @classmethod
    def from_config(
        cls,
        config: ReportConfig,
        *,
        clock: Clock | None = None,
        filesystem: FileSystem | None = None,
        source_root: Path | None = None,
    ) -> CloverReporter:
        return cls(
            clock=clock,
            line_counter=line_counter_for(config.language),
            filesystem=filesystem,
            source_root=source_root,
        )

    # ── Rendering ────────────────────────────────────────────────

    def render(
        self,
        project: ProjectNode,
        coverage_of: Callable[[str], FileCoverage],
        watermarks: Watermarks,
    ) -> CloverReport:
        """Render the XML report and digest for *project*.

        Args:
            project: Fully built coverage tree.
            coverage_of: Returns the raw coverage of a file's collector key.
            watermarks: Per-file coverage minimums.

        Returns:
            The rendered XML text and the finalized digest.
        """
        lines = sum(
            (self._count_file(node) for node in project.iter_files()),
            LineCount(),
        )
        return self._render(project, coverage_of, watermarks, lines)

    async def render_async(
        self,
        project: ProjectNode,
        coverage_of: Callable[[str], FileCoverage],
        watermarks: Watermarks,
    ) -> CloverReport:
        """Like ``render``, counting source lines of all files concurrently."""
        counts = await asyncio.gather(
            *(asyncio.to_thread(self._count_file, node) for node in project.iter_files())
        )
        return self._render(project, coverage_of, watermarks, sum(counts, LineCount()))

    def _source_path(self, node: FileNode) -> Path:
        path = Path(node.source_key)
        if self._source_root is None or path.is_absolute():
            return path
        return self._source_root / path

    def _count_file(self, node: FileNode) -> LineCount:
        try:
            return self._line_counter.count(self._filesystem.read_text(self._source_path(node)))
        except FilesystemError as e:
            logger.warning("Skipping line count for %s: %s", node.path, e)
            return LineCount()

    def _render(
        self,
        project: ProjectNode,
        coverage_of: Callable[[str], FileCoverage],
        watermarks: Watermarks,
        lines: LineCount,
    ) -> CloverReport:
        digest = DigestBuilder(self._clock)
        emitter = _CloverEmitter(coverage_of, watermarks, digest, lines)
        project.emit(emitter)

        ET.indent(emitter.document, space="  ")
        xml_text = _XML_DECLARATION + ET.tostring(emitter.document, encoding="unicode") + "\n"
        return CloverReport(xml=xml_text, digest=digest.finish())

    # ── Writing ──────────────────────────────────────────────────

    def generate(self, collector: CoverageCollector, config: ReportConfig) -> CloverReport:
        """Build, render and write the report with blocking I/O.

        Nothing is written unless rendering succeeds. The XML report is in
        place before the digest is written.
        """
        project = build_project_tree(collector)
        report = self.render(project, collector.coverage_of, config.watermarks)
        self._filesystem.write_text(config.output_path, report.xml)
        self._filesystem.write_text(config.digest_path, report.json)
        _log_written(config, report)
        return report

    async def generate_async(
        self, collector: CoverageCollector, config: ReportConfig
    ) -> CloverReport:
        """Async variant of ``generate``.

        Honors ``config.sync`` by writing artifacts on the event loop thread
        instead of in worker threads.
        """
        project = build_project_tree(collector)
        report = await self.render_async(project, collector.coverage_of, config.watermarks)
        if config.sync:
            self._filesystem.write_text(config.output_path, report.xml)
            self._filesystem.write_text(config.digest_path, report.json)
        else:
            await self._filesystem.write_text_async(config.output_path, report.xml)
            await self._filesystem.write_text_async(config.digest_path, report.json)
        _log_written(config, report)
        return report


def build_project_tree(collector: CoverageCollector) -> ProjectNode:
    """Summarize every file of *collector* and build the coverage tree."""

    def summary_of(key: str) -> FileSummary:
        return summarize(collector.coverage_of(key))

    return build_tree(collector.list_covered_files(), summary_of)


def package_name(package: PackageNode) -> str:
    """Java-style dotted package name, e.g. ``src/utils`` becomes ``src.utils``."""
    name = (package.relative_name or package.path).replace("/", ".").strip(".")
    return name or _DEFAULT_PACKAGE


def _metric_attributes(metrics: FileSummary) -> dict[str, int]:
    return {
        "statements": metrics.statements.total,
        "coveredstatements": metrics.statements.covered,
        "conditionals": metrics.branches.total,
        "coveredconditionals": metrics.branches.covered,
        "methods": metrics.functions.total,
        "coveredmethods": metrics.functions.covered,
    }


def _add_metrics(parent: ET.Element, metrics: FileSummary | None) -> ET.Element:
    metrics_elem = ET.SubElement(parent, "metrics")
    if metrics is not None:
        for key, value in _metric_attributes(metrics).items():
            metrics_elem.set(key, str(value))
    return metrics_elem


def _add_project_metrics(
    parent: ET.Element,
    project: ProjectNode,
    lines: LineCount,
) -> None:
    metrics = project.metrics
    package_count = sum(1 for _ in project.iter_packages())
    file_count = sum(1 for _ in project.iter_files())
    metrics_elem = _add_metrics(parent, metrics)
    metrics_elem.set("elements", str(metrics.elements.total))
    metrics_elem.set("coveredelements", str(metrics.elements.covered))
    metrics_elem.set("complexity", "0")
    metrics_elem.set("packages", str(package_count))
    metrics_elem.set("files", str(file_count))
    metrics_elem.set("classes", str(file_count))
    metrics_elem.set("loc", str(lines.total))
    metrics_elem.set("ncloc", str(lines.source))


def _log_written(config: ReportConfig, report: CloverReport) -> None:
    logger.info(
        "Clover report written to %s (%d passing, %d failing files)",
        config.output_path,
        len(report.digest.passes),
        len(report.digest.failures),
    )
    logger.info("Coverage digest written to %s", config.digest_path)
