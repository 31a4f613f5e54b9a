"""Tests for the Clover XML reporter (reporters/clover.py)."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from defusedxml import ElementTree

from covtree.adapters.coverage.base import BranchPoint, FileCoverage, MemoryCollector
from covtree.config import ReportConfig, Watermarks
from covtree.errors import FilesystemError, MalformedCoverageDataError
from covtree.reporters.clover import CloverReporter, build_project_tree, package_name
from covtree.reporters.digest import FixedClock

_START = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
_STRICT = Watermarks(statements=0.8, branches=0.8, functions=0.8)

# ── Helpers ──────────────────────────────────────────────────────


def _write_file(root: Path, rel: str, content: str) -> Path:
    """Write *content* to a file under *root* and return its path."""
    f = root / rel
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(content, encoding="utf-8")
    return f


def _reporter() -> CloverReporter:
    return CloverReporter(clock=FixedClock(_START, step=timedelta(milliseconds=5)))


def _single_file(tmp_path: Path) -> MemoryCollector:
    """The ``a.js`` example: two statements (one hit), no branches, one called function."""
    path = _write_file(tmp_path, "a.js", "var a = 1;\nvar b = 2;\n")
    return MemoryCollector(
        {
            str(path): FileCoverage(
                path=str(path),
                line_hits={1: 1, 2: 0},
                function_hits={"0": 1},
            )
        }
    )


def _project(tmp_path: Path) -> MemoryCollector:
    index = _write_file(
        tmp_path,
        "src/index.js",
        "// entry point\nfunction main(x) {\n  return x ? 1 : 2;\n}\n\n/* done */\n",
    )
    strings = _write_file(tmp_path, "src/util/strings.js", "function up(s) {\n  return s;\n}\n")
    return MemoryCollector(
        {
            str(index): FileCoverage(
                path=str(index),
                line_hits={2: 1, 3: 4},
                branch_map={
                    "0": BranchPoint(line_number=3, outcomes=2),
                    "1": BranchPoint(line_number=3, outcomes=2),
                },
                branch_hits={"0": [4, 0], "1": [1, 3]},
                function_hits={"0": 1},
            ),
            str(strings): FileCoverage(
                path=str(strings),
                line_hits={1: 0, 2: 0},
                function_hits={"0": 0},
            ),
        }
    )


def _render(collector: MemoryCollector, watermarks: Watermarks = _STRICT) -> tuple[str, str]:
    project = build_project_tree(collector)
    report = _reporter().render(project, collector.coverage_of, watermarks)
    return report.xml, report.json


# ── Rendering ────────────────────────────────────────────────────


class TestRender:
    def test_single_file_example(self, tmp_path: Path) -> None:
        xml_text, json_text = _render(_single_file(tmp_path))

        assert xml_text.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<coverage ')
        root = ElementTree.fromstring(xml_text)
        file_elem = root.find("project/package/file")
        assert file_elem is not None
        assert file_elem.get("name") == "a.js"
        assert file_elem.get("path") == str(tmp_path / "a.js")

        metrics = file_elem.find("metrics")
        assert metrics is not None
        assert metrics.attrib == {
            "statements": "2",
            "coveredstatements": "1",
            "conditionals": "0",
            "coveredconditionals": "0",
            "methods": "1",
            "coveredmethods": "1",
        }
        assert [line.attrib for line in file_elem.findall("line")] == [
            {"num": "1", "count": "1", "type": "stmt"},
            {"num": "2", "count": "0", "type": "stmt"},
        ]

        digest = json.loads(json_text)
        assert digest["stats"]["failures"] == 1
        assert digest["stats"]["passes"] == 0
        assert len(digest["failures"]) == 1
        assert "Insufficient statement coverage" in digest["failures"][0]["error"]
        assert digest["failures"][0]["title"] == "Coverage: a.js"

    def test_root_attributes(self, tmp_path: Path) -> None:
        xml_text, _ = _render(_single_file(tmp_path))
        root = ElementTree.fromstring(xml_text)

        assert root.tag == "coverage"
        assert root.get("clover") == "3.2.0"
        assert root.get("generated") == "1705314600000"
        project = root.find("project")
        assert project is not None
        assert project.get("name") == "All Files"
        assert project.get("timestamp") == "1705314600000"

    def test_conditional_lines(self, tmp_path: Path) -> None:
        xml_text, _ = _render(_project(tmp_path))
        root = ElementTree.fromstring(xml_text)

        index = next(f for f in root.iter("file") if f.get("name") == "index.js")
        lines = {line.get("num"): line.attrib for line in index.findall("line")}
        assert lines["2"] == {"num": "2", "count": "1", "type": "stmt"}
        assert lines["3"] == {
            "num": "3",
            "count": "4",
            "type": "cond",
            "truecount": "3",
            "falsecount": "1",
        }

    def test_packages_are_flat_and_dotted(self, tmp_path: Path) -> None:
        xml_text, _ = _render(_project(tmp_path))
        root = ElementTree.fromstring(xml_text)

        project = root.find("project")
        assert project is not None
        names = [p.get("name") for p in project.findall("package")]
        assert names[0] == str(tmp_path / "src").replace("/", ".").strip(".")
        assert names[1:] == ["util"]
        assert root.findall(".//package/package") == []

        util = project.findall("package")[1]
        metrics = util.find("metrics")
        assert metrics is not None
        assert metrics.get("statements") == "2"
        assert metrics.get("coveredstatements") == "0"
        assert [f.get("name") for f in util.findall("file")] == ["strings.js"]

    def test_project_metrics(self, tmp_path: Path) -> None:
        xml_text, _ = _render(_project(tmp_path))
        root = ElementTree.fromstring(xml_text)

        metrics = root.find("project/metrics")
        assert metrics is not None
        assert metrics.attrib == {
            "statements": "4",
            "coveredstatements": "2",
            "conditionals": "4",
            "coveredconditionals": "3",
            "methods": "2",
            "coveredmethods": "1",
            "elements": "10",
            "coveredelements": "6",
            "complexity": "0",
            "packages": "2",
            "files": "2",
            "classes": "2",
            # index.js: 5 non-blank lines, 2 of them comments; strings.js: 3 code lines
            "loc": "8",
            "ncloc": "6",
        }

    def test_unreadable_source_counts_as_zero(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        missing = str(tmp_path / "gone.js")
        collector = MemoryCollector({missing: FileCoverage(path=missing, line_hits={1: 1})})

        with caplog.at_level(logging.WARNING):
            xml_text, json_text = _render(collector)

        metrics = ElementTree.fromstring(xml_text).find("project/metrics")
        assert metrics is not None
        assert metrics.get("loc") == "0"
        assert metrics.get("ncloc") == "0"
        assert json.loads(json_text)["stats"]["passes"] == 1
        assert "Skipping line count" in caplog.text

    def test_verdicts_for_every_file(self, tmp_path: Path) -> None:
        _, json_text = _render(_project(tmp_path), Watermarks(0.5, 0.5, 0.5))
        digest = json.loads(json_text)

        assert digest["stats"]["tests"] == 2
        assert [p["title"] for p in digest["passes"]] == ["Coverage: index.js"]
        assert [f["title"] for f in digest["failures"]] == ["Coverage: strings.js"]
        error = digest["failures"][0]["error"]
        assert "Insufficient statement coverage" in error
        assert "Insufficient function coverage" in error
        assert "branch" not in error

    def test_idempotent(self, tmp_path: Path) -> None:
        collector = _project(tmp_path)
        assert _render(collector) == _render(collector)

    async def test_render_async_matches_render(self, tmp_path: Path) -> None:
        collector = _project(tmp_path)
        project = build_project_tree(collector)

        sync_report = _reporter().render(project, collector.coverage_of, _STRICT)
        async_report = await _reporter().render_async(project, collector.coverage_of, _STRICT)

        assert async_report.xml == sync_report.xml
        assert async_report.json == sync_report.json

    def test_empty_project(self) -> None:
        xml_text, json_text = _render(MemoryCollector())
        root = ElementTree.fromstring(xml_text)

        assert root.findall(".//package") == []
        metrics = root.find("project/metrics")
        assert metrics is not None
        assert metrics.get("files") == "0"
        assert json.loads(json_text)["stats"]["tests"] == 0


class TestPackageName:
    def test_relative_package(self, tmp_path: Path) -> None:
        project = build_project_tree(_project(tmp_path))
        names = [package_name(p) for p in project.iter_packages()]
        assert names[1:] == ["util"]
        assert names[0] == str(tmp_path / "src").replace("/", ".").strip(".")

    def test_unnamed_root(self) -> None:
        collector = MemoryCollector({"a.js": FileCoverage(path="a.js", line_hits={1: 1})})
        project = build_project_tree(collector)
        assert package_name(project.root) == "default"


# ── Writing ──────────────────────────────────────────────────────


class TestGenerate:
    def test_writes_both_artifacts(self, tmp_path: Path) -> None:
        config = ReportConfig(dir=str(tmp_path / "out"), watermarks=_STRICT)
        report = _reporter().generate(_single_file(tmp_path), config)

        xml_path = tmp_path / "out" / "clover.xml"
        json_path = tmp_path / "out" / "clover.xml.json"
        assert xml_path.read_text(encoding="utf-8") == report.xml
        assert json.loads(json_path.read_text(encoding="utf-8"))["stats"]["failures"] == 1

    def test_custom_file_name(self, tmp_path: Path) -> None:
        config = ReportConfig(dir=str(tmp_path), file="coverage.xml")
        _reporter().generate(_single_file(tmp_path), config)

        assert (tmp_path / "coverage.xml").is_file()
        assert (tmp_path / "coverage.xml.json").is_file()

    @pytest.mark.parametrize("sync", [True, False])
    async def test_generate_async(self, tmp_path: Path, sync: bool) -> None:
        config = ReportConfig(dir=str(tmp_path / "out"), sync=sync, watermarks=_STRICT)
        report = await _reporter().generate_async(_project(tmp_path), config)

        assert (tmp_path / "out" / "clover.xml").read_text(encoding="utf-8") == report.xml
        assert (tmp_path / "out" / "clover.xml.json").read_text(encoding="utf-8") == report.json

    def test_malformed_coverage_writes_nothing(self, tmp_path: Path) -> None:
        collector = _single_file(tmp_path)
        collector.add(FileCoverage(path="bad.js", line_hits={1: -3}))
        config = ReportConfig(dir=str(tmp_path / "out"))

        with pytest.raises(MalformedCoverageDataError):
            _reporter().generate(collector, config)

        assert not (tmp_path / "out").exists()

    def test_failed_write_leaves_no_partial_artifact(self, tmp_path: Path) -> None:
        out = tmp_path / "out"
        (out / "clover.xml.json").mkdir(parents=True)
        config = ReportConfig(dir=str(out))

        with pytest.raises(FilesystemError):
            _reporter().generate(_single_file(tmp_path), config)

        assert (out / "clover.xml").is_file()
        assert (out / "clover.xml.json").is_dir()
        assert [p.name for p in out.iterdir() if p.name.endswith(".tmp")] == []


# ── Injected filesystem ──────────────────────────────────────────


class _MemoryFileSystem:
    """Keeps artifacts in a dict and serves sources from one."""

    def __init__(self, sources: dict[Path, str] | None = None) -> None:
        self.sources = sources or {}
        self.written: dict[Path, str] = {}
        self.order: list[Path] = []

    def read_text(self, path: Path) -> str:
        try:
            return self.sources[path]
        except KeyError as e:
            msg = f"Cannot read {path}"
            raise FilesystemError(msg, path) from e

    def write_text(self, path: Path, content: str) -> Path:
        self.written[path] = content
        self.order.append(path)
        return path

    async def write_text_async(self, path: Path, content: str) -> Path:
        return self.write_text(path, content)


def _memory_collector(key: str) -> MemoryCollector:
    return MemoryCollector(
        {key: FileCoverage(path=key, line_hits={1: 1, 2: 1}, function_hits={"0": 1})}
    )


class TestFileSystem:
    def test_generate_writes_through_filesystem(self, tmp_path: Path) -> None:
        fs = _MemoryFileSystem({Path("/src/a.js"): "// note\nrun();\n"})
        reporter = CloverReporter(clock=FixedClock(_START), filesystem=fs)
        config = ReportConfig(dir=str(tmp_path / "out"))

        report = reporter.generate(_memory_collector("/src/a.js"), config)

        assert fs.order == [config.output_path, config.digest_path]
        assert fs.written[config.output_path] == report.xml
        assert fs.written[config.digest_path] == report.json
        assert not (tmp_path / "out").exists()

        metrics = ElementTree.fromstring(report.xml).find("project/metrics")
        assert metrics is not None
        assert metrics.get("loc") == "2"
        assert metrics.get("ncloc") == "1"

    @pytest.mark.parametrize("sync", [True, False])
    async def test_generate_async_writes_through_filesystem(
        self, tmp_path: Path, sync: bool
    ) -> None:
        fs = _MemoryFileSystem()
        reporter = CloverReporter(clock=FixedClock(_START), filesystem=fs)
        config = ReportConfig(dir=str(tmp_path), sync=sync)

        report = await reporter.generate_async(_memory_collector("/src/a.js"), config)

        assert fs.order == [config.output_path, config.digest_path]
        assert fs.written[config.digest_path] == report.json


class TestSourceRoot:
    def test_relative_keys_read_from_source_root(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        project = tmp_path / "project"
        _write_file(project, "lib/a.js", "one();\ntwo();\n")
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)

        collector = _memory_collector("lib/a.js")
        reporter = CloverReporter(clock=FixedClock(_START), source_root=project)
        report = reporter.render(build_project_tree(collector), collector.coverage_of, _STRICT)

        metrics = ElementTree.fromstring(report.xml).find("project/metrics")
        assert metrics is not None
        assert metrics.get("loc") == "2"
        assert metrics.get("ncloc") == "2"

    def test_absolute_keys_ignore_source_root(self, tmp_path: Path) -> None:
        source = _write_file(tmp_path, "a.js", "x();\n")
        collector = _memory_collector(str(source))
        reporter = CloverReporter(clock=FixedClock(_START), source_root=tmp_path / "nowhere")
        report = reporter.render(build_project_tree(collector), collector.coverage_of, _STRICT)

        metrics = ElementTree.fromstring(report.xml).find("project/metrics")
        assert metrics is not None
        assert metrics.get("loc") == "1"
