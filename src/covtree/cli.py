"""covtree CLI — maps command-line flags onto the report configuration."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, TypedDict, Unpack

import click
from rich.console import Console
from rich.table import Table

from covtree import __version__
from covtree.adapters.coverage import IstanbulCollector, find_coverage_file
from covtree.analyzers.thresholds import format_percent
from covtree.config import ReportConfig, load_config
from covtree.errors import CovtreeError
from covtree.reporters.clover import CloverReport, CloverReporter

if TYPE_CHECKING:
    from covtree.reporters.digest import ReportDigest

logger = logging.getLogger(__name__)
console = Console()

# Failure messages shown per file before truncating
MAX_FAILURES_DISPLAY = 20


class _ReportKwargs(TypedDict):
    """Keyword arguments for the report CLI command."""

    coverage_file: Path | None
    path: str
    config_file: str | None
    output_dir: str | None
    output_file: str | None
    statements: float | None
    branches: float | None
    functions: float | None
    language: str | None
    sync: bool | None


@click.group()
@click.option(
    "--ci",
    is_flag=True,
    help="CI mode: print the JSON digest instead of tables.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr.")
@click.version_option(version=__version__, prog_name="covtree")
@click.pass_context
def cli(ctx: click.Context, *, ci: bool, verbose: bool) -> None:
    """covtree — Clover coverage reports with per-file pass/fail verdicts."""
    ctx.ensure_object(dict)
    ctx.obj["ci"] = ci
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            stream=sys.stderr,
        )


def _apply_overrides(
    config: ReportConfig,
    *,
    output_dir: str | None,
    output_file: str | None,
    watermarks: dict[str, float | None],
    language: str | None,
    sync: bool | None,
) -> ReportConfig:
    """Return *config* with every flag the user passed applied on top."""
    changes: dict[str, object] = {}
    if output_dir is not None:
        changes["dir"] = output_dir
    if output_file is not None:
        changes["file"] = output_file
    if language is not None:
        changes["language"] = language
    if sync is not None:
        changes["sync"] = sync

    percentages = {name: value / 100 for name, value in watermarks.items() if value is not None}
    if percentages:
        changes["watermarks"] = dataclasses.replace(config.watermarks, **percentages)

    return dataclasses.replace(config, **changes) if changes else config


def _display_digest(digest: ReportDigest) -> None:
    """Display the pass/fail digest in rich console format."""
    table = Table(title="Coverage Verdicts", title_style="bold cyan")
    table.add_column("Result", style="bold")
    table.add_column("Files", justify="right")
    table.add_row("[green]Passing[/green]", str(len(digest.passes)))
    table.add_row("[red]Failing[/red]", str(len(digest.failures)))
    console.print(table)

    for entry in digest.failures[:MAX_FAILURES_DISPLAY]:
        console.print(f"  • {entry.full_title}", style="red")
        for line in (entry.error or "").splitlines():
            console.print(f"    {line}", style="dim red")
    hidden = len(digest.failures) - MAX_FAILURES_DISPLAY
    if hidden > 0:
        console.print(f"  ... and {hidden} more", style="dim")


def _display_report(report: CloverReport, config: ReportConfig) -> None:
    console.print(f"[bold]Clover report:[/bold] {config.output_path}")
    console.print(f"[bold]Digest:[/bold] {config.digest_path}")
    console.print(
        f"Watermarks: statements {format_percent(config.watermarks.statements)}%, "
        f"branches {format_percent(config.watermarks.branches)}%, "
        f"functions {format_percent(config.watermarks.functions)}%"
    )
    _display_digest(report.digest)


@cli.command()
@click.argument(
    "coverage_file",
    required=False,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
@click.option(
    "--config",
    "config_file",
    default=None,
    type=click.Path(dir_okay=False),
    help="Configuration file (default: <path>/.covtree.yml).",
)
@click.option("--dir", "output_dir", default=None, help="Directory to write the report to.")
@click.option("--file", "output_file", default=None, help="Report file name (default: clover.xml).")
@click.option("--statements", type=float, default=None, help="Minimum statement coverage %.")
@click.option("--branches", type=float, default=None, help="Minimum branch coverage %.")
@click.option("--functions", type=float, default=None, help="Minimum function coverage %.")
@click.option("--language", default=None, help="Source language for loc/ncloc counting.")
@click.option(
    "--sync/--async",
    "sync",
    default=None,
    help="Write artifacts with blocking I/O or in worker threads.",
)
def report(**kwargs: Unpack[_ReportKwargs]) -> None:
    """Write a Clover XML report and its JSON pass/fail digest.

    Reads Istanbul's coverage-final.json (COVERAGE_FILE, or the standard
    location under --path) and writes <dir>/<file> and <dir>/<file>.json.

    Example:
      covtree report coverage/coverage-final.json --statements 80
    """
    path = kwargs["path"]
    ctx = click.get_current_context()
    ci_mode = ctx.obj.get("ci", False) if ctx.obj else False

    try:
        config = _apply_overrides(
            load_config(path, kwargs["config_file"]),
            output_dir=kwargs["output_dir"],
            output_file=kwargs["output_file"],
            watermarks={
                "statements": kwargs["statements"],
                "branches": kwargs["branches"],
                "functions": kwargs["functions"],
            },
            language=kwargs["language"],
            sync=kwargs["sync"],
        )

        source = kwargs["coverage_file"] or find_coverage_file(Path(path))
        if source is None:
            console.print(f"[red]No Istanbul coverage file found under {path}[/red]")
            raise click.Abort

        logger.debug("Reading coverage from %s", source)
        collector = IstanbulCollector.from_file(source)
        reporter = CloverReporter.from_config(config, source_root=Path(path))
        result = asyncio.run(reporter.generate_async(collector, config))
    except CovtreeError as e:
        console.print(f"[red]Report generation failed: {e}[/red]")
        raise click.Abort from e

    if ci_mode:
        click.echo(result.json, nl=False)
    else:
        _display_report(result, config)


if __name__ == "__main__":
    cli()
