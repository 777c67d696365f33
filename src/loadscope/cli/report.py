"""``loadscope report`` - regenerate reports from saved run data."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from loadscope._internal.errors import LoadScopeError
from loadscope.metrics.models import TestRunResult
from loadscope.report.synthesizer import ALL_FORMATS, ReportSynthesizer
from loadscope.report.text_report import summary_tables

console = Console(stderr=True)


def load_result(data_file: Path) -> TestRunResult:
    """Read a ``performance-data.json`` file back into a TestRunResult.

    Raises:
        typer.BadParameter: If the file is not a saved run result.
    """
    try:
        data = json.loads(data_file.read_text(encoding="utf-8"))
        return TestRunResult.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        msg = f"{data_file} is not a loadscope run result: {exc}"
        raise typer.BadParameter(msg) from exc


def report_cmd(
    data_file: Path = typer.Argument(
        ...,
        help="Saved performance-data.json of a previous run.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory (default: the data file's directory).",
    ),
    fmt: list[str] | None = typer.Option(
        None,
        "--format",
        "-f",
        help=f"Report artifact to write ({', '.join(ALL_FORMATS)}). Repeatable; "
        "default all but json.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Do not print the summary tables.",
    ),
) -> None:
    """Regenerate report artifacts from a saved run result."""
    result = load_result(data_file)
    formats = fmt or [f for f in ALL_FORMATS if f != "json"]

    try:
        synthesizer = ReportSynthesizer(output or data_file.parent, formats)
        written = synthesizer.write(result)
    except LoadScopeError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=2) from exc

    if not quiet:
        for table in summary_tables(result):
            console.print(table)
    for name, path in written.items():
        console.print(f"[green]Wrote {name}:[/green] {path}")
