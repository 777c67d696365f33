"""Main Typer application, entry point for the ``loadscope`` CLI."""

from __future__ import annotations

import typer

from loadscope import __version__
from loadscope.cli.init_cmd import init_cmd
from loadscope.cli.report import report_cmd
from loadscope.cli.run import run_cmd

app = typer.Typer(
    name="loadscope",
    help="Ramped HTTP load tests with endpoint coverage and thresholds.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a scenario file along a ramp plan.")(run_cmd)
app.command("init", help="Scaffold a new scenario file.")(init_cmd)
app.command("report", help="Regenerate reports from saved run data.")(report_cmd)


def _version_callback(value: bool) -> None:
    """Print version and exit.

    Args:
        value: True if --version was passed.
    """
    if value:
        typer.echo(f"loadscope {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """LoadScope: ramped HTTP load tests with endpoint coverage and thresholds."""
