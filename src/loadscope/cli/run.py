"""``loadscope run`` - execute a scenario file along a ramp plan."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from loadscope._internal.config import load_config, parse_think_time, validate_config
from loadscope._internal.errors import ConfigError, LoadScopeError
from loadscope._internal.logging import setup_logging
from loadscope.dsl.loader import load_scenario
from loadscope.engine.runner import LoadTestRunner
from loadscope.patterns.stages import RampPlan
from loadscope.report.synthesizer import ALL_FORMATS
from loadscope.report.text_report import summary_tables
from loadscope.thresholds.models import parse_thresholds

if TYPE_CHECKING:
    from loadscope._internal.config import LoadScopeConfig
    from loadscope.dsl.loader import ScenarioModule
    from loadscope.engine.runner import RunOutcome

console = Console(stderr=True)

# Exit code for harness errors (bad input, unreachable target), distinct
# from the threshold failure exit code 1.
EXIT_ERROR = 2


def _effective_config(
    module: ScenarioModule,
    *,
    base_url: str | None,
    think_time: str | None,
    tick_interval: float | None,
    grace_period: float | None,
    timeout: float | None,
    seed: int | None,
    percentiles: str | None,
) -> LoadScopeConfig:
    """Layer environment, scenario file and CLI flags, in that order."""
    config = load_config()
    overrides: dict[str, object] = {}
    if module.base_url is not None:
        overrides["base_url"] = module.base_url
    if module.think_time is not None:
        overrides["think_time"] = module.think_time
    if base_url is not None:
        overrides["base_url"] = base_url
    if think_time is not None:
        overrides["think_time"] = parse_think_time(think_time)
    if tick_interval is not None:
        overrides["tick_interval"] = tick_interval
    if grace_period is not None:
        overrides["grace_period"] = grace_period
    if timeout is not None:
        overrides["request_timeout"] = timeout
    if seed is not None:
        overrides["seed"] = seed
    if percentiles is not None:
        overrides["percentile_mode"] = percentiles.lower()
    return validate_config(dataclasses.replace(config, **overrides))


def _print_outcome(outcome: RunOutcome) -> None:
    """Print the summary tables, artifacts and verdict."""
    for table in summary_tables(outcome.result):
        console.print(table)

    for fmt, path in outcome.artifacts.items():
        console.print(f"[dim]{fmt:>8}[/dim] {path}")
    for fmt, error in outcome.report_errors.items():
        console.print(f"[yellow]Report {fmt} not written:[/yellow] {escape(error)}")


def run_cmd(
    scenario_file: Path = typer.Argument(
        ...,
        help="Path to the scenario .py file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    stage: list[str] | None = typer.Option(
        None,
        "--stage",
        "-s",
        help="Ramp stage as DURATION:TARGET (e.g. 30s:100). Repeat for more "
        "stages; replaces the scenario file's plan.",
    ),
    threshold: list[str] | None = typer.Option(
        None,
        "--threshold",
        "-t",
        help="Threshold as METRIC:EXPRESSION (e.g. http_req_duration:p(95)<500). "
        "Repeatable; replaces the scenario file's thresholds.",
    ),
    base_url: str | None = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Target base URL (default: scenario file, then LOADSCOPE_BASE_URL).",
    ),
    output: Path = typer.Option(
        Path("./reports"),
        "--output",
        "-o",
        help="Output directory for reports.",
    ),
    fmt: list[str] | None = typer.Option(
        None,
        "--format",
        "-f",
        help=f"Report artifact to write ({', '.join(ALL_FORMATS)}). Repeatable; default all.",
    ),
    no_report: bool = typer.Option(
        False,
        "--no-report",
        help="Skip report generation after the test.",
    ),
    think_time: str | None = typer.Option(
        None,
        "--think-time",
        help="Pause between iterations as MIN,MAX seconds.",
    ),
    tick_interval: float | None = typer.Option(
        None,
        "--tick-interval",
        help="Seconds between concurrency adjustments (0.1-1.0).",
    ),
    grace_period: float | None = typer.Option(
        None,
        "--grace-period",
        help="Seconds users get to finish their iteration at the end.",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Default request timeout in seconds.",
    ),
    seed: int | None = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducible scenario selection and pacing.",
    ),
    percentiles: str | None = typer.Option(
        None,
        "--percentiles",
        help="Percentile estimator: hdr or exact.",
    ),
    name: str | None = typer.Option(
        None,
        "--name",
        "-n",
        help="Run name shown in reports (default: scenario file name).",
    ),
    skip_check: bool = typer.Option(
        False,
        "--skip-check",
        help="Skip the reachability check before starting.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit log lines as JSON objects.",
    ),
) -> None:
    """Execute a scenario file and evaluate its thresholds."""
    setup_logging(
        level=logging.DEBUG if verbose else logging.INFO,
        json_format=json_logs,
    )

    try:
        module = load_scenario(scenario_file)
        config = _effective_config(
            module,
            base_url=base_url,
            think_time=think_time,
            tick_interval=tick_interval,
            grace_period=grace_period,
            timeout=timeout,
            seed=seed,
            percentiles=percentiles,
        )
        plan = RampPlan.parse(stage) if stage else module.plan
        if plan is None:
            msg = f"No ramp plan: pass --stage or declare 'plan' in {scenario_file.name}"
            raise ConfigError(msg)
        thresholds = parse_thresholds(threshold) if threshold else module.thresholds
        runner = LoadTestRunner(
            plan,
            module.library,
            thresholds,
            None if no_report else output,
            config=config,
            name=name or module.name,
            headers=module.headers,
            formats=fmt or None,
            check_target=not skip_check,
            handle_signals=True,
        )
    except LoadScopeError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    mix = ", ".join(
        f"{escape(name)} {share:.0%}"
        for name, share in module.library.selection_probabilities().items()
    )
    console.print(
        Panel(
            f"[bold]Scenario:[/bold]   {scenario_file.name}\n"
            f"[bold]Target:[/bold]     {config.base_url}\n"
            f"[bold]Plan:[/bold]       {runner.plan.describe()}\n"
            f"[bold]Peak users:[/bold] {runner.plan.max_concurrency(config.tick_interval)}\n"
            f"[bold]Scenarios:[/bold]  {mix}"
            f" ({len(module.library.catalog)} endpoints)\n"
            f"[bold]Thresholds:[/bold] {len(runner.thresholds)}",
            title="LoadScope",
            border_style="cyan",
        )
    )

    try:
        with console.status("Running load test...", spinner="dots"):
            outcome = runner.run()
    except LoadScopeError as exc:
        console.print(f"[red]Load test failed:[/red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    _print_outcome(outcome)

    if not outcome.passed:
        failed = [t for t in outcome.result.thresholds if not t.passed]
        console.print(
            f"[red]FAIL:[/red] {len(failed)} of {len(outcome.result.thresholds)} threshold(s) failed"
        )
        raise typer.Exit(code=1)

    console.print("[green]Load test completed successfully.[/green]")
