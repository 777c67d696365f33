"""Plain-text summary rendered with rich tables.

The same tables are printed to the terminal by ``loadscope run`` and
exported without colour into ``performance-summary.txt``.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from loadscope.metrics.models import DEFAULT_PERCENTILES, percentile_label

if TYPE_CHECKING:
    from loadscope.metrics.models import TestRunResult

NOT_TESTED = "not tested"


def _ms(value: float) -> str:
    return f"{value:.2f}ms"


def _pct(fraction: float) -> str:
    return f"{fraction * 100:.2f}%"


def overview_table(result: TestRunResult) -> Table:
    """Run-level figures: duration, users, requests, error rate, coverage."""
    snapshot = result.snapshot
    overall = snapshot.overall
    table = Table(title="Overview", show_header=True, header_style="bold cyan", box=box.SIMPLE)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Run", Text(result.name))
    table.add_row("Started", result.started_at)
    table.add_row("Plan", Text(result.plan_description))
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    table.add_row("Max Users", str(result.max_users))
    table.add_row("Iterations", str(snapshot.iterations))
    if snapshot.discarded_iterations:
        table.add_row("Discarded Iterations", str(snapshot.discarded_iterations))
    table.add_row("Total Requests", str(overall.hits))
    table.add_row("Successful", str(overall.successes))
    table.add_row("Failed", str(overall.errors))
    table.add_row("Error Rate", _pct(overall.error_rate))
    if result.duration_seconds > 0:
        table.add_row("Requests/sec", f"{overall.hits / result.duration_seconds:.1f}")
    table.add_row(
        "Endpoint Coverage",
        f"{snapshot.tested_endpoints}/{snapshot.total_endpoints} "
        f"({snapshot.coverage_percentage:.2f}%)",
    )
    return table


def latency_table(result: TestRunResult) -> Table:
    """Run-wide latency distribution."""
    overall = result.snapshot.overall
    percentiles = sorted(set(DEFAULT_PERCENTILES) | set(overall.percentiles))
    table = Table(title="Latency", show_header=True, header_style="bold cyan", box=box.SIMPLE)
    for label in ("avg", "min", *(percentile_label(p) for p in percentiles), "max"):
        table.add_column(label, justify="right")

    if overall.hits == 0:
        table.add_row(*("-" for _ in range(len(percentiles) + 3)))
        return table
    table.add_row(
        _ms(overall.latency_avg),
        _ms(overall.latency_min),
        *(_ms(overall.percentiles.get(p, 0.0)) for p in percentiles),
        _ms(overall.latency_max),
    )
    return table


def coverage_table(result: TestRunResult) -> Table:
    """Per-endpoint coverage in declaration order; untested rows are zeros."""
    table = Table(
        title="Endpoint Coverage",
        show_header=True,
        header_style="bold cyan",
        box=box.SIMPLE,
    )
    table.add_column("Endpoint")
    table.add_column("Hits", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Status")

    for key, stats in result.snapshot.endpoints.items():
        table.add_row(
            Text(key),
            str(stats.hits),
            _pct(stats.success_rate),
            str(stats.errors),
            _ms(stats.latency_avg),
            _ms(stats.percentiles.get(95.0, 0.0)),
            _ms(stats.latency_max),
            "tested" if stats.tested else NOT_TESTED,
        )
    return table


def thresholds_table(result: TestRunResult) -> Table | None:
    """Threshold outcomes, or None when the run declared none."""
    if not result.thresholds:
        return None
    table = Table(title="Thresholds", show_header=True, header_style="bold cyan", box=box.SIMPLE)
    table.add_column("Threshold")
    table.add_column("Observed", justify="right")
    table.add_column("Result")
    for outcome in result.thresholds:
        observed = "n/a" if outcome.observed is None else f"{outcome.observed:.4g}"
        table.add_row(Text(str(outcome.spec)), observed, "PASS" if outcome.passed else "FAIL")
    return table


def errors_table(result: TestRunResult) -> Table | None:
    """Failure reasons by count, or None without failures."""
    reasons = result.snapshot.errors_by_reason
    if not reasons:
        return None
    table = Table(title="Errors", show_header=True, header_style="bold red", box=box.SIMPLE)
    table.add_column("Reason")
    table.add_column("Count", justify="right")
    for reason, count in sorted(reasons.items(), key=lambda item: (-item[1], item[0])):
        table.add_row(Text(reason), str(count))
    return table


def summary_tables(result: TestRunResult) -> list[Table]:
    """All summary tables in print order, skipping empty sections."""
    tables = [
        overview_table(result),
        latency_table(result),
        coverage_table(result),
        thresholds_table(result),
        errors_table(result),
    ]
    return [t for t in tables if t is not None]


def render_text(result: TestRunResult, width: int = 120) -> str:
    """Render the summary as plain text with no colour codes."""
    console = Console(
        file=io.StringIO(),
        record=True,
        width=width,
        color_system=None,
        force_terminal=False,
        emoji=False,
    )
    verdict = "PASSED" if result.passed else "FAILED"
    console.print(f"{result.name}: {verdict}", markup=False, highlight=False)
    for table in summary_tables(result):
        console.print()
        console.print(table)
    return console.export_text()
