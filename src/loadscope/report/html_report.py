"""Self-contained HTML report.

Everything the page needs is inline: styles, the sort script, SVG charts
and the run data itself as an embedded JSON document, so the file can be
mailed around or archived as a CI artifact.
"""

from __future__ import annotations

import html
import json
from string import Template
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from loadscope._internal.types import TimelinePoint
    from loadscope.metrics.models import EndpointStats, TestRunResult

_CHART_WIDTH = 720
_LABEL_WIDTH = 230
_BAR_HEIGHT = 22
_BAR_GAP = 6
_TIMELINE_HEIGHT = 220
_PAD = 36

_PAGE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>$title</title>
<style>
body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
       margin: 0; background: #f4f6f8; color: #1f2933; }
header { background: #1f2933; color: #fff; padding: 24px 32px; }
header h1 { margin: 0 0 6px 0; font-size: 24px; }
header .meta { color: #cbd2d9; font-size: 14px; }
main { padding: 24px 32px; }
.badge { display: inline-block; padding: 4px 12px; border-radius: 12px; font-weight: 600;
         margin-left: 12px; font-size: 14px; }
.pass { background: #2f9e44; color: #fff; }
.fail { background: #e03131; color: #fff; }
.cards { display: grid; grid-template-columns: repeat(auto-fit, minmax(170px, 1fr)); gap: 16px; }
.card { background: #fff; border-radius: 8px; padding: 16px; box-shadow: 0 1px 3px rgba(0,0,0,.1); }
.card .value { font-size: 26px; font-weight: 700; }
.card .label { color: #616e7c; font-size: 13px; margin-top: 4px; }
section { background: #fff; border-radius: 8px; padding: 16px 20px; margin-top: 24px;
          box-shadow: 0 1px 3px rgba(0,0,0,.1); }
h2 { font-size: 18px; margin-top: 0; }
table { border-collapse: collapse; width: 100%; font-size: 14px; }
th, td { padding: 8px 10px; border-bottom: 1px solid #e4e7eb; text-align: right; }
th:first-child, td:first-child { text-align: left; }
th.sortable { cursor: pointer; user-select: none; }
th.sortable:after { content: " \\2195"; color: #9aa5b1; }
tr.untested td { color: #9aa5b1; }
td.status-fail { color: #e03131; font-weight: 600; }
td.status-pass { color: #2f9e44; font-weight: 600; }
svg text { font-size: 12px; fill: #3e4c59; }
</style>
</head>
<body>
<header>
<h1>$title<span class="badge $verdict_class">$verdict</span></h1>
<div class="meta">Started $started_at &middot; $plan</div>
</header>
<main>
<div class="cards">
$cards
</div>
<section>
<h2>Thresholds</h2>
$thresholds
</section>
<section>
<h2>Endpoint Coverage ($tested of $total endpoints, $coverage%)</h2>
<table id="endpoints">
<thead><tr>
<th class="sortable" data-type="text">Endpoint</th>
<th class="sortable" data-type="num">Hits</th>
<th class="sortable" data-type="num">Success %</th>
<th class="sortable" data-type="num">Errors</th>
<th class="sortable" data-type="num">Avg ms</th>
<th class="sortable" data-type="num">p50 ms</th>
<th class="sortable" data-type="num">p95 ms</th>
<th class="sortable" data-type="num">p99 ms</th>
<th class="sortable" data-type="num">Max ms</th>
<th class="sortable" data-type="text">Status</th>
</tr></thead>
<tbody>
$endpoint_rows
</tbody>
</table>
</section>
<section>
<h2>Requests per Endpoint</h2>
$hits_chart
</section>
<section>
<h2>Active Virtual Users</h2>
$timeline_chart
</section>
<section>
<h2>Errors</h2>
$errors
</section>
</main>
<script type="application/json" id="run-data">$data</script>
<script>
(function () {
  var table = document.getElementById("endpoints");
  var headers = table.querySelectorAll("th.sortable");
  headers.forEach(function (th, index) {
    var ascending = true;
    th.addEventListener("click", function () {
      var body = table.tBodies[0];
      var rows = Array.prototype.slice.call(body.rows);
      var numeric = th.getAttribute("data-type") === "num";
      rows.sort(function (a, b) {
        var x = a.cells[index].getAttribute("data-sort");
        var y = b.cells[index].getAttribute("data-sort");
        if (numeric) { x = parseFloat(x); y = parseFloat(y); }
        if (x < y) { return ascending ? -1 : 1; }
        if (x > y) { return ascending ? 1 : -1; }
        return 0;
      });
      rows.forEach(function (row) { body.appendChild(row); });
      ascending = !ascending;
    });
  });
})();
</script>
</body>
</html>
""")


def _e(value: object) -> str:
    return html.escape(str(value), quote=True)


def _num(value: float) -> str:
    return f"{value:.2f}"


def _card(value: str, label: str) -> str:
    return (
        f'<div class="card"><div class="value">{_e(value)}</div>'
        f'<div class="label">{_e(label)}</div></div>'
    )


def _cards(result: TestRunResult) -> str:
    overall = result.snapshot.overall
    rps = overall.hits / result.duration_seconds if result.duration_seconds > 0 else 0.0
    p95 = overall.percentiles.get(95.0, 0.0)
    cards = [
        _card(str(overall.hits), "HTTP requests sent"),
        _card(f"{(1 - overall.error_rate) * 100:.2f}%" if overall.hits else "n/a", "Success rate"),
        _card(f"{overall.latency_avg:.2f}ms", "Average latency"),
        _card(f"{p95:.2f}ms", "p95 latency"),
        _card(f"{rps:.1f}", "Requests per second"),
        _card(str(result.max_users), "Peak virtual users"),
        _card(str(result.snapshot.iterations), "Iterations"),
        _card(f"{result.duration_seconds:.1f}s", "Test duration"),
    ]
    return "\n".join(cards)


def _endpoint_row(key: str, stats: EndpointStats) -> str:
    cells = [
        (key, _e(key)),
        (str(stats.hits), str(stats.hits)),
        (_num(stats.success_rate * 100), _num(stats.success_rate * 100)),
        (str(stats.errors), str(stats.errors)),
        (_num(stats.latency_avg), _num(stats.latency_avg)),
        (_num(stats.percentiles.get(50.0, 0.0)), _num(stats.percentiles.get(50.0, 0.0))),
        (_num(stats.percentiles.get(95.0, 0.0)), _num(stats.percentiles.get(95.0, 0.0))),
        (_num(stats.percentiles.get(99.0, 0.0)), _num(stats.percentiles.get(99.0, 0.0))),
        (_num(stats.latency_max), _num(stats.latency_max)),
        ("tested" if stats.tested else "not tested", "tested" if stats.tested else "not tested"),
    ]
    tds = "".join(f'<td data-sort="{_e(sort)}">{text}</td>' for sort, text in cells)
    row_class = "" if stats.tested else ' class="untested"'
    return f"<tr{row_class}>{tds}</tr>"


def _thresholds(result: TestRunResult) -> str:
    if not result.thresholds:
        return "<p>No thresholds declared.</p>"
    rows = []
    for outcome in result.thresholds:
        observed = "n/a" if outcome.observed is None else f"{outcome.observed:.4g}"
        status = "PASS" if outcome.passed else "FAIL"
        css = "status-pass" if outcome.passed else "status-fail"
        rows.append(
            f"<tr><td>{_e(outcome.spec)}</td><td>{_e(observed)}</td>"
            f'<td class="{css}">{status}</td></tr>'
        )
    return (
        "<table><thead><tr><th>Threshold</th><th>Observed</th><th>Result</th></tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table>"
    )


def _errors(result: TestRunResult) -> str:
    reasons = result.snapshot.errors_by_reason
    if not reasons:
        return "<p>No failed requests.</p>"
    rows = "".join(
        f"<tr><td>{_e(reason)}</td><td>{count}</td></tr>"
        for reason, count in sorted(reasons.items(), key=lambda item: (-item[1], item[0]))
    )
    return (
        "<table><thead><tr><th>Reason</th><th>Count</th></tr></thead>"
        f"<tbody>{rows}</tbody></table>"
    )


def hits_chart(endpoints: dict[str, EndpointStats]) -> str:
    """Horizontal SVG bar chart of hits per endpoint, errors overlaid in red."""
    if not endpoints:
        return "<p>No endpoints declared.</p>"
    peak = max((s.hits for s in endpoints.values()), default=0) or 1
    bar_space = _CHART_WIDTH - _LABEL_WIDTH - 80
    height = len(endpoints) * (_BAR_HEIGHT + _BAR_GAP) + _BAR_GAP
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{_CHART_WIDTH}" height="{height}" '
        f'viewBox="0 0 {_CHART_WIDTH} {height}" role="img" aria-label="Requests per endpoint">'
    ]
    for index, (key, stats) in enumerate(endpoints.items()):
        y = _BAR_GAP + index * (_BAR_HEIGHT + _BAR_GAP)
        width = bar_space * stats.hits / peak
        error_width = bar_space * stats.errors / peak
        text_y = y + _BAR_HEIGHT - 6
        parts.append(f'<text x="0" y="{text_y}">{_e(key)}</text>')
        parts.append(
            f'<rect x="{_LABEL_WIDTH}" y="{y}" width="{width:.1f}" '
            f'height="{_BAR_HEIGHT}" fill="#4c6ef5"/>'
        )
        if error_width > 0:
            parts.append(
                f'<rect x="{_LABEL_WIDTH}" y="{y}" width="{error_width:.1f}" '
                f'height="{_BAR_HEIGHT}" fill="#e03131"/>'
            )
        label = str(stats.hits) if stats.tested else "not tested"
        parts.append(f'<text x="{_LABEL_WIDTH + width + 6:.1f}" y="{text_y}">{label}</text>')
    parts.append("</svg>")
    return "\n".join(parts)


def timeline_chart(timeline: tuple[TimelinePoint, ...] | list[TimelinePoint]) -> str:
    """SVG step line of active virtual users over elapsed time."""
    if not timeline:
        return "<p>No scheduler ticks recorded.</p>"
    last_t = max(t for t, _ in timeline) or 1.0
    peak = max(u for _, u in timeline) or 1
    plot_w = _CHART_WIDTH - 2 * _PAD
    plot_h = _TIMELINE_HEIGHT - 2 * _PAD

    def x(t: float) -> float:
        return _PAD + plot_w * t / last_t

    def y(u: int) -> float:
        return _TIMELINE_HEIGHT - _PAD - plot_h * u / peak

    points: list[str] = []
    previous: int | None = None
    for t, users in timeline:
        if previous is not None:
            points.append(f"{x(t):.1f},{y(previous):.1f}")
        points.append(f"{x(t):.1f},{y(users):.1f}")
        previous = users

    base = _TIMELINE_HEIGHT - _PAD
    return "\n".join(
        [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{_CHART_WIDTH}" '
            f'height="{_TIMELINE_HEIGHT}" viewBox="0 0 {_CHART_WIDTH} {_TIMELINE_HEIGHT}" '
            'role="img" aria-label="Active virtual users over time">',
            f'<line x1="{_PAD}" y1="{base}" x2="{_CHART_WIDTH - _PAD}" y2="{base}" '
            'stroke="#9aa5b1"/>',
            f'<line x1="{_PAD}" y1="{_PAD}" x2="{_PAD}" y2="{base}" stroke="#9aa5b1"/>',
            f'<polyline fill="none" stroke="#4c6ef5" stroke-width="2" points="{" ".join(points)}"/>',
            f'<text x="4" y="{_PAD + 4}">{peak}</text>',
            f'<text x="4" y="{base + 4}">0</text>',
            f'<text x="{_CHART_WIDTH - _PAD - 40}" y="{base + 20}">{last_t:.1f}s</text>',
            "</svg>",
        ]
    )


def _embedded_json(result: TestRunResult) -> str:
    # "</" would close the surrounding script element early.
    return json.dumps(result.to_dict(), sort_keys=True).replace("</", "<\\/")


def render_html(result: TestRunResult, title: str | None = None) -> str:
    """Render the full report page."""
    snapshot = result.snapshot
    page_title = title or f"{result.name} performance report"
    return _PAGE.substitute(
        title=_e(page_title),
        verdict="PASSED" if result.passed else "FAILED",
        verdict_class="pass" if result.passed else "fail",
        started_at=_e(result.started_at),
        plan=_e(result.plan_description),
        cards=_cards(result),
        thresholds=_thresholds(result),
        tested=snapshot.tested_endpoints,
        total=snapshot.total_endpoints,
        coverage=f"{snapshot.coverage_percentage:.2f}",
        endpoint_rows="\n".join(_endpoint_row(k, s) for k, s in snapshot.endpoints.items()),
        hits_chart=hits_chart(snapshot.endpoints),
        timeline_chart=timeline_chart(result.timeline),
        errors=_errors(result),
        data=_embedded_json(result),
    )
