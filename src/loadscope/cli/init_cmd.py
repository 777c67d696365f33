"""``loadscope init`` - scaffold a new scenario file from a template."""

from __future__ import annotations

from pathlib import Path
from string import Template

import typer
from rich.console import Console

console = Console(stderr=True)

_SCENARIO_TEMPLATE = Template('''\
"""Load test scenario: $name.

Run with:
    loadscope run $filename --base-url http://127.0.0.1:3000
"""

from __future__ import annotations

from loadscope import RampPlan, Scenario, ScenarioLibrary, Step, json_has

name = "$name"

# Declared endpoints; any endpoint no scenario reaches is reported as untested.
library = ScenarioLibrary(
    [
        Scenario(
            "health",
            weight=1,
            steps=[Step("GET /")],
        ),
        Scenario(
            "list items",
            weight=1,
            steps=[Step("GET /items", assertions=[json_has("items")])],
        ),
    ],
    endpoints=["GET /", "GET /items", "POST /items"],
)

plan = RampPlan.parse(["10s:5", "20s:5", "5s:0"])

thresholds = {
    "http_req_duration": ["p(95)<500"],
    "http_req_failed": ["rate<0.05"],
}

think_time = (0.5, 2.5)
''')


def init_cmd(
    name: str = typer.Argument(
        "my_scenario",
        help="Name for the scenario (used as the file name).",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Overwrite an existing file.",
    ),
) -> None:
    """Scaffold a new scenario file in the current directory."""
    safe_name = "".join(c if c.isalnum() or c == "_" else "_" for c in name).lower()
    if not safe_name or safe_name[0].isdigit():
        safe_name = "scenario_" + safe_name

    filename = f"{safe_name}.py"
    display_name = name.replace("_", " ").replace("-", " ").title()

    target = Path.cwd() / filename
    if target.exists() and not force:
        console.print(f"[red]File already exists:[/red] {filename}")
        raise typer.Exit(code=1)

    content = _SCENARIO_TEMPLATE.substitute(name=display_name, filename=filename)
    target.write_text(content, encoding="utf-8")
    console.print(f"[green]Created scenario:[/green] {filename}")
