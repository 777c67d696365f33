"""Dynamic scenario file loading via importlib."""

from __future__ import annotations

import importlib.util
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loadscope._internal.config import parse_think_time
from loadscope._internal.errors import ConfigError, ScenarioError
from loadscope.dsl.scenario import ScenarioLibrary
from loadscope.patterns.base import LoadPattern
from loadscope.patterns.stages import RampPlan
from loadscope.thresholds.models import parse_thresholds

if TYPE_CHECKING:
    from loadscope._internal.types import Headers, ThinkTime
    from loadscope.thresholds.models import ThresholdSpec


@dataclass(frozen=True)
class ScenarioModule:
    """What a scenario file declares.

    Attributes:
        path: Resolved file path.
        name: Run name, from a module-level ``name`` or the file stem.
        library: The scenarios and endpoint catalog (required).
        plan: Ramp plan, if the file declares ``plan`` or ``stages``.
        thresholds: Parsed ``thresholds`` declarations.
        base_url: Target base URL override.
        think_time: Think time range override.
        headers: Default request headers.
    """

    path: Path
    name: str
    library: ScenarioLibrary
    plan: LoadPattern | None = None
    thresholds: list[ThresholdSpec] = field(default_factory=list)
    base_url: str | None = None
    think_time: ThinkTime | None = None
    headers: Headers = field(default_factory=dict)


def _coerce_plan(value: Any, path: Path) -> LoadPattern | None:
    if value is None or isinstance(value, LoadPattern):
        return value
    try:
        return RampPlan.parse(value)
    except (ConfigError, TypeError) as exc:
        msg = f"Invalid plan in {path}: {exc}"
        raise ConfigError(msg) from exc


def _coerce_think_time(value: Any, path: Path) -> ThinkTime | None:
    if value is None:
        return None
    if isinstance(value, str):
        return parse_think_time(value)
    if isinstance(value, int | float):
        return parse_think_time(str(value))
    try:
        low, high = value
    except (TypeError, ValueError):
        msg = f"think_time in {path} must be a number, 'min,max' text or a (min, max) pair"
        raise ConfigError(msg) from None
    return parse_think_time(f"{low},{high}")


def load_scenario(file_path: str | Path) -> ScenarioModule:
    """Load a scenario file.

    Imports the file with ``importlib`` and reads its module-level
    ``library`` (a ScenarioLibrary) plus the optional ``plan`` (or k6-style
    ``stages``), ``thresholds``, ``base_url``, ``think_time``, ``headers``
    and ``name``.

    Args:
        file_path: Path to the Python scenario file.

    Returns:
        The parsed ScenarioModule.

    Raises:
        ScenarioError: If the file does not exist, cannot be imported,
            or exposes no ``library``.
        ConfigError: If an optional declaration is invalid.
    """
    path = Path(file_path).resolve()

    if not path.exists():
        msg = f"Scenario file not found: {path}"
        raise ScenarioError(msg)

    if path.suffix != ".py":
        msg = f"Scenario file must be a .py file, got: {path}"
        raise ScenarioError(msg)

    module_name = f"loadscope_scenario_{path.stem}"

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for: {path}"
        raise ScenarioError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module

    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        msg = f"Failed to import scenario file {path}: {exc}"
        raise ScenarioError(msg) from exc

    namespace = vars(module)
    library = namespace.get("library")
    if not isinstance(library, ScenarioLibrary):
        sys.modules.pop(module_name, None)
        msg = (
            f"No scenario library found in {path}. "
            f"Assign a ScenarioLibrary to a module-level 'library' variable."
        )
        raise ScenarioError(msg)

    headers = namespace.get("headers") or {}
    if not isinstance(headers, dict):
        msg = f"headers in {path} must be a dict"
        raise ConfigError(msg)

    return ScenarioModule(
        path=path,
        name=str(namespace.get("name") or path.stem),
        library=library,
        plan=_coerce_plan(namespace.get("plan", namespace.get("stages")), path),
        thresholds=parse_thresholds(namespace.get("thresholds")),
        base_url=namespace.get("base_url"),
        think_time=_coerce_think_time(namespace.get("think_time"), path),
        headers={str(k): str(v) for k, v in headers.items()},
    )
