"""Scenario, step and scenario-library definitions."""

from __future__ import annotations

import math
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from loadscope._internal.errors import ConfigError
from loadscope.dsl.assertions import Assertion
from loadscope.dsl.endpoint import EndpointCatalog, EndpointKey
from loadscope.dsl.http_client import HttpRequest

# Any 2xx status counts as accepted unless a step says otherwise.
SUCCESS_STATUSES: frozenset[int] = frozenset(range(200, 300))

PathSource = str | Callable[[random.Random], str]
BodySource = Any


@dataclass(frozen=True)
class Step:
    """One request of a scenario.

    Attributes:
        endpoint: Logical endpoint this request is counted under.
        path: Concrete path, or a callable of the virtual user's rng that
            builds one (for parameterised templates). Defaults to the
            endpoint template when the template has no parameters.
        body: JSON body, or a callable of the rng that builds one.
        headers: Extra request headers.
        assertions: Checks that must all hold for the step to succeed.
        expected_status: Accepted status codes. None disables the check.
        latency_budget_ms: Optional ceiling; slower responses fail the step.
        timeout: Request timeout in seconds. None uses the run default.
        abort_on_failure: Stop the iteration when this step fails. None
            inherits the scenario default.
    """

    endpoint: EndpointKey
    path: PathSource | None = None
    body: BodySource = None
    headers: dict[str, str] = field(default_factory=dict)
    assertions: tuple[Assertion, ...] = ()
    expected_status: frozenset[int] | None = SUCCESS_STATUSES
    latency_budget_ms: float | None = None
    timeout: float | None = None
    abort_on_failure: bool | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "endpoint", EndpointKey.coerce(self.endpoint))
        object.__setattr__(self, "assertions", tuple(self.assertions))
        if self.expected_status is not None:
            object.__setattr__(self, "expected_status", frozenset(self.expected_status))
        if self.path is None and self.endpoint.has_params:
            msg = f"Step for {self.endpoint} needs a concrete path for its parameters"
            raise ConfigError(msg)
        if isinstance(self.path, str) and not self.endpoint.matches(
            self.endpoint.method, self.path
        ):
            msg = f"Step path {self.path!r} does not belong to endpoint {self.endpoint}"
            raise ConfigError(msg)
        if self.latency_budget_ms is not None and self.latency_budget_ms <= 0:
            msg = f"latency budget must be positive, got {self.latency_budget_ms}"
            raise ConfigError(msg)
        if self.timeout is not None and self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout}"
            raise ConfigError(msg)

    def build_request(self, rng: random.Random) -> HttpRequest:
        """Materialize the concrete request for one attempt.

        Raises:
            ConfigError: If a path builder returns a path outside the endpoint.
        """
        if self.path is None:
            path = self.endpoint.template
        elif callable(self.path):
            path = self.path(rng)
            if not self.endpoint.matches(self.endpoint.method, path):
                msg = f"Path builder returned {path!r}, outside endpoint {self.endpoint}"
                raise ConfigError(msg)
        else:
            path = self.path
        body = self.body(rng) if callable(self.body) else self.body
        return HttpRequest(
            method=self.endpoint.method,
            path=path,
            headers=dict(self.headers),
            json_body=body,
        )


@dataclass(frozen=True)
class Scenario:
    """A weighted, named sequence of steps representing one user workflow.

    Attributes:
        name: Unique scenario name.
        weight: Relative selection weight, > 0. Weights need not sum to 1.
        steps: Steps executed strictly in order.
        abort_on_failure: Default short-circuit policy for the steps. Set it
            when later steps depend on earlier ones.
    """

    name: str
    weight: float
    steps: tuple[Step, ...]
    abort_on_failure: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        if not self.name:
            msg = "Scenario name must not be empty"
            raise ConfigError(msg)
        if not math.isfinite(self.weight) or self.weight <= 0:
            msg = f"Scenario {self.name!r} weight must be a positive number, got {self.weight}"
            raise ConfigError(msg)
        if not self.steps:
            msg = f"Scenario {self.name!r} has no steps"
            raise ConfigError(msg)

    def aborts_after(self, step: Step) -> bool:
        """Return True if a failure of *step* ends the iteration."""
        if step.abort_on_failure is None:
            return self.abort_on_failure
        return step.abort_on_failure


class ScenarioLibrary:
    """Immutable set of scenarios plus the closed endpoint catalog.

    Endpoints can be declared explicitly, which lets a run report endpoints
    that no scenario reaches as untested. When omitted, the catalog is the
    steps' endpoints in first-seen order.
    """

    def __init__(
        self,
        scenarios: Sequence[Scenario],
        endpoints: Iterable[EndpointKey | str] | None = None,
    ) -> None:
        """Validate and build the library.

        Args:
            scenarios: Scenarios to dispatch between.
            endpoints: Optional explicit endpoint declarations.

        Raises:
            ConfigError: If there are no scenarios, two scenarios share a
                name, an endpoint is declared twice, a step targets an
                endpoint missing from an explicit declaration, or a fixed step
                path resolves to a different declared endpoint.
        """
        if not scenarios:
            msg = "Scenario library must contain at least one scenario"
            raise ConfigError(msg)

        names: set[str] = set()
        for scenario in scenarios:
            if scenario.name in names:
                msg = f"Duplicate scenario name: {scenario.name!r}"
                raise ConfigError(msg)
            names.add(scenario.name)

        if endpoints is None:
            seen: dict[EndpointKey, None] = {}
            for scenario in scenarios:
                for step in scenario.steps:
                    seen.setdefault(step.endpoint, None)
            catalog = EndpointCatalog(seen)
        else:
            catalog = EndpointCatalog(endpoints)
            for scenario in scenarios:
                for step in scenario.steps:
                    if step.endpoint not in catalog:
                        msg = (
                            f"Scenario {scenario.name!r} uses undeclared endpoint "
                            f"{step.endpoint}"
                        )
                        raise ConfigError(msg)

        # A fixed path must land on its own key, not on a more literal one.
        for scenario in scenarios:
            for step in scenario.steps:
                if not isinstance(step.path, str):
                    continue
                owner = catalog.resolve(step.endpoint.method, step.path)
                if owner != step.endpoint:
                    msg = (
                        f"Scenario {scenario.name!r} sends {step.path!r} under "
                        f"{step.endpoint}, but it resolves to {owner}"
                    )
                    raise ConfigError(msg)

        self._scenarios: tuple[Scenario, ...] = tuple(scenarios)
        self._catalog = catalog

    @property
    def scenarios(self) -> tuple[Scenario, ...]:
        """Scenarios in declaration order."""
        return self._scenarios

    @property
    def catalog(self) -> EndpointCatalog:
        """The closed endpoint catalog."""
        return self._catalog

    def get(self, name: str) -> Scenario | None:
        """Look up a scenario by name."""
        for scenario in self._scenarios:
            if scenario.name == name:
                return scenario
        return None

    def selection_probabilities(self) -> dict[str, float]:
        """Return each scenario's selection probability ``w_i / sum(w)``."""
        total = sum(s.weight for s in self._scenarios)
        return {s.name: s.weight / total for s in self._scenarios}

    def __len__(self) -> int:
        return len(self._scenarios)
