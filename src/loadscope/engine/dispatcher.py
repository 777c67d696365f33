"""Executes one weighted-random scenario per virtual-user iteration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadscope._internal.logging import get_logger
from loadscope.engine.weighted import WeightedChoice
from loadscope.metrics.models import LatencySample

if TYPE_CHECKING:
    import random

    from loadscope.dsl.http_client import HttpClient, HttpResponse
    from loadscope.dsl.scenario import Scenario, ScenarioLibrary, Step
    from loadscope.metrics.accumulator import MetricsAccumulator

logger = get_logger("engine.dispatcher")


@dataclass(frozen=True)
class IterationOutcome:
    """Summary of one executed scenario iteration.

    Attributes:
        scenario: Name of the scenario that ran.
        attempted: Steps that issued a request.
        failed: Attempted steps that failed.
        aborted: True if a failed step short-circuited the remaining steps.
    """

    scenario: str
    attempted: int
    failed: int
    aborted: bool


def failure_reason(step: Step, response: HttpResponse) -> str | None:
    """Return why *response* fails *step*, or None if the step succeeded.

    Checks run in order: transport error, status, latency budget,
    assertions. The first failing check names the reason.
    """
    if response.error is not None:
        return response.error
    if step.expected_status is not None and response.status not in step.expected_status:
        return f"status {response.status}"
    if step.latency_budget_ms is not None and response.elapsed_ms > step.latency_budget_ms:
        return "latency budget exceeded"
    for assertion in step.assertions:
        if not assertion.check(response):
            return f"assertion {assertion.name!r} failed"
    return None


class ScenarioDispatcher:
    """Selects a scenario by weight and runs its steps against the target.

    The dispatcher holds no mutable state of its own: the random source is
    supplied per call (one per virtual user) and every outcome goes straight
    to the shared accumulator.

    Attributes:
        library: The scenario library being dispatched.
    """

    def __init__(
        self,
        library: ScenarioLibrary,
        accumulator: MetricsAccumulator,
        *,
        default_timeout: float = 30.0,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            library: Scenarios to choose from.
            accumulator: Destination of every latency sample.
            default_timeout: Request timeout for steps that set none.
        """
        self.library = library
        self._accumulator = accumulator
        self._default_timeout = default_timeout
        self._choice = WeightedChoice(
            library.scenarios, [s.weight for s in library.scenarios]
        )
        for index, scenario in enumerate(library.scenarios):
            logger.debug(
                "Scenario %r selected with probability %.3f",
                scenario.name,
                self._choice.probability(index),
            )

    def pick(self, rng: random.Random) -> Scenario:
        """Weighted-random scenario selection."""
        return self._choice.pick(rng)

    async def run_iteration(self, client: HttpClient, rng: random.Random) -> IterationOutcome:
        """Pick a scenario and execute it to completion or first aborting failure.

        Step failures never raise: each attempted step is recorded as a
        success or error sample before the next step starts. Cancellation
        during a request propagates and leaves that step unrecorded.

        Args:
            client: The virtual user's HTTP client.
            rng: The virtual user's random source.

        Returns:
            What happened during the iteration.
        """
        scenario = self.pick(rng)
        return await self.execute(scenario, client, rng)

    async def execute(
        self,
        scenario: Scenario,
        client: HttpClient,
        rng: random.Random,
    ) -> IterationOutcome:
        """Execute the steps of *scenario* in order."""
        attempted = 0
        failed = 0
        for step in scenario.steps:
            request = step.build_request(rng)
            response = await client.send(
                request,
                timeout=step.timeout if step.timeout is not None else self._default_timeout,
            )
            attempted += 1
            reason = failure_reason(step, response)
            self._accumulator.record(
                LatencySample(
                    endpoint=step.endpoint,
                    latency_ms=response.elapsed_ms,
                    success=reason is None,
                    status_code=response.status,
                    error=reason,
                )
            )
            if reason is None:
                continue

            failed += 1
            logger.debug(
                "Step %s in scenario %r failed: %s",
                step.endpoint,
                scenario.name,
                reason,
            )
            if scenario.aborts_after(step):
                return IterationOutcome(
                    scenario=scenario.name,
                    attempted=attempted,
                    failed=failed,
                    aborted=attempted < len(scenario.steps),
                )

        return IterationOutcome(
            scenario=scenario.name,
            attempted=attempted,
            failed=failed,
            aborted=False,
        )
