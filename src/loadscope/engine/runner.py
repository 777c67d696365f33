"""Top-level load test orchestrator."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loadscope._internal.config import LoadScopeConfig, validate_config
from loadscope._internal.errors import ReportError, TargetUnreachableError
from loadscope._internal.logging import get_logger
from loadscope.dsl.http_client import probe
from loadscope.engine.session import LoadSession
from loadscope.metrics.accumulator import MetricsAccumulator
from loadscope.metrics.estimators import estimator_factory
from loadscope.metrics.models import TestRunResult
from loadscope.patterns.base import LoadPattern
from loadscope.patterns.stages import RampPlan
from loadscope.report.synthesizer import ReportSynthesizer
from loadscope.thresholds.evaluator import evaluate, required_percentiles
from loadscope.thresholds.models import parse_thresholds

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterable, Mapping, Sequence

    from loadscope._internal.types import Headers
    from loadscope.dsl.scenario import ScenarioLibrary
    from loadscope.thresholds.models import ThresholdSpec

logger = get_logger("engine.runner")


def _event_loop_runner() -> Callable[[Coroutine[Any, Any, RunOutcome]], RunOutcome]:
    """Return ``uvloop.run`` when uvloop is installed, else ``asyncio.run``.

    Falls back to the default asyncio event loop on Windows or if uvloop is
    not installed.
    """
    if sys.platform == "win32":
        return asyncio.run

    try:
        import uvloop
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")
        return asyncio.run

    logger.debug("Using uvloop event loop")
    return uvloop.run


@dataclass(frozen=True)
class RunOutcome:
    """Everything a caller needs after a run.

    Attributes:
        result: The immutable run result.
        artifacts: Artifact name -> written report path.
        report_errors: Artifact name -> error message for reports that
            could not be written. The result stays valid regardless.
    """

    result: TestRunResult
    artifacts: dict[str, Path] = field(default_factory=dict)
    report_errors: dict[str, str] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        """False iff any threshold failed."""
        return self.result.passed


class LoadTestRunner:
    """Wires a ramp plan, a scenario library and thresholds into one run.

    ``run()`` checks that the target answers, drives the load session,
    evaluates thresholds against the final snapshot and writes the report
    artifacts.

    Attributes:
        plan: The ramp plan being executed.
        library: Scenarios the virtual users dispatch.
        thresholds: Parsed threshold specs.
        config: Effective configuration.
    """

    def __init__(
        self,
        plan: LoadPattern | Sequence[Any],
        library: ScenarioLibrary,
        thresholds: Mapping[str, Iterable[str] | str] | Iterable[str | ThresholdSpec] | None = None,
        output_dir: str | Path | None = "reports",
        *,
        config: LoadScopeConfig | None = None,
        name: str = "loadscope",
        headers: Headers | None = None,
        formats: Iterable[str] | None = None,
        check_target: bool = True,
        handle_signals: bool = False,
    ) -> None:
        """Validate every input before any load is generated.

        Args:
            plan: A LoadPattern, or a stage list accepted by ``RampPlan.parse``.
            library: Scenario library with its endpoint catalog.
            thresholds: Threshold declarations (k6 mapping or expressions).
            output_dir: Report directory; None skips report writing.
            config: Configuration; defaults to ``LoadScopeConfig()``.
            name: Run name shown in reports.
            headers: Default request headers for every virtual user.
            formats: Report artifacts to write; all by default.
            check_target: Probe ``config.health_path`` before starting.
            handle_signals: Stop gracefully on SIGINT/SIGTERM.

        Raises:
            ConfigError: If the plan, thresholds, formats or config are invalid.
        """
        self.plan: LoadPattern = plan if isinstance(plan, LoadPattern) else RampPlan.parse(plan)
        self.library = library
        self.thresholds: list[ThresholdSpec] = parse_thresholds(thresholds)
        self.config = validate_config(config or LoadScopeConfig())
        self.name = name
        self._headers = dict(headers or {})
        self._check_target = check_target
        self._handle_signals = handle_signals
        self._synthesizer = (
            ReportSynthesizer(output_dir, formats) if output_dir is not None else None
        )

    def run(self) -> RunOutcome:
        """Execute the load test and block until reports are written.

        Returns:
            RunOutcome with the result and report artifacts.

        Raises:
            TargetUnreachableError: If the reachability check fails.
            EngineError: If the session fails.
        """
        return _event_loop_runner()(self.run_async())

    async def run_async(self) -> RunOutcome:
        """Coroutine form of :meth:`run` for callers already inside a loop."""
        if self._check_target:
            await self._ensure_reachable()

        accumulator = MetricsAccumulator(
            self.library.catalog,
            estimator_factory(self.config.percentile_mode, self.config.max_samples),
        )
        session = LoadSession(
            self.library,
            self.plan,
            accumulator,
            self.config,
            headers=self._headers,
            handle_signals=self._handle_signals,
        )

        started_at = datetime.now(UTC).isoformat(timespec="seconds")
        logger.info(
            "Starting load test: name=%s, target=%s, plan=%s, thresholds=%d",
            self.name,
            self.config.base_url,
            self.plan.describe(),
            len(self.thresholds),
        )
        session_result = await session.run()

        snapshot = accumulator.snapshot(required_percentiles(self.thresholds))
        threshold_results = evaluate(snapshot, self.thresholds)
        for outcome in threshold_results:
            if not outcome.passed:
                logger.warning("Threshold failed: %s (observed=%s)", outcome.spec, outcome.observed)

        result = TestRunResult(
            name=self.name,
            started_at=started_at,
            duration_seconds=round(session_result.duration_seconds, 3),
            plan_description=self.plan.describe(),
            stages=tuple(self.plan.to_list()) if isinstance(self.plan, RampPlan) else (),
            max_users=session_result.max_users,
            timeline=session_result.timeline,
            snapshot=snapshot,
            thresholds=tuple(threshold_results),
        )
        logger.info(
            "Load test completed: duration=%.1fs, requests=%d, iterations=%d, "
            "error_rate=%.2f%%, coverage=%.1f%%, thresholds=%s",
            result.duration_seconds,
            snapshot.overall.hits,
            snapshot.iterations,
            snapshot.overall.error_rate * 100,
            snapshot.coverage_percentage,
            "passed" if result.passed else "FAILED",
        )

        artifacts: dict[str, Path] = {}
        report_errors: dict[str, str] = {}
        if self._synthesizer is not None:
            try:
                artifacts = self._synthesizer.write(result)
            except ReportError as exc:
                logger.error("%s", exc)
                artifacts = exc.written
                report_errors = exc.failures

        return RunOutcome(result=result, artifacts=artifacts, report_errors=report_errors)

    async def _ensure_reachable(self) -> None:
        url = f"{self.config.base_url.rstrip('/')}{self.config.health_path}"
        response = await probe(
            self.config.base_url,
            self.config.health_path,
            self.config.request_timeout,
        )
        if not response.ok:
            reason = response.error or f"status {response.status}"
            msg = f"Target {url} is not reachable: {reason}"
            raise TargetUnreachableError(msg)
        logger.info("Target %s is reachable (%.1fms)", url, response.elapsed_ms)
