"""Virtual user: one sequential pick -> steps -> think loop."""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadscope._internal.logging import get_logger
from loadscope.dsl.http_client import HttpClient

if TYPE_CHECKING:
    import random

    from loadscope._internal.types import Headers, ThinkTime
    from loadscope.engine.dispatcher import ScenarioDispatcher
    from loadscope.metrics.accumulator import MetricsAccumulator

logger = get_logger("engine.virtual_user")


class UserState(Enum):
    """Lifecycle of a virtual user.

    SPAWNING -> RUNNING -> RETIRE_PENDING -> RETIRED. A user asked to retire
    before its first iteration goes from SPAWNING straight to RETIRE_PENDING.
    """

    SPAWNING = auto()
    RUNNING = auto()
    RETIRE_PENDING = auto()
    RETIRED = auto()


class VirtualUser:
    """One simulated client issuing scenario iterations back to back.

    The owning session drives the state machine: it spawns the user, later
    calls :meth:`request_retire`, and cancels the task only if the user
    outlives the shutdown grace period. Retirement is observed at iteration
    boundaries and interrupts the think-time pause immediately.

    Attributes:
        user_id: Sequence number assigned by the session (spawn order).
        iterations: Completed iterations so far.
    """

    def __init__(
        self,
        user_id: int,
        dispatcher: ScenarioDispatcher,
        accumulator: MetricsAccumulator,
        rng: random.Random,
        *,
        base_url: str,
        think_time: ThinkTime,
        timeout: float = 30.0,
        headers: Headers | None = None,
    ) -> None:
        """Initialize a user in the SPAWNING state.

        Args:
            user_id: Identifier used in logs.
            dispatcher: Shared scenario dispatcher.
            accumulator: Shared metrics accumulator.
            rng: This user's private random source.
            base_url: Target base URL.
            think_time: (min, max) pause between iterations in seconds.
            timeout: Default request timeout in seconds.
            headers: Default request headers.
        """
        self.user_id = user_id
        self.iterations = 0
        self._dispatcher = dispatcher
        self._accumulator = accumulator
        self._rng = rng
        self._base_url = base_url
        self._think_time = think_time
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._state = UserState.SPAWNING
        self._retire = asyncio.Event()
        self._in_iteration = False

    @property
    def state(self) -> UserState:
        """Current lifecycle state."""
        return self._state

    @property
    def active(self) -> bool:
        """True while the user counts towards the session's concurrency."""
        return self._state in (UserState.SPAWNING, UserState.RUNNING)

    @property
    def in_iteration(self) -> bool:
        """True while a scenario iteration is executing."""
        return self._in_iteration

    def request_retire(self) -> None:
        """Ask the user to stop after its current iteration."""
        if self.active:
            self._state = UserState.RETIRE_PENDING
        self._retire.set()

    async def run(self) -> None:
        """Run iterations until retirement is requested.

        Cancellation propagates; an iteration interrupted that way leaves
        :attr:`in_iteration` set so the session can account for it.
        """
        async with HttpClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
        ) as client:
            if self._state is UserState.SPAWNING:
                self._state = UserState.RUNNING
            try:
                while not self._retire.is_set():
                    self._in_iteration = True
                    try:
                        outcome = await self._dispatcher.run_iteration(client, self._rng)
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        logger.warning(
                            "Iteration raised for user %d",
                            self.user_id,
                            exc_info=True,
                            extra={"vu": self.user_id},
                        )
                    else:
                        self.iterations += 1
                        self._accumulator.record_iteration()
                        logger.debug(
                            "User %d finished %s: attempted=%d failed=%d aborted=%s",
                            self.user_id,
                            outcome.scenario,
                            outcome.attempted,
                            outcome.failed,
                            outcome.aborted,
                            extra={"vu": self.user_id, "scenario": outcome.scenario},
                        )
                    self._in_iteration = False
                    await self._think()
            finally:
                self._state = UserState.RETIRED

    async def _think(self) -> None:
        """Pause between iterations; returns early on a retire request."""
        if self._retire.is_set():
            return
        low, high = self._think_time
        delay = self._rng.uniform(low, high)
        if delay <= 0:
            # Yield once so a zero think time cannot starve the event loop.
            await asyncio.sleep(0)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._retire.wait(), timeout=delay)
