"""Load session lifecycle: ramp ticks, virtual user pool and shutdown."""

from __future__ import annotations

import asyncio
import random
import signal
import sys
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadscope._internal.config import LoadScopeConfig
from loadscope._internal.errors import EngineError
from loadscope._internal.logging import get_logger
from loadscope.engine.dispatcher import ScenarioDispatcher
from loadscope.engine.scheduler import Scheduler
from loadscope.engine.virtual_user import VirtualUser

if TYPE_CHECKING:
    from loadscope._internal.types import Headers, TimelinePoint
    from loadscope.dsl.scenario import ScenarioLibrary
    from loadscope.metrics.accumulator import MetricsAccumulator
    from loadscope.patterns.base import LoadPattern

logger = get_logger("engine.session")


class SessionState(Enum):
    """State machine for a load session."""

    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class SessionResult:
    """What the session observed while driving the ramp.

    Attributes:
        duration_seconds: Wall-clock time from first tick to full shutdown.
        max_users: Highest active user count reached.
        timeline: ``(elapsed_seconds, active_users)`` after each tick.
        forced_cancellations: Users cancelled after the grace period.
        stopped_early: True if a stop request cut the ramp short.
    """

    duration_seconds: float
    max_users: int
    timeline: tuple[TimelinePoint, ...]
    forced_cancellations: int = 0
    stopped_early: bool = False


class LoadSession:
    """Drives virtual users along a ramp plan against one target.

    State machine: CREATED -> STARTING -> RUNNING -> STOPPING -> COMPLETED
                                                  -> FAILED (on error)

    On every tick the session compares the plan's desired concurrency with
    the active user count, spawns new users or asks the oldest active users
    to retire. After the last tick all users are asked to retire and get
    ``config.grace_period`` seconds to finish their iteration; stragglers are
    cancelled and their in-flight iteration is counted as discarded.
    """

    def __init__(
        self,
        library: ScenarioLibrary,
        plan: LoadPattern,
        accumulator: MetricsAccumulator,
        config: LoadScopeConfig | None = None,
        *,
        headers: Headers | None = None,
        handle_signals: bool = False,
    ) -> None:
        """Initialize a load session.

        Args:
            library: Scenarios the virtual users execute.
            plan: Ramp plan controlling concurrency.
            accumulator: Run-wide metrics sink shared by all users.
            config: Target, pacing and timing settings.
            headers: Default request headers for every user.
            handle_signals: Install SIGINT/SIGTERM handlers that stop the
                ramp early and shut users down gracefully.
        """
        self._library = library
        self._plan = plan
        self._accumulator = accumulator
        self._config = config or LoadScopeConfig()
        self._headers = dict(headers or {})
        self._handle_signals = handle_signals

        self._dispatcher = ScenarioDispatcher(
            library, accumulator, default_timeout=self._config.request_timeout
        )
        self._seed_source = random.Random(self._config.seed)  # noqa: S311
        self._state = SessionState.CREATED
        self._users: list[VirtualUser] = []
        self._tasks: dict[int, asyncio.Task[None]] = {}
        self._next_user_id = 0
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> SessionState:
        """Return the current session state."""
        return self._state

    @property
    def active_user_count(self) -> int:
        """Users that count towards concurrency (not retiring)."""
        return sum(1 for u in self._users if u.active)

    @property
    def users(self) -> tuple[VirtualUser, ...]:
        """Users that have not yet been reaped, oldest first."""
        return tuple(self._users)

    async def run(self) -> SessionResult:
        """Execute the ramp plan and shut every user down.

        Returns:
            SessionResult with timeline and shutdown accounting.

        Raises:
            EngineError: If the session fails unexpectedly.
        """
        self._state = SessionState.STARTING
        scheduler = Scheduler(self._plan, tick_interval=self._config.tick_interval)
        logger.info(
            "Starting load session: plan=%s (%d ticks), scenarios=%d, endpoints=%d, target=%s",
            self._plan.describe(),
            scheduler.total_ticks,
            len(self._library),
            len(self._library.catalog),
            self._config.base_url,
        )

        if self._handle_signals:
            self._install_signal_handlers()

        timeline: list[TimelinePoint] = []
        max_users = 0
        forced = 0
        start_time = time.monotonic()
        self._state = SessionState.RUNNING

        try:
            for command in scheduler.iter_commands():
                if self._stop_event.is_set():
                    break

                target_time = start_time + command.elapsed_seconds
                now = time.monotonic()
                if target_time > now:
                    try:
                        await asyncio.wait_for(self._stop_event.wait(), target_time - now)
                    except TimeoutError:
                        pass
                    else:
                        break

                self._scale_to(command.target_concurrency)
                active = self.active_user_count
                max_users = max(max_users, active)
                timeline.append((round(command.elapsed_seconds, 3), active))
                logger.debug(
                    "Tick %.2fs: target=%d (%s %d), active=%d, retiring=%d, coverage=%.1f%%",
                    command.elapsed_seconds,
                    command.target_concurrency,
                    command.direction.name,
                    command.delta,
                    active,
                    len(self._users) - active,
                    self._accumulator.coverage_percentage(),
                )
        except Exception as exc:
            self._state = SessionState.FAILED
            logger.exception("Load session failed")
            raise EngineError("Load session failed") from exc
        finally:
            if self._state != SessionState.FAILED:
                self._state = SessionState.STOPPING
            forced = await self._shutdown()
            if self._handle_signals:
                self._remove_signal_handlers()

        duration = time.monotonic() - start_time
        stopped_early = self._stop_event.is_set()
        if self._state is SessionState.STOPPING:
            self._state = SessionState.COMPLETED
        logger.info(
            "Load session finished: duration=%.1fs, max_users=%d, forced_cancellations=%d%s",
            duration,
            max_users,
            forced,
            " (stopped early)" if stopped_early else "",
        )
        return SessionResult(
            duration_seconds=duration,
            max_users=max_users,
            timeline=tuple(timeline),
            forced_cancellations=forced,
            stopped_early=stopped_early,
        )

    async def stop(self) -> None:
        """Request early, graceful end of the ramp."""
        if self._state == SessionState.RUNNING:
            logger.info("Graceful shutdown requested")
            self._state = SessionState.STOPPING
        self._stop_event.set()

    def _spawn(self) -> None:
        user_id = self._next_user_id
        self._next_user_id += 1
        user = VirtualUser(
            user_id,
            self._dispatcher,
            self._accumulator,
            random.Random(self._seed_source.getrandbits(64)),  # noqa: S311
            base_url=self._config.base_url,
            think_time=self._config.think_time,
            timeout=self._config.request_timeout,
            headers=self._headers,
        )
        self._users.append(user)
        self._tasks[user_id] = asyncio.create_task(user.run(), name=f"virtual-user-{user_id}")

    def _scale_to(self, target: int) -> None:
        """Spawn users or retire the oldest active ones to reach *target*."""
        self._reap()
        active = [u for u in self._users if u.active]
        if target > len(active):
            for _ in range(target - len(active)):
                self._spawn()
        elif target < len(active):
            for user in active[: len(active) - target]:
                user.request_retire()

    def _reap(self) -> None:
        """Drop users whose task has finished, logging unexpected failures."""
        remaining = []
        for user in self._users:
            task = self._tasks[user.user_id]
            if not task.done():
                remaining.append(user)
                continue
            del self._tasks[user.user_id]
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Virtual user %d crashed",
                    user.user_id,
                    exc_info=task.exception(),
                    extra={"vu": user.user_id},
                )
        self._users = remaining

    async def _shutdown(self) -> int:
        """Retire every user, wait the grace period, cancel stragglers.

        Returns:
            Number of users that had to be cancelled.
        """
        for user in self._users:
            user.request_retire()
        if not self._tasks:
            return 0

        _done, pending = await asyncio.wait(
            self._tasks.values(), timeout=self._config.grace_period
        )
        stragglers = [u for u in self._users if self._tasks[u.user_id] in pending]
        for user in stragglers:
            self._tasks[user.user_id].cancel()
        if pending:
            await asyncio.wait(pending)
            logger.warning(
                "Cancelled %d virtual user(s) still running after %.1fs grace period",
                len(stragglers),
                self._config.grace_period,
            )
        for user in stragglers:
            if user.in_iteration:
                self._accumulator.record_discarded_iteration()
        self._reap()
        logger.debug("All virtual users shut down")
        return len(stragglers)

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers that stop the ramp."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self._state = SessionState.STOPPING
            self._stop_event.set()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
