"""Abstract base class for concurrency patterns."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from loadscope._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator


class LoadPattern(ABC):
    """Abstract time-varying target concurrency.

    A pattern answers "how many virtual users should be active ``t``
    seconds into the run" via :meth:`desired_concurrency`, and has a finite
    :attr:`total_duration` after which the target is 0.  The scheduler
    samples it at a fixed tick through :meth:`iter_concurrency`.

    Example::

        plan = RampPlan.parse(["30s:100", "10s:100", "10s:0"])
        for elapsed, users in plan.iter_concurrency(tick_interval=1.0):
            print(f"t={elapsed:.1f}s -> {users} users")
    """

    @property
    @abstractmethod
    def total_duration(self) -> float:
        """Total wall-clock length of the pattern in seconds."""

    @abstractmethod
    def desired_concurrency(self, elapsed: float) -> int:
        """Return the target number of active virtual users at *elapsed*.

        Args:
            elapsed: Seconds since the start of the run.

        Returns:
            Non-negative target concurrency; 0 once *elapsed* reaches
            :attr:`total_duration`.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short human-readable description for logs and reports."""

    def iter_concurrency(self, tick_interval: float = 1.0) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, target_concurrency)`` at each tick.

        Ticks fall at ``0, tick, 2*tick, ...`` strictly before the end, and
        one final tick at exactly :attr:`total_duration` with target 0.

        Args:
            tick_interval: Seconds between ticks.  Must be positive.

        Yields:
            ``(elapsed_seconds, target_concurrency)`` tuples.
        """
        _validate_positive(tick_interval, "tick_interval")
        total = self.total_duration
        index = 0
        while True:
            elapsed = index * tick_interval
            if elapsed >= total:
                break
            yield (elapsed, self.desired_concurrency(elapsed))
            index += 1
        yield (total, 0)

    def max_concurrency(self, tick_interval: float = 1.0) -> int:
        """Return the highest target reached at any tick."""
        return max((users for _, users in self.iter_concurrency(tick_interval)), default=0)


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not finite and strictly positive."""
    if not math.isfinite(value) or value <= 0:
        msg = f"{name} must be a finite positive number, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not finite or is negative."""
    if not math.isfinite(value) or value < 0:
        msg = f"{name} must be a finite non-negative number, got {value}"
        raise ConfigError(msg)
