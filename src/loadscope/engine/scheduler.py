"""Ramp scheduler that converts a LoadPattern into per-tick scale commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadscope._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from loadscope.patterns.base import LoadPattern


class ScaleDirection(Enum):
    """Direction of a concurrency scale event."""

    UP = auto()
    DOWN = auto()
    HOLD = auto()

    @classmethod
    def for_change(cls, change: int) -> ScaleDirection:
        """Classify a signed change in user count."""
        if change > 0:
            return cls.UP
        if change < 0:
            return cls.DOWN
        return cls.HOLD


@dataclass(frozen=True)
class ScaleCommand:
    """Target user count for one tick of the ramp.

    Attributes:
        elapsed_seconds: Time offset from test start.
        target_concurrency: Desired number of active virtual users.
        direction: Whether this is scaling up, down, or holding steady.
        delta: Absolute change in virtual user count (always >= 0).
    """

    elapsed_seconds: float
    target_concurrency: int
    direction: ScaleDirection
    delta: int


class Scheduler:
    """Turns a ramp plan into one scale command per tick.

    Reads ``LoadPattern.iter_concurrency()`` and emits one ``ScaleCommand``
    per tick with the target and how it changed from the previous tick.
    The last command always targets zero users at the end of the schedule.

    Args:
        pattern: The ramp plan to follow.
        duration_seconds: Cut the schedule short at this offset. Defaults to
            the pattern's full duration.
        tick_interval: Seconds between concurrency adjustments.
    """

    def __init__(
        self,
        pattern: LoadPattern,
        duration_seconds: float | None = None,
        tick_interval: float = 0.5,
    ) -> None:
        """Validate the tick and clamp the duration to the plan.

        Raises:
            ConfigError: If the duration or tick interval is not positive.
        """
        if tick_interval <= 0:
            msg = f"tick_interval must be positive, got {tick_interval}"
            raise ConfigError(msg)
        if duration_seconds is None:
            duration_seconds = pattern.total_duration
        if duration_seconds <= 0:
            msg = f"duration must be positive, got {duration_seconds}"
            raise ConfigError(msg)
        self._pattern = pattern
        self._duration_seconds = min(duration_seconds, pattern.total_duration)
        self._tick_interval = tick_interval

    @property
    def duration_seconds(self) -> float:
        """Offset of the final command."""
        return self._duration_seconds

    def iter_commands(self) -> Iterator[ScaleCommand]:
        """Walk the ramp one tick at a time.

        Yields:
            One command per tick. The last one targets zero users at
            :attr:`duration_seconds`.
        """
        previous = 0
        for elapsed, desired in self._pattern.iter_concurrency(self._tick_interval):
            final = elapsed >= self._duration_seconds
            if final:
                elapsed, desired = self._duration_seconds, 0
            change = desired - previous
            yield ScaleCommand(
                elapsed_seconds=elapsed,
                target_concurrency=desired,
                direction=ScaleDirection.for_change(change),
                delta=abs(change),
            )
            if final:
                return
            previous = desired

    @property
    def total_ticks(self) -> int:
        """Number of commands :meth:`iter_commands` yields."""
        return sum(1 for _ in self.iter_commands())
