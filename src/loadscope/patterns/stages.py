"""Ramp plans: ordered stages with linear interpolation between targets."""

from __future__ import annotations

import bisect
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from itertools import accumulate
from typing import Any

from loadscope._internal.errors import ConfigError
from loadscope.patterns.base import LoadPattern, _validate_non_negative, _validate_positive

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str | float) -> float:
    """Parse ``"30s"``, ``"1m30s"``, ``"500ms"`` or a number into seconds.

    Raises:
        ConfigError: If the text is not a duration or the number is not finite.
    """
    if isinstance(value, int | float):
        seconds = float(value)
    else:
        text = value.strip().lower()
        try:
            seconds = float(text)
        except ValueError:
            return _parse_duration_text(value, text)
    if not math.isfinite(seconds):
        msg = f"Invalid duration: {value!r} (must be finite)"
        raise ConfigError(msg)
    return seconds


def _parse_duration_text(value: str, text: str) -> float:
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        msg = f"Invalid duration: {value!r} (expected e.g. '30s', '1m30s', '500ms')"
        raise ConfigError(msg)
    return total


def format_duration(seconds: float) -> str:
    """Render seconds compactly, e.g. ``90.0 -> "1m30s"``."""
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    minutes, secs = divmod(seconds, 60)
    if minutes >= 1:
        return f"{int(minutes)}m{secs:g}s" if secs else f"{int(minutes)}m"
    return f"{secs:g}s"


@dataclass(frozen=True)
class Stage:
    """One leg of a ramp plan.

    Attributes:
        duration_seconds: Length of the stage; must be > 0.
        target: Concurrency reached at the end of the stage; must be >= 0.
    """

    duration_seconds: float
    target: int

    def __post_init__(self) -> None:
        _validate_positive(self.duration_seconds, "stage duration")
        _validate_non_negative(self.target, "stage target")
        if int(self.target) != self.target:
            msg = f"stage target must be an integer, got {self.target}"
            raise ConfigError(msg)
        object.__setattr__(self, "target", int(self.target))

    @classmethod
    def parse(cls, value: Stage | str | Mapping[str, Any]) -> Stage:
        """Build a stage from ``"30s:100"`` or ``{"duration": "30s", "target": 100}``.

        Raises:
            ConfigError: If the value is malformed.
        """
        if isinstance(value, Stage):
            return value
        if isinstance(value, str):
            duration, sep, target = value.partition(":")
            if not sep:
                msg = f"Stage must look like '<duration>:<target>', got {value!r}"
                raise ConfigError(msg)
            raw_duration: Any = duration
            raw_target: Any = target.strip()
        elif isinstance(value, Mapping):
            if "duration" not in value or "target" not in value:
                msg = f"Stage mapping needs 'duration' and 'target', got {dict(value)!r}"
                raise ConfigError(msg)
            raw_duration = value["duration"]
            raw_target = value["target"]
        else:
            msg = f"Unsupported stage definition: {value!r}"
            raise ConfigError(msg)
        if isinstance(raw_target, bool):
            target_value: Any = None
        elif isinstance(raw_target, int | float):
            # Non-integral numbers are rejected by __post_init__, never truncated.
            target_value = raw_target
        else:
            try:
                target_value = int(raw_target)
            except (TypeError, ValueError):
                target_value = None
        if target_value is None:
            msg = f"Stage target must be an integer, got {raw_target!r}"
            raise ConfigError(msg)
        return cls(duration_seconds=parse_duration(raw_duration), target=target_value)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the ``{"duration", "target"}`` shape."""
        return {"duration": format_duration(self.duration_seconds), "target": self.target}


class RampPlan(LoadPattern):
    """Ordered stages; concurrency ramps linearly toward each stage's target.

    Stage *i* starts at stage *i-1*'s target (or *start_target* for the
    first stage) and reaches its own target at its end, so a plan is a
    piecewise-linear ramp, never a step function.

    Args:
        stages: Non-empty sequence of stages.
        start_target: Concurrency at ``t = 0``.  Defaults to 0.

    Raises:
        ConfigError: If *stages* is empty or any stage is invalid.

    Example::

        plan = RampPlan([Stage(30.0, 10), Stage(30.0, 50)])
        assert plan.desired_concurrency(45.0) == 30
    """

    def __init__(self, stages: Sequence[Stage], start_target: int = 0) -> None:
        if not stages:
            msg = "Ramp plan must contain at least one stage"
            raise ConfigError(msg)
        _validate_non_negative(start_target, "start_target")
        self._stages: tuple[Stage, ...] = tuple(stages)
        self._start_target = int(start_target)
        self._ends = list(accumulate(s.duration_seconds for s in self._stages))

    @classmethod
    def parse(
        cls,
        stages: Sequence[Stage | str | Mapping[str, Any]],
        start_target: int = 0,
    ) -> RampPlan:
        """Build a plan from stage strings, mappings or Stage objects."""
        if isinstance(stages, str | bytes):
            msg = "Ramp plan must be a sequence of stages, not a single string"
            raise ConfigError(msg)
        return cls([Stage.parse(s) for s in stages], start_target=start_target)

    @property
    def stages(self) -> tuple[Stage, ...]:
        """Stages in order."""
        return self._stages

    @property
    def start_target(self) -> int:
        """Concurrency at the start of the first stage."""
        return self._start_target

    @property
    def total_duration(self) -> float:
        """Sum of all stage durations."""
        return self._ends[-1]

    def stage_index_at(self, elapsed: float) -> int | None:
        """Return the index of the stage active at *elapsed*, or None after the end."""
        if elapsed < 0:
            return 0
        index = bisect.bisect_right(self._ends, elapsed)
        return index if index < len(self._stages) else None

    def desired_concurrency(self, elapsed: float) -> int:
        """Linearly interpolate the target within the active stage."""
        index = self.stage_index_at(elapsed)
        if index is None:
            return 0
        stage = self._stages[index]
        begin = self._ends[index] - stage.duration_seconds
        previous = self._stages[index - 1].target if index > 0 else self._start_target
        fraction = min(max((elapsed - begin) / stage.duration_seconds, 0.0), 1.0)
        return max(round(previous + (stage.target - previous) * fraction), 0)

    def describe(self) -> str:
        """Return e.g. ``"Ramp: 0 -> 100 (30s) -> 100 (10s) -> 0 (10s)"``."""
        legs = " -> ".join(
            f"{s.target} ({format_duration(s.duration_seconds)})" for s in self._stages
        )
        return f"Ramp: {self._start_target} -> {legs}"

    def to_list(self) -> list[dict[str, Any]]:
        """Serialize stages for reports."""
        return [s.to_dict() for s in self._stages]
