"""Concurrency patterns for loadscope.

A :class:`RampPlan` is an ordered list of :class:`Stage` objects; the
target number of virtual users ramps linearly from one stage's target to
the next across each stage's duration.
"""

from __future__ import annotations

from loadscope.patterns.base import LoadPattern
from loadscope.patterns.stages import RampPlan, Stage, parse_duration

__all__ = [
    "LoadPattern",
    "RampPlan",
    "Stage",
    "parse_duration",
]
