"""Weighted random choice over a fixed population."""

from __future__ import annotations

import bisect
import math
from itertools import accumulate
from typing import TYPE_CHECKING, Generic, TypeVar

from loadscope._internal.errors import ConfigError

if TYPE_CHECKING:
    import random
    from collections.abc import Sequence

T = TypeVar("T")


class WeightedChoice(Generic[T]):
    """Pick items with probability ``weight_i / sum(weights)``.

    Builds the cumulative weight array once; each pick is a single uniform
    draw in ``[0, total)`` followed by a binary search, so the cost grows
    with ``log(n)`` as the population grows.

    Args:
        items: Population to choose from.
        weights: Positive finite weight per item; need not sum to 1.

    Raises:
        ConfigError: If the sequences are empty, differ in length, or a
            weight is not a positive finite number.
    """

    def __init__(self, items: Sequence[T], weights: Sequence[float]) -> None:
        if not items:
            msg = "WeightedChoice needs at least one item"
            raise ConfigError(msg)
        if len(items) != len(weights):
            msg = f"Got {len(items)} items but {len(weights)} weights"
            raise ConfigError(msg)
        for weight in weights:
            if not math.isfinite(weight) or weight <= 0:
                msg = f"Weights must be positive finite numbers, got {weight}"
                raise ConfigError(msg)
        self._items: tuple[T, ...] = tuple(items)
        self._cumulative: list[float] = list(accumulate(float(w) for w in weights))

    @property
    def total(self) -> float:
        """Sum of all weights."""
        return self._cumulative[-1]

    def probability(self, index: int) -> float:
        """Selection probability of the item at *index*."""
        previous = self._cumulative[index - 1] if index > 0 else 0.0
        return (self._cumulative[index] - previous) / self.total

    def pick(self, rng: random.Random) -> T:
        """Draw one item using *rng*."""
        point = rng.random() * self.total
        index = bisect.bisect_right(self._cumulative, point)
        # random() < 1.0, but float rounding in ``* total`` can land on it.
        return self._items[min(index, len(self._items) - 1)]

    def __len__(self) -> int:
        return len(self._items)
