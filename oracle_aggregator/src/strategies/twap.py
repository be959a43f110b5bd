"""Time-weighted average price (TWAP) strategy.

Samples are weighted by freshness within a lookback window instead of by
source trust: a sample observed now has weight 1, one observed
``window_seconds`` ago has weight 0. Samples older than the window are
ignored. If no sample falls inside the window the simple mean is returned.
"""

from __future__ import annotations

import time
from typing import Mapping, Sequence

from ..errors import ConfigurationError
from ..PriceData import PriceSample
from .base import AggregationStrategy, register_strategy


@register_strategy
class TWAPStrategy(AggregationStrategy):
    """Linear-decay time-weighted average over a lookback window.

    :ivar window_seconds: Lookback window length.
    """

    name = "twap"

    DEFAULT_WINDOW_SECONDS = 60.0

    def __init__(self, window_seconds: float = DEFAULT_WINDOW_SECONDS) -> None:
        """Initialize the strategy.

        :param window_seconds: Lookback window length (default: 60).
        :raises ConfigurationError: If window_seconds is not positive.
        """
        if window_seconds <= 0:
            raise ConfigurationError("window_seconds must be positive")
        self.window_seconds = window_seconds

    def time_weight(self, sample: PriceSample, now: float) -> float:
        """Weight of a sample given its age.

        :param sample: Sample to weigh.
        :param now: Reference time.
        :returns: Weight in [0, 1].
        """
        age = max(0.0, now - sample.timestamp)
        if age > self.window_seconds:
            return 0.0
        return 1.0 - age / self.window_seconds

    def aggregate(
        self,
        samples: Sequence[PriceSample],
        weights: Mapping[str, float] | None = None,
    ) -> float:
        """Aggregate prices weighted by recency.

        :param samples: Non-empty list of samples.
        :param weights: Ignored; freshness replaces source trust.
        :returns: Time-weighted average price.
        """
        self._require_samples(samples)
        if len(samples) == 1:
            return samples[0].price

        now = time.time()
        time_weights = [self.time_weight(s, now) for s in samples]
        total_weight = sum(time_weights)

        if total_weight == 0:
            return sum(s.price for s in samples) / len(samples)

        weighted_sum = sum(s.price * w for s, w in zip(samples, time_weights, strict=True))
        return weighted_sum / total_weight

    def __repr__(self) -> str:
        return f"TWAPStrategy(window_seconds={self.window_seconds!r})"
