"""Mean strategy: simple arithmetic mean, weights ignored."""

from __future__ import annotations

from statistics import fmean
from typing import Mapping, Sequence

from ..PriceData import PriceSample
from .base import AggregationStrategy, register_strategy


@register_strategy
class MeanStrategy(AggregationStrategy):
    name = "mean"

    def aggregate(
        self,
        samples: Sequence[PriceSample],
        weights: Mapping[str, float] | None = None,
    ) -> float:
        self._require_samples(samples)
        return fmean(s.price for s in samples)
