"""Weighted average strategy.

Each sample contributes in proportion to its source's trust weight.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from ..PriceData import PriceSample
from .base import AggregationStrategy, register_strategy

DEFAULT_WEIGHT = 1.0


@register_strategy
class WeightedAverageStrategy(AggregationStrategy):
    """Computes sum(price * weight) / sum(weight).

    Sources without an explicit weight count as weight 1.0. If every weight is
    zero, all samples count equally.

    .. code-block:: python

        >>> WeightedAverageStrategy().aggregate(samples, {"a": 3.0, "b": 1.0})
    """

    name = "weighted_average"

    def aggregate(
        self,
        samples: Sequence[PriceSample],
        weights: Mapping[str, float] | None = None,
    ) -> float:
        """Aggregate prices using source weights.

        :param samples: Non-empty list of samples.
        :param weights: Optional mapping of source name to weight.
        :returns: Weighted average price.
        """
        self._require_samples(samples)
        if len(samples) == 1:
            return samples[0].price

        weights = weights or {}
        sample_weights = [weights.get(s.source_name, DEFAULT_WEIGHT) for s in samples]
        total_weight = sum(sample_weights)

        if total_weight <= 0:
            return sum(s.price for s in samples) / len(samples)

        weighted_sum = sum(s.price * w for s, w in zip(samples, sample_weights, strict=True))
        return weighted_sum / total_weight
