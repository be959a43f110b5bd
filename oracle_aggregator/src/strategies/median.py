"""Median strategy.

Robust to a minority of bad sources. Source weights are ignored.
"""

from __future__ import annotations

from statistics import median as _median
from typing import Mapping, Sequence

from ..PriceData import PriceSample
from .base import AggregationStrategy, register_strategy


@register_strategy
class MedianStrategy(AggregationStrategy):
    """Middle price for odd counts, mean of the two middle prices for even counts.

    .. code-block:: python

        >>> MedianStrategy().aggregate(samples_at([100, 200, 300, 400]))
        250.0
    """

    name = "median"

    def aggregate(
        self,
        samples: Sequence[PriceSample],
        weights: Mapping[str, float] | None = None,
    ) -> float:
        """Aggregate prices using the median.

        :param samples: Non-empty list of samples.
        :param weights: Ignored.
        :returns: Median price.
        """
        self._require_samples(samples)
        return float(_median(s.price for s in samples))
