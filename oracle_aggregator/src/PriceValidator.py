"""PriceValidator: Sample validation and median-deviation filtering.

Before statistical outlier detection, samples pass two cheap checks:
    1. Validity: price is finite, non-negative and not older than the staleness bound
    2. Deviation: price is within max_deviation_percent of the batch median

The deviation check catches gross errors (e.g., a source quoting in the wrong
unit) that a z-score over a handful of samples cannot flag.

.. code-block:: python

    >>> kept, dropped = filter_by_deviation(samples, max_deviation_percent=5.0)
    >>> [s.source_name for s in dropped]
    ['rogue']
"""

from __future__ import annotations

import time
from statistics import median as _median
from typing import Sequence

from .errors import InvalidPriceDataError
from .PriceData import PriceSample, is_valid_price


def check_staleness(sample: PriceSample, max_age_seconds: float, now: float | None = None) -> bool:
    """Check if a sample is older than the allowed age.

    :param sample: Sample to check.
    :param max_age_seconds: Maximum allowed age.
    :param now: Reference time (default: current time).
    :returns: True if the sample is stale.
    """
    if now is None:
        now = time.time()
    return now - sample.timestamp > max_age_seconds


def validate_price(
    sample: PriceSample,
    max_staleness_seconds: float | None = None,
    now: float | None = None,
) -> PriceSample:
    """Validate a single sample.

    :param sample: Sample to validate.
    :param max_staleness_seconds: Optional staleness bound. None skips the check.
    :param now: Reference time (default: current time).
    :returns: The sample, unchanged.
    :raises InvalidPriceDataError: If the price is unusable or stale.
    """
    if not is_valid_price(sample.price):
        raise InvalidPriceDataError(
            sample.source_name, sample.price, "price must be finite and non-negative"
        )
    if max_staleness_seconds is not None and check_staleness(sample, max_staleness_seconds, now):
        raise InvalidPriceDataError(
            sample.source_name,
            sample.price,
            f"sample older than {max_staleness_seconds}s",
        )
    return sample


def validate_prices(
    samples: Sequence[PriceSample],
    max_staleness_seconds: float | None = None,
    now: float | None = None,
) -> tuple[list[PriceSample], list[PriceSample]]:
    """Split samples into valid and invalid ones.

    :param samples: Samples to validate.
    :param max_staleness_seconds: Optional staleness bound.
    :param now: Reference time (default: current time).
    :returns: Tuple of (valid, invalid).
    """
    valid: list[PriceSample] = []
    invalid: list[PriceSample] = []
    for sample in samples:
        try:
            validate_price(sample, max_staleness_seconds, now)
        except InvalidPriceDataError:
            invalid.append(sample)
        else:
            valid.append(sample)
    return valid, invalid


def require_minimum_sources(samples: Sequence[PriceSample], min_sources: int) -> bool:
    """Check that samples come from at least ``min_sources`` distinct sources.

    :param samples: Samples to count.
    :param min_sources: Required number of distinct sources.
    :returns: True if the requirement is met.
    """
    if len(samples) < min_sources:
        return False
    return len({s.source_name for s in samples}) >= min_sources


def filter_by_deviation(
    samples: Sequence[PriceSample],
    max_deviation_percent: float,
) -> tuple[list[PriceSample], list[PriceSample]]:
    """Drop samples deviating too far from the batch median.

    :param samples: Samples to filter.
    :param max_deviation_percent: Max allowed deviation from the median, in percent.
    :returns: Tuple of (kept, dropped), both in input order.

    .. code-block:: python

        >>> kept, dropped = filter_by_deviation(samples, 5.0)
    """
    if not samples:
        return [], []

    median_price = _median(s.price for s in samples)
    # Relative deviation is undefined around zero
    if median_price == 0:
        return list(samples), []

    kept: list[PriceSample] = []
    dropped: list[PriceSample] = []
    for sample in samples:
        deviation = abs(sample.price - median_price) / median_price * 100
        if deviation <= max_deviation_percent:
            kept.append(sample)
        else:
            dropped.append(sample)
    return kept, dropped
