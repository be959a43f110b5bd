"""OutlierDetector: Statistical outlier rejection over a batch of price samples.

Two methods are available:
    - IQR: flags samples outside [Q1 - 1.5*IQR, Q3 + 1.5*IQR] (needs >= 4 samples)
    - Z-score: flags samples whose |price - mean| / stddev exceeds a threshold
      (needs >= 3 samples, population stddev)

Below the minimum sample count both methods return no outliers, so small
deployments degrade to trusting every source rather than failing.

.. code-block:: python

    >>> filtered, outliers = filter_outliers(samples, OutlierMethod.IQR)
    >>> len(filtered) + len(outliers) == len(samples)
    True
"""

from __future__ import annotations

from enum import Enum
from statistics import mean, median, pstdev
from typing import Sequence

from .PriceData import PriceSample

IQR_MIN_SAMPLES = 4
ZSCORE_MIN_SAMPLES = 3
DEFAULT_ZSCORE_THRESHOLD = 2.0


class OutlierMethod(str, Enum):
    """Outlier detection method."""

    IQR = "iqr"
    Z_SCORE = "z_score"


def quartiles(values: Sequence[float]) -> tuple[float, float, float]:
    """Compute Q1, median and Q3 by the median-of-halves rule.

    For an odd count the median itself is excluded from both halves.

    :param values: At least two numbers, in any order.
    :returns: Tuple of (q1, q2, q3).

    .. code-block:: python

        >>> quartiles([1, 2, 3, 4])
        (1.5, 2.5, 3.5)
    """
    ordered = sorted(values)
    mid = len(ordered) // 2
    lower = ordered[:mid]
    upper = ordered[mid:] if len(ordered) % 2 == 0 else ordered[mid + 1:]
    return median(lower), median(ordered), median(upper)


def detect_outliers_iqr(samples: Sequence[PriceSample]) -> list[PriceSample]:
    """Detect outliers with the interquartile range rule.

    :param samples: Price samples to inspect.
    :returns: Samples outside the IQR fences, in input order.
    """
    if len(samples) < IQR_MIN_SAMPLES:
        return []

    q1, _, q3 = quartiles([s.price for s in samples])
    iqr = q3 - q1
    lower_bound = q1 - 1.5 * iqr
    upper_bound = q3 + 1.5 * iqr

    return [s for s in samples if s.price < lower_bound or s.price > upper_bound]


def detect_outliers_zscore(
    samples: Sequence[PriceSample],
    threshold: float = DEFAULT_ZSCORE_THRESHOLD,
) -> list[PriceSample]:
    """Detect outliers by z-score against the population standard deviation.

    :param samples: Price samples to inspect.
    :param threshold: Z-score above which a sample is an outlier (default: 2.0).
    :returns: Samples whose z-score exceeds the threshold, in input order.
    """
    if len(samples) < ZSCORE_MIN_SAMPLES:
        return []

    prices = [s.price for s in samples]
    avg = mean(prices)
    std_dev = pstdev(prices, avg)

    # All sources agree
    if std_dev == 0:
        return []

    return [s for s in samples if abs(s.price - avg) / std_dev > threshold]


def detect_outliers(
    samples: Sequence[PriceSample],
    method: OutlierMethod = OutlierMethod.Z_SCORE,
    threshold: float = DEFAULT_ZSCORE_THRESHOLD,
) -> list[PriceSample]:
    """Detect outliers using the given method.

    :param samples: Price samples to inspect.
    :param method: Detection method (default: Z-score).
    :param threshold: Threshold for the Z-score method.
    :returns: Detected outliers.
    """
    if not samples:
        return []
    if OutlierMethod(method) is OutlierMethod.IQR:
        return detect_outliers_iqr(samples)
    return detect_outliers_zscore(samples, threshold)


def filter_outliers(
    samples: Sequence[PriceSample],
    method: OutlierMethod = OutlierMethod.Z_SCORE,
    threshold: float = DEFAULT_ZSCORE_THRESHOLD,
) -> tuple[list[PriceSample], list[PriceSample]]:
    """Partition samples into kept samples and outliers.

    Partitioning is by sample identity, so two samples from the same source
    are judged independently and the two lists always add up to the input.

    :param samples: Price samples to partition. Not mutated.
    :param method: Detection method.
    :param threshold: Threshold for the Z-score method.
    :returns: Tuple of (filtered, outliers), both in input order.
    """
    outlier_ids = {id(s) for s in detect_outliers(samples, method, threshold)}
    filtered = [s for s in samples if id(s) not in outlier_ids]
    outliers = [s for s in samples if id(s) in outlier_ids]
    return filtered, outliers
