"""Configuration objects for the aggregator, cache and circuit breakers.

Each config validates itself; components call ``validate()`` on construction
so invalid settings fail fast with ``ConfigurationError``. Durations are in
seconds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .errors import ConfigurationError
from .OutlierDetector import DEFAULT_ZSCORE_THRESHOLD, OutlierMethod


def validate_weight(weight: float) -> float:
    """Check that a source weight is a finite, non-negative number.

    :param weight: Candidate weight.
    :returns: The weight as float.
    :raises ConfigurationError: If the weight is negative or not finite.
    """
    try:
        value = float(weight)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"weight must be a number, got {weight!r}") from e
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"weight must be finite and non-negative, got {weight!r}")
    return value


@dataclass(frozen=True)
class AggregationConfig:
    """Aggregation settings.

    :ivar min_sources: Minimum distinct sources required for a result.
    :ivar max_deviation_percent: Max deviation from the batch median before a
        sample is dropped (0 disables the check).
    :ivar max_staleness_seconds: Max age of samples and of fallback results.
    :ivar enable_outlier_detection: Run statistical outlier detection.
    :ivar outlier_method: Detection method.
    :ivar outlier_threshold: Z-score threshold.
    :ivar fetch_timeout: Per-source call timeout.
    """

    min_sources: int = 2
    max_deviation_percent: float = 10.0
    max_staleness_seconds: float = 60.0
    enable_outlier_detection: bool = True
    outlier_method: OutlierMethod = OutlierMethod.Z_SCORE
    outlier_threshold: float = DEFAULT_ZSCORE_THRESHOLD
    fetch_timeout: float = 10.0

    def validate(self) -> None:
        """Validate settings.

        :raises ConfigurationError: If any setting is out of range.
        """
        if self.min_sources < 1:
            raise ConfigurationError("min_sources must be at least 1")
        if self.max_deviation_percent < 0:
            raise ConfigurationError("max_deviation_percent must not be negative")
        if self.max_staleness_seconds <= 0:
            raise ConfigurationError("max_staleness_seconds must be positive")
        if self.outlier_threshold <= 0:
            raise ConfigurationError("outlier_threshold must be positive")
        if self.fetch_timeout <= 0:
            raise ConfigurationError("fetch_timeout must be positive")
        try:
            OutlierMethod(self.outlier_method)
        except ValueError as e:
            raise ConfigurationError(f"Unknown outlier method: {self.outlier_method!r}") from e


@dataclass(frozen=True)
class CacheConfig:
    """Cache settings.

    :ivar ttl_seconds: Lifetime of a cache entry.
    :ivar max_size: Max entries per cache namespace.
    :ivar enable_fallback: Serve cached aggregated prices when sources fail.
    """

    ttl_seconds: float = 60.0
    max_size: int = 1000
    enable_fallback: bool = True

    def validate(self) -> None:
        """Validate settings.

        :raises ConfigurationError: If any setting is out of range.
        """
        if self.ttl_seconds <= 0:
            raise ConfigurationError("ttl_seconds must be positive")
        if self.max_size < 1:
            raise ConfigurationError("max_size must be at least 1")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Circuit breaker settings.

    :ivar failure_threshold: Consecutive failures before the circuit opens.
    :ivar reset_timeout_seconds: Time an open circuit waits before a trial call.
    :ivar half_open_max_calls: Trial calls allowed while half-open.
    """

    failure_threshold: int = 5
    reset_timeout_seconds: float = 60.0
    half_open_max_calls: int = 3

    def validate(self) -> None:
        """Validate settings.

        :raises ConfigurationError: If any setting is out of range.
        """
        if self.failure_threshold < 1:
            raise ConfigurationError("failure_threshold must be at least 1")
        if self.reset_timeout_seconds < 0:
            raise ConfigurationError("reset_timeout_seconds must not be negative")
        if self.half_open_max_calls < 1:
            raise ConfigurationError("half_open_max_calls must be at least 1")
