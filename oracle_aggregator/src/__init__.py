"""
Oracle Aggregator - Multi-Source Price Aggregation Engine

This module turns several unreliable price feeds into one trusted price:
- OracleAggregator: Fan-out, filtering, aggregation, caching and fallback
- OutlierDetector: IQR and z-score outlier rejection
- PriceValidator: Sample validation and median-deviation guard
- PriceCache: TTL and LRU bounded cache for samples and results
- CircuitBreaker: Per-source CLOSED/OPEN/HALF_OPEN state machine
- SourceManager: Per-source health records and circuit breakers
- strategies: Pluggable aggregation math (median, mean, weighted, TWAP)
- sources: Price source interface and HTTP adapters
"""

from .CircuitBreaker import BreakerSnapshot, CircuitBreaker, CircuitState
from .config import AggregationConfig, CacheConfig, CircuitBreakerConfig
from .errors import (
    ConfigurationError,
    EmptyAggregationInputError,
    InsufficientSourcesError,
    InvalidPriceDataError,
    OracleError,
    SourceUnavailableError,
    StaleDataWarning,
)
from .OracleAggregator import OracleAggregator, compute_confidence
from .OutlierDetector import OutlierMethod, detect_outliers, filter_outliers
from .PriceCache import CacheStats, PriceCache
from .PriceData import AggregatedPrice, PriceSample, SourceInfo, normalize_symbol
from .SourceManager import SourceManager, SourceRecord

__all__ = [
    "AggregatedPrice",
    "AggregationConfig",
    "BreakerSnapshot",
    "CacheConfig",
    "CacheStats",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ConfigurationError",
    "EmptyAggregationInputError",
    "InsufficientSourcesError",
    "InvalidPriceDataError",
    "OracleAggregator",
    "OracleError",
    "OutlierMethod",
    "PriceCache",
    "PriceSample",
    "SourceInfo",
    "SourceManager",
    "SourceRecord",
    "SourceUnavailableError",
    "StaleDataWarning",
    "compute_confidence",
    "detect_outliers",
    "filter_outliers",
    "normalize_symbol",
]
