"""
Aggregation strategies.

Usage:
    from oracle_aggregator.src.strategies import get_strategy, get_available_strategies

    get_available_strategies()
    # ['mean', 'median', 'twap', 'weighted_average']

    strategy = get_strategy("twap", window_seconds=120)
    price = strategy.aggregate(samples, weights)
"""

# Import base classes and utilities
from .base import (
    STRATEGY_REGISTRY,
    AggregationStrategy,
    get_available_strategies,
    get_strategy,
    register_strategy,
)

# Import all strategy implementations to trigger registration
from .mean import MeanStrategy
from .median import MedianStrategy
from .twap import TWAPStrategy
from .weighted_average import WeightedAverageStrategy

__all__ = [
    # Base classes
    "AggregationStrategy",
    # Registry functions
    "register_strategy",
    "get_strategy",
    "get_available_strategies",
    "STRATEGY_REGISTRY",
    # Strategy implementations
    "MeanStrategy",
    "MedianStrategy",
    "TWAPStrategy",
    "WeightedAverageStrategy",
]
