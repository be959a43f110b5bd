"""Base aggregation strategy interface and strategy registry.

A strategy reduces a batch of already-filtered samples to one price. Exactly
one strategy is active on an aggregator at a time; strategies are stateless
with respect to the cache, so switching never affects cached results.

.. code-block:: python

    @register_strategy
    class MyStrategy(AggregationStrategy):
        name = "mine"

        def aggregate(self, samples, weights=None) -> float:
            self._require_samples(samples)
            return min(s.price for s in samples)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping, Sequence

from ..errors import ConfigurationError, EmptyAggregationInputError
from ..PriceData import PriceSample


class AggregationStrategy(ABC):
    """Abstract base class for aggregation strategies.

    :cvar name: Unique identifier for this strategy.
    """

    name: ClassVar[str] = ""

    @abstractmethod
    def aggregate(
        self,
        samples: Sequence[PriceSample],
        weights: Mapping[str, float] | None = None,
    ) -> float:
        """Reduce samples to a single price.

        :param samples: Non-empty list of samples.
        :param weights: Optional mapping of source name to weight.
        :returns: Aggregated price.
        :raises EmptyAggregationInputError: If samples is empty.
        """
        pass

    def _require_samples(self, samples: Sequence[PriceSample]) -> None:
        if not samples:
            raise EmptyAggregationInputError(
                f"{self.name} strategy cannot aggregate an empty sample list"
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# Registry of available strategies (populated by subclass imports)
STRATEGY_REGISTRY: dict[str, type[AggregationStrategy]] = {}


def register_strategy(cls: type[AggregationStrategy]) -> type[AggregationStrategy]:
    """Decorator to register a strategy class in the global registry.

    :param cls: Strategy class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If strategy has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Strategy {cls.__name__} must define a 'name' class variable")
    STRATEGY_REGISTRY[cls.name] = cls
    return cls


def get_strategy(name: str, **kwargs: Any) -> AggregationStrategy:
    """Get a strategy instance by name.

    :param name: Strategy name (e.g., "median", "twap").
    :param kwargs: Constructor arguments (e.g., window_seconds for TWAP).
    :returns: Strategy instance.
    :raises ConfigurationError: If strategy name is unknown.
    """
    key = name.strip().lower()
    if key not in STRATEGY_REGISTRY:
        available = ", ".join(sorted(STRATEGY_REGISTRY.keys()))
        raise ConfigurationError(f"Unknown strategy '{name}'. Available: {available}")
    return STRATEGY_REGISTRY[key](**kwargs)


def get_available_strategies() -> list[str]:
    """Get list of available strategy names.

    :returns: Sorted list of registered strategy names.
    """
    return sorted(STRATEGY_REGISTRY.keys())
