"""PriceData: Immutable value types exchanged between sources and the aggregator.

A ``PriceSample`` is one observation from one source. An ``AggregatedPrice``
is the result of combining samples from several sources. Both are frozen once
constructed, so they can be cached and handed to callers without copying.

.. code-block:: python

    >>> sample = PriceSample("XLM", 0.12, timestamp=1700000000.0, source_name="coinbase")
    >>> sample.price
    0.12
    >>> normalize_symbol("xlm/usd")
    'XLM'
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any

from .errors import InvalidPriceDataError


def normalize_symbol(symbol: str) -> str:
    """Normalize a symbol to its uppercase base asset.

    Quote suffixes are stripped, matching how sources key their prices.

    :param symbol: Symbol like "xlm", "XLM/USD" or " btc ".
    :returns: Uppercase base symbol (e.g., "XLM").
    :raises ValueError: If the symbol is empty.

    .. code-block:: python

        >>> normalize_symbol("XLM/USD")
        'XLM'
    """
    base = symbol.split("/", 1)[0].strip().upper()
    if not base:
        raise ValueError(f"Invalid symbol '{symbol}'. Expected e.g. 'XLM' or 'XLM/USD'")
    return base


def is_valid_price(price: object) -> bool:
    """Check that a price is a finite, non-negative number.

    :param price: Candidate price value.
    :returns: True if the value can be used as a price.
    """
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        return False
    return math.isfinite(price) and price >= 0


@dataclass(frozen=True)
class PriceSample:
    """One price observation from one source.

    :ivar symbol: Uppercase asset symbol.
    :ivar price: Finite, non-negative price.
    :ivar timestamp: Unix timestamp of the observation.
    :ivar source_name: Name of the source that produced it.
    :ivar metadata: Source-specific extra information.
    """

    symbol: str
    price: float
    timestamp: float = field(default_factory=time.time)
    source_name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not is_valid_price(self.price):
            raise InvalidPriceDataError(
                self.source_name or "unknown", self.price, "price must be finite and non-negative"
            )


@dataclass(frozen=True)
class AggregatedPrice:
    """Price combined from several sources.

    :ivar symbol: Uppercase asset symbol.
    :ivar price: Aggregated price.
    :ivar timestamp: Unix timestamp of the aggregation.
    :ivar confidence: Trust score in [0, 1].
    :ivar sources_used: Sources whose samples contributed.
    :ivar outliers_filtered: Sources whose samples were rejected as outliers.
    :ivar source_count: Number of contributing sources.
    :ivar metadata: Extra information (strategy, failures, stale flag).
    """

    symbol: str
    price: float
    timestamp: float
    confidence: float
    sources_used: tuple[str, ...]
    outliers_filtered: tuple[str, ...] = ()
    source_count: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.source_count != len(self.sources_used):
            raise ValueError(
                f"source_count ({self.source_count}) does not match "
                f"sources_used ({len(self.sources_used)})"
            )

    @property
    def is_stale(self) -> bool:
        """Check if this result was served from the fallback cache."""
        return bool(self.metadata.get("stale", False))


@dataclass(frozen=True)
class SourceInfo:
    """Descriptive information published by a source.

    :ivar name: Unique source name.
    :ivar description: Human-readable description.
    :ivar version: Source adapter version.
    :ivar supported_symbols: Symbols the source can price (empty means any).
    :ivar metadata: Extra information (e.g., API URL).
    """

    name: str
    description: str = ""
    version: str = "1.0.0"
    supported_symbols: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
