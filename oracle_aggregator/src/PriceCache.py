"""PriceCache: TTL- and size-bounded cache for raw samples and aggregated prices.

Two independent namespaces share one policy:
    - Raw samples, keyed by "SYMBOL:source"
    - Aggregated prices, keyed by "SYMBOL"

Expiry is lazy: entries are checked on every read and an expired entry is
deleted when read. There is no background sweep. Each namespace is an
OrderedDict kept in access order, so the least recently used key is always
first and is evicted when a new key would exceed ``max_size``.

.. code-block:: python

    >>> cache = PriceCache(CacheConfig(ttl_seconds=30, max_size=100))
    >>> cache.set_price(sample)
    >>> cache.get_price("XLM", "coinbase") is sample
    True
    >>> cache.stats()
    CacheStats(price_count=1, aggregated_count=0, total_size=1)
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Generic, NamedTuple, TypeVar

from .config import CacheConfig
from .PriceData import AggregatedPrice, PriceSample, normalize_symbol

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with its write time and expiry time.

    :ivar data: Cached value.
    :ivar timestamp: Unix timestamp of the write.
    :ivar expires_at: Unix timestamp after which the entry is dead.
    """

    data: T
    timestamp: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired at the given time."""
        return now > self.expires_at


class CacheStats(NamedTuple):
    """Entry counts per namespace."""

    price_count: int
    aggregated_count: int
    total_size: int


class PriceCache:
    """In-memory cache with lazy TTL expiry and per-namespace LRU eviction.

    All bookkeeping is done under a lock, so the cache can be shared between
    concurrent aggregations and threads.

    :ivar config: Cache configuration.
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        """Initialize the cache.

        :param config: Cache configuration (default: 60s TTL, 1000 entries).
        :raises ConfigurationError: If the configuration is invalid.
        """
        self.config = config or CacheConfig()
        self.config.validate()
        self._lock = threading.Lock()
        self._prices: OrderedDict[str, CacheEntry[PriceSample]] = OrderedDict()
        self._aggregated: OrderedDict[str, CacheEntry[AggregatedPrice]] = OrderedDict()

    @staticmethod
    def price_key(symbol: str, source: str) -> str:
        """Build the raw-sample key for a (symbol, source) pair."""
        return f"{normalize_symbol(symbol)}:{source}"

    def _get(self, store: OrderedDict[str, CacheEntry[T]], key: str) -> T | None:
        with self._lock:
            entry = store.get(key)
            if entry is None:
                return None
            if entry.is_expired(time.time()):
                del store[key]
                logger.debug(f"Cache entry {key} expired")
                return None
            store.move_to_end(key)
            return entry.data

    def _set(self, store: OrderedDict[str, CacheEntry[T]], key: str, value: T) -> None:
        now = time.time()
        entry = CacheEntry(data=value, timestamp=now, expires_at=now + self.config.ttl_seconds)
        with self._lock:
            if key not in store and len(store) >= self.config.max_size:
                evicted, _ = store.popitem(last=False)
                logger.debug(f"Cache full, evicted least recently used entry {evicted}")
            store[key] = entry
            store.move_to_end(key)

    def get_price(self, symbol: str, source: str) -> PriceSample | None:
        """Get a cached raw sample.

        :param symbol: Asset symbol.
        :param source: Source name.
        :returns: Cached sample, or None if absent or expired.
        """
        return self._get(self._prices, self.price_key(symbol, source))

    def set_price(self, sample: PriceSample) -> None:
        """Cache a raw sample under its (symbol, source) key.

        :param sample: Sample to cache.
        """
        self._set(self._prices, self.price_key(sample.symbol, sample.source_name), sample)

    def get_aggregated(self, symbol: str) -> AggregatedPrice | None:
        """Get a cached aggregated price.

        :param symbol: Asset symbol.
        :returns: Cached aggregated price, or None if absent or expired.
        """
        return self._get(self._aggregated, normalize_symbol(symbol))

    def set_aggregated(self, aggregated: AggregatedPrice) -> None:
        """Cache an aggregated price under its symbol.

        :param aggregated: Aggregated price to cache.
        """
        self._set(self._aggregated, normalize_symbol(aggregated.symbol), aggregated)

    def invalidate(self, symbol: str, source: str | None = None) -> None:
        """Drop cached entries for a symbol.

        :param symbol: Asset symbol.
        :param source: Source name. If None, every raw entry for the symbol and
            its aggregated entry are dropped.
        """
        symbol = normalize_symbol(symbol)
        with self._lock:
            if source is not None:
                self._prices.pop(f"{symbol}:{source}", None)
                return
            prefix = f"{symbol}:"
            for key in [k for k in self._prices if k.startswith(prefix)]:
                del self._prices[key]
            self._aggregated.pop(symbol, None)

    def invalidate_source(self, source: str) -> None:
        """Drop every raw entry produced by a source.

        :param source: Source name.
        """
        suffix = f":{source}"
        with self._lock:
            for key in [k for k in self._prices if k.endswith(suffix)]:
                del self._prices[key]

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._prices.clear()
            self._aggregated.clear()

    def stats(self) -> CacheStats:
        """Get entry counts.

        Expired entries that have not been read yet are still counted.

        :returns: CacheStats for both namespaces.
        """
        with self._lock:
            price_count = len(self._prices)
            aggregated_count = len(self._aggregated)
        return CacheStats(price_count, aggregated_count, price_count + aggregated_count)
