"""Shared fixtures and fake sources for the aggregator tests."""

from __future__ import annotations

import pytest

from oracle_aggregator.src.config import AggregationConfig, CacheConfig, CircuitBreakerConfig
from oracle_aggregator.src.OracleAggregator import OracleAggregator
from oracle_aggregator.src.PriceData import PriceSample
from oracle_aggregator.src.sources import PriceSource, StaticPriceSource


class CrashingSource(PriceSource):
    """Source whose calls raise a non-oracle exception."""

    def __init__(self, name: str = "crashing") -> None:
        self.name = name
        self.calls = 0

    async def get_price(self, symbol: str) -> PriceSample:
        self.calls += 1
        raise RuntimeError("connection reset by peer")


class NaNSource(PriceSource):
    """Source that produces a non-finite price."""

    def __init__(self, name: str = "nan") -> None:
        self.name = name

    async def get_price(self, symbol: str) -> PriceSample:
        # Construction raises InvalidPriceDataError
        return self._sample(symbol, float("nan"))


class StaleSource(PriceSource):
    """Source whose samples are timestamped far in the past."""

    def __init__(self, name: str = "stale", price: float = 0.12, age: float = 3600.0) -> None:
        self.name = name
        self.price = price
        self.age = age

    async def get_price(self, symbol: str) -> PriceSample:
        sample = self._sample(symbol, self.price)
        return PriceSample(
            symbol=sample.symbol,
            price=sample.price,
            timestamp=sample.timestamp - self.age,
            source_name=self.name,
        )


class DuplicatingSource(PriceSource):
    """Batch source that answers each symbol twice, an old quote and a fresh one."""

    def __init__(self, name: str, prices: dict[str, float], old_price: float) -> None:
        self.name = name
        self.prices = prices
        self.old_price = old_price

    async def get_price(self, symbol: str) -> PriceSample:
        return self._sample(symbol, self.prices[symbol])

    async def get_prices(self, symbols) -> list[PriceSample]:
        samples = []
        for symbol in symbols:
            fresh = self._sample(symbol, self.prices[symbol])
            samples.append(
                PriceSample(
                    symbol=fresh.symbol,
                    price=self.old_price,
                    timestamp=fresh.timestamp - 5.0,
                    source_name=self.name,
                )
            )
            samples.append(fresh)
        return samples


@pytest.fixture
def xlm_sources() -> list[StaticPriceSource]:
    """Three agreeing XLM sources."""
    return [
        StaticPriceSource("coinbase", {"XLM": 0.119}),
        StaticPriceSource("kraken", {"XLM": 0.120}),
        StaticPriceSource("coingecko", {"XLM": 0.121}),
    ]


@pytest.fixture
def make_aggregator():
    """Factory building an aggregator with the given sources registered."""

    def _make(
        sources,
        *,
        min_sources: int = 2,
        strategy="median",
        failure_threshold: int = 5,
        reset_timeout_seconds: float = 60.0,
        ttl_seconds: float = 60.0,
        enable_fallback: bool = True,
        **config,
    ) -> OracleAggregator:
        aggregator = OracleAggregator(
            config=AggregationConfig(min_sources=min_sources, **config),
            cache_config=CacheConfig(ttl_seconds=ttl_seconds, enable_fallback=enable_fallback),
            circuit_breaker_config=CircuitBreakerConfig(
                failure_threshold=failure_threshold,
                reset_timeout_seconds=reset_timeout_seconds,
            ),
            strategy=strategy,
        )
        for source in sources:
            aggregator.add_source(source)
        return aggregator

    return _make
