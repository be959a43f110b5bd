"""In-memory source with fixed prices.

Useful for pinned prices (e.g., a stablecoin at 1.0), demos and tests.
Optional delay and failure modes simulate slow or broken feeds.
"""

from __future__ import annotations

import asyncio
from typing import Mapping

from ..errors import SourceUnavailableError, UnsupportedSymbolError
from ..PriceData import PriceSample, SourceInfo, normalize_symbol
from .base import PriceSource


class StaticPriceSource(PriceSource):
    """Source serving prices from an in-memory table.

    .. code-block:: python

        >>> source = StaticPriceSource("pinned", {"USDC": 1.0})
        >>> (await source.get_price("usdc/usd")).price
        1.0

    :ivar calls: Number of get_price calls made, including failed ones.
    """

    description = "Static in-memory prices"

    def __init__(
        self,
        name: str,
        prices: Mapping[str, float] | None = None,
        *,
        healthy: bool = True,
        delay: float = 0.0,
        fail: bool = False,
        timestamp: float | None = None,
    ) -> None:
        """Initialize the source.

        :param name: Unique source name.
        :param prices: Mapping of symbol to price.
        :param healthy: Value returned by is_healthy().
        :param delay: Seconds to sleep before answering.
        :param fail: Raise SourceUnavailableError on every call.
        :param timestamp: Fixed sample timestamp (default: time of the call).
        """
        self.name = name
        self.prices = {normalize_symbol(k): v for k, v in (prices or {}).items()}
        self.healthy = healthy
        self.delay = delay
        self.fail = fail
        self.timestamp = timestamp
        self.calls = 0

    def set_price(self, symbol: str, price: float) -> None:
        """Set or replace the price of a symbol."""
        self.prices[normalize_symbol(symbol)] = price

    async def get_price(self, symbol: str) -> PriceSample:
        self.calls += 1
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise SourceUnavailableError(self.name, "source configured to fail")

        symbol = normalize_symbol(symbol)
        if symbol not in self.prices:
            raise UnsupportedSymbolError(self.name, symbol)

        sample = self._sample(symbol, self.prices[symbol])
        if self.timestamp is not None:
            sample = PriceSample(
                symbol=sample.symbol,
                price=sample.price,
                timestamp=self.timestamp,
                source_name=self.name,
            )
        return sample

    def get_source_info(self) -> SourceInfo:
        return SourceInfo(
            name=self.name,
            description=f"{self.description} ({self.name})",
            version=self.version,
            supported_symbols=tuple(sorted(self.prices)),
        )

    async def is_healthy(self) -> bool:
        return self.healthy
