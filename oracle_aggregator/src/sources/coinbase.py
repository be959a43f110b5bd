"""Coinbase Exchange source.

Endpoint: https://api.exchange.coinbase.com/products/{SYMBOL}-USD/ticker
Rate Limit: High (no key required)
"""

from __future__ import annotations

import logging

from ..errors import SourceUnavailableError
from ..PriceData import PriceSample, normalize_symbol
from .base import HTTPPriceSource, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinbaseSource(HTTPPriceSource):
    """Source for the Coinbase Exchange public ticker, quoted in USD.

    No API key required. Batch requests fall back to concurrent single fetches.
    """

    name = "coinbase"
    description = "Coinbase Exchange public ticker"
    BASE_URL = "https://api.exchange.coinbase.com"

    async def get_price(self, symbol: str) -> PriceSample:
        """Fetch the USD price of a symbol.

        :param symbol: Asset symbol (e.g., "XLM").
        :returns: Price sample.
        """
        product = f"{normalize_symbol(symbol)}-USD"
        response = await self._get(f"{self.BASE_URL}/products/{product}/ticker")
        data = self._json(response)

        try:
            price = float(data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise SourceUnavailableError(self.name, f"No price in response for {product}") from e

        return self._sample(symbol, price, product=product)
