"""CoinMarketCap source.

Endpoint: https://pro-api.coinmarketcap.com/v2/cryptocurrency/quotes/latest
Rate Limit: 333 calls/day (free tier)
API Key: Required
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..errors import SourceUnavailableError
from ..PriceData import PriceSample, SourceInfo, normalize_symbol
from .base import HTTPPriceSource, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinMarketCapSource(HTTPPriceSource):
    """Source for the CoinMarketCap API, quoted in USD.

    Supports any symbol listed on CoinMarketCap. An API key is required.
    """

    name = "coinmarketcap"
    description = "CoinMarketCap cryptocurrency price API"
    BASE_URL = "https://pro-api.coinmarketcap.com"
    HEALTH_CHECK_SYMBOL = "BTC"

    def _require_key(self) -> None:
        if not self.has_api_key:
            raise SourceUnavailableError(self.name, "API key required but not provided")

    async def _fetch(self, symbols: list[str]) -> dict[str, Any]:
        self._require_key()
        response = await self._get(
            f"{self.BASE_URL}/v2/cryptocurrency/quotes/latest",
            params={"symbol": ",".join(symbols), "convert": "USD"},
            headers={"X-CMC_PRO_API_KEY": self.api_key},
        )
        payload = self._json(response)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise SourceUnavailableError(self.name, f"No data in response: {payload!r}"[:300])
        return data

    def _extract(self, data: dict[str, Any], symbol: str) -> PriceSample:
        symbol_data = data.get(symbol)
        # CMC returns a list of matches, take the first one
        if isinstance(symbol_data, list):
            symbol_data = symbol_data[0] if symbol_data else None
        try:
            price = float(symbol_data["quote"]["USD"]["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise SourceUnavailableError(self.name, f"No USD quote for {symbol}") from e
        return self._sample(symbol, price, cmc_id=symbol_data.get("id"))

    async def get_price(self, symbol: str) -> PriceSample:
        """Fetch the USD price of a symbol.

        :param symbol: Asset symbol (e.g., "XLM").
        :returns: Price sample.
        """
        symbol = normalize_symbol(symbol)
        data = await self._fetch([symbol])
        return self._extract(data, symbol)

    async def get_prices(self, symbols: Sequence[str]) -> list[PriceSample]:
        """Fetch several symbols in one request, skipping unknown ones.

        :param symbols: Asset symbols.
        :returns: Samples for the symbols that could be priced.
        """
        wanted = sorted({normalize_symbol(s) for s in symbols})
        if not wanted:
            return []

        data = await self._fetch(wanted)
        samples: list[PriceSample] = []
        for symbol in wanted:
            try:
                samples.append(self._extract(data, symbol))
            except SourceUnavailableError as e:
                logger.debug(f"[coinmarketcap] {e}")
        return samples

    def get_source_info(self) -> SourceInfo:
        info = super().get_source_info()
        info.metadata["api_url"] = self.BASE_URL
        return info
