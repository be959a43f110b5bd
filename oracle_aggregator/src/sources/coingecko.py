"""CoinGecko source.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies=usd
Rate Limit: 30 calls/min (free), higher with API key
Batch: Yes (comma-separated ids)
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..errors import SourceUnavailableError, UnsupportedSymbolError
from ..PriceData import PriceSample, normalize_symbol
from .base import HTTPPriceSource, register_source

logger = logging.getLogger(__name__)


@register_source
class CoinGeckoSource(HTTPPriceSource):
    """Source for the CoinGecko API, quoted in USD.

    API tiers:
        - Free: api.coingecko.com (no key, 30 calls/min)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    To use a demo key, prefix with "demo:": API_KEY_COINGECKO=demo:CG-xxxxx
    Pro keys need no prefix: API_KEY_COINGECKO=xxxxx
    """

    name = "coingecko"
    description = "CoinGecko cryptocurrency price API"
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    # Map symbols to CoinGecko IDs
    COIN_IDS = {
        "XLM": "stellar",
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "USDC": "usd-coin",
        "USDT": "tether",
        "SOL": "solana",
        "ADA": "cardano",
        "DOT": "polkadot",
        "AVAX": "avalanche-2",
        "LINK": "chainlink",
        "UNI": "uniswap",
        "ATOM": "cosmos",
        "DOGE": "dogecoin",
        "LTC": "litecoin",
        "XRP": "ripple",
        "ALGO": "algorand",
        "NEAR": "near",
        "AAVE": "aave",
        "MKR": "maker",
        "ROSE": "oasis-network",
    }
    SUPPORTED_SYMBOLS = tuple(COIN_IDS)

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize with optional demo: prefix handling."""
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]
        super().__init__(api_key=api_key, timeout=timeout)

    @property
    def base_url(self) -> str:
        """Return appropriate base URL based on API key type."""
        if not self.has_api_key or self._is_demo:
            return self.BASE_URL_FREE
        return self.BASE_URL_PRO

    @property
    def headers(self) -> dict[str, str] | None:
        """Return the API key header, if a key is configured."""
        if not self.has_api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return {header_name: self.api_key}

    def _coin_id(self, symbol: str) -> str:
        coin_id = self.COIN_IDS.get(normalize_symbol(symbol))
        if not coin_id:
            raise UnsupportedSymbolError(self.name, symbol)
        return coin_id

    async def _fetch(self, coin_ids: list[str]) -> dict[str, Any]:
        response = await self._get(
            f"{self.base_url}/simple/price",
            params={"ids": ",".join(coin_ids), "vs_currencies": "usd"},
            headers=self.headers,
        )
        data = self._json(response)
        if not isinstance(data, dict):
            raise SourceUnavailableError(self.name, f"Unexpected response: {data!r}")
        return data

    def _extract(self, data: dict[str, Any], symbol: str, coin_id: str) -> PriceSample:
        try:
            price = float(data[coin_id]["usd"])
        except (KeyError, TypeError, ValueError) as e:
            raise SourceUnavailableError(self.name, f"No USD price for {symbol} ({coin_id})") from e
        return self._sample(symbol, price, coin_id=coin_id, api_version="v3")

    async def get_price(self, symbol: str) -> PriceSample:
        """Fetch the USD price of a symbol.

        :param symbol: Asset symbol (e.g., "XLM").
        :returns: Price sample.
        """
        coin_id = self._coin_id(symbol)
        data = await self._fetch([coin_id])
        return self._extract(data, symbol, coin_id)

    async def get_prices(self, symbols: Sequence[str]) -> list[PriceSample]:
        """Fetch several symbols in one request.

        Unsupported symbols and symbols missing from the response are skipped.

        :param symbols: Asset symbols.
        :returns: Samples for the symbols that could be priced.
        """
        coin_ids = {
            normalize_symbol(s): self.COIN_IDS[normalize_symbol(s)]
            for s in symbols
            if self.supports_symbol(s)
        }
        if not coin_ids:
            return []

        data = await self._fetch(sorted(set(coin_ids.values())))
        samples: list[PriceSample] = []
        for symbol, coin_id in coin_ids.items():
            try:
                samples.append(self._extract(data, symbol, coin_id))
            except SourceUnavailableError as e:
                logger.debug(f"[coingecko] {e}")
        return samples

    def get_source_info(self):
        info = super().get_source_info()
        info.metadata["api_url"] = self.base_url
        return info
