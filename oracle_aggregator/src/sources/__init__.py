"""
Price sources for the oracle aggregator.

Usage:
    from oracle_aggregator.src.sources import get_source, get_available_sources

    get_available_sources()
    # ['coinbase', 'coingecko', 'coinmarketcap']

    source = get_source("coingecko")
    sample = await source.get_price("XLM")

    # For sources requiring API keys
    source = get_source("coinmarketcap", api_key="your-api-key")
"""

# Import base classes and utilities
from .base import (
    SOURCE_REGISTRY,
    HTTPPriceSource,
    PriceSource,
    get_available_sources,
    get_source,
    register_source,
)

# Import all source implementations to trigger registration
from .coinbase import CoinbaseSource
from .coingecko import CoinGeckoSource
from .coinmarketcap import CoinMarketCapSource
from .static import StaticPriceSource

__all__ = [
    # Base classes
    "PriceSource",
    "HTTPPriceSource",
    # Registry functions
    "register_source",
    "get_source",
    "get_available_sources",
    "SOURCE_REGISTRY",
    # Source implementations
    "CoinbaseSource",
    "CoinGeckoSource",
    "CoinMarketCapSource",
    "StaticPriceSource",
]
