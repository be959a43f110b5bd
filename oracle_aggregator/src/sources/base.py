"""Source capability interface and shared HTTP client management.

Every price source implements ``PriceSource``:
    - get_price(symbol): one sample, raising on unsupported symbols or transport errors
    - get_prices(symbols): several samples; symbols that cannot be priced are skipped
    - get_source_info(): descriptive metadata
    - is_healthy(): liveness probe

HTTP-backed sources inherit from ``HTTPPriceSource``, which shares a single
``httpx.AsyncClient`` across all instances to avoid connection overhead and
maps transport errors to ``SourceUnavailableError``.

.. code-block:: python

    @register_source
    class MySource(HTTPPriceSource):
        name = "mysource"

        async def get_price(self, symbol: str) -> PriceSample:
            response = await self._get(f"https://api.example.com/{symbol}")
            return self._sample(symbol, float(response.json()["price"]))
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Sequence

import httpx

from ..errors import OracleError, SourceHTTPError, SourceUnavailableError
from ..PriceData import PriceSample, SourceInfo, normalize_symbol

logger = logging.getLogger(__name__)


class PriceSource(ABC):
    """Abstract base class for price sources.

    Subclasses must implement ``get_price``. ``name`` may be set as a class
    variable or per instance.

    :cvar description: Human-readable description.
    :cvar version: Adapter version.
    :cvar SUPPORTED_SYMBOLS: Symbols the source can price (empty means any).
    :cvar HEALTH_CHECK_SYMBOL: Symbol priced by the default health probe.
    """

    name: str = ""
    description: ClassVar[str] = ""
    version: ClassVar[str] = "1.0.0"
    SUPPORTED_SYMBOLS: ClassVar[tuple[str, ...]] = ()
    HEALTH_CHECK_SYMBOL: ClassVar[str] = "BTC"

    @abstractmethod
    async def get_price(self, symbol: str) -> PriceSample:
        """Fetch the current price for a symbol.

        :param symbol: Asset symbol (e.g., "XLM").
        :returns: Price sample.
        :raises SourceUnavailableError: On unsupported symbol or transport error.
        :raises InvalidPriceDataError: If the source returned an unusable price.
        """
        pass

    async def get_prices(self, symbols: Sequence[str]) -> list[PriceSample]:
        """Fetch prices for several symbols.

        Default implementation calls ``get_price`` concurrently and skips the
        symbols that fail. Override for APIs with real batch endpoints.

        :param symbols: Asset symbols.
        :returns: Samples for the symbols that could be priced.
        """
        results = await asyncio.gather(
            *(self.get_price(s) for s in symbols), return_exceptions=True
        )
        samples: list[PriceSample] = []
        for symbol, result in zip(symbols, results, strict=True):
            if isinstance(result, OracleError):
                logger.debug(f"[{self.name}] Skipping {symbol}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                samples.append(result)
        return samples

    def get_source_info(self) -> SourceInfo:
        """Describe this source.

        :returns: SourceInfo built from the class attributes.
        """
        return SourceInfo(
            name=self.name,
            description=self.description,
            version=self.version,
            supported_symbols=tuple(self.SUPPORTED_SYMBOLS),
        )

    async def is_healthy(self) -> bool:
        """Probe the source by pricing ``HEALTH_CHECK_SYMBOL``.

        :returns: True if the probe succeeded.
        """
        try:
            await self.get_price(self.HEALTH_CHECK_SYMBOL)
            return True
        except OracleError as e:
            logger.debug(f"[{self.name}] Health check failed: {e}")
            return False

    def supports_symbol(self, symbol: str) -> bool:
        """Check if this source can price the symbol.

        :param symbol: Asset symbol.
        :returns: True if supported.
        """
        if not self.SUPPORTED_SYMBOLS:
            return True
        return normalize_symbol(symbol) in self.SUPPORTED_SYMBOLS

    def _sample(self, symbol: str, price: float, **metadata: Any) -> PriceSample:
        """Build a sample stamped with this source's name and the current time."""
        return PriceSample(
            symbol=normalize_symbol(symbol),
            price=price,
            timestamp=time.time(),
            source_name=self.name,
            metadata=metadata,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HTTPPriceSource(PriceSource):
    """Base class for sources backed by an HTTP API.

    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize the source.

        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        """Check if this source has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if HTTPPriceSource._shared_client is None or HTTPPriceSource._shared_client.is_closed:
            HTTPPriceSource._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
        return HTTPPriceSource._shared_client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient | None) -> None:
        """Replace the shared HTTP client (e.g., with one using a mock transport)."""
        HTTPPriceSource._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = HTTPPriceSource._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        HTTPPriceSource._shared_client = None

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises SourceHTTPError: On non-2xx response.
        :raises SourceUnavailableError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise SourceUnavailableError(self.name, f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise SourceUnavailableError(self.name, f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise SourceHTTPError(self.name, response.status_code, response.text[:200])
        return response

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON body, mapping decode errors to SourceUnavailableError."""
        try:
            return response.json()
        except ValueError as e:
            raise SourceUnavailableError(self.name, f"Malformed JSON response: {e}") from e


# Registry of available sources (populated by subclass imports)
SOURCE_REGISTRY: dict[str, type[HTTPPriceSource]] = {}


def register_source(cls: type[HTTPPriceSource]) -> type[HTTPPriceSource]:
    """Decorator to register a source class in the global registry.

    :param cls: Source class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If source has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Source {cls.__name__} must define a 'name' class variable")
    SOURCE_REGISTRY[cls.name] = cls
    return cls


def get_source(name: str, api_key: str | None = None, timeout: float | None = None) -> HTTPPriceSource:
    """Get a source instance by name.

    :param name: Source name (e.g., "coinbase", "coingecko").
    :param api_key: Optional API key.
    :param timeout: Optional request timeout.
    :returns: Source instance.
    :raises ValueError: If source name is unknown.
    """
    if name not in SOURCE_REGISTRY:
        available = ", ".join(sorted(SOURCE_REGISTRY.keys()))
        raise ValueError(f"Unknown source '{name}'. Available: {available}")
    return SOURCE_REGISTRY[name](api_key=api_key, timeout=timeout)


def get_available_sources() -> list[str]:
    """Get list of available source names.

    :returns: Sorted list of registered source names.
    """
    return sorted(SOURCE_REGISTRY.keys())
