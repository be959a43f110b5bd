"""Error taxonomy for the oracle aggregation engine.

Per-source errors (``SourceUnavailableError``, ``InvalidPriceDataError``) are
caught inside the engine and turned into health-tracker updates. Only the
aggregate-level decision surfaces to callers, as ``InsufficientSourcesError``.

.. code-block:: python

    >>> try:
    ...     await aggregator.get_aggregated_price("XLM")
    ... except InsufficientSourcesError as e:
    ...     print(e.available, e.required, e.failures)
"""

from __future__ import annotations


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class ConfigurationError(OracleError, ValueError):
    """Raised when configuration is invalid (e.g., negative weight, zero TTL)."""

    pass


class SourceUnavailableError(OracleError):
    """Raised when a single source call fails or times out.

    :ivar source: Name of the failing source.
    :ivar reason: Human-readable failure reason.
    """

    def __init__(self, source: str, reason: str):
        """Initialize the error.

        :param source: Name of the failing source.
        :param reason: Failure reason.
        """
        self.source = source
        self.reason = reason
        super().__init__(f"[{source}] {reason}")


class SourceHTTPError(SourceUnavailableError):
    """Raised when a source's HTTP request returns a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, source: str, status_code: int, message: str):
        """Initialize the HTTP error.

        :param source: Name of the failing source.
        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(source, f"HTTP {status_code}: {message}")


class UnsupportedSymbolError(SourceUnavailableError):
    """Raised when a source cannot price the requested symbol."""

    def __init__(self, source: str, symbol: str):
        self.symbol = symbol
        super().__init__(source, f"Unsupported symbol: {symbol}")


class InvalidPriceDataError(OracleError):
    """Raised when a source produces a non-finite, negative or stale price.

    :ivar source: Name of the source that produced the data.
    :ivar price: The offending price value.
    :ivar reason: Why the price was rejected.
    """

    def __init__(self, source: str, price: object, reason: str):
        self.source = source
        self.price = price
        self.reason = reason
        super().__init__(f"[{source}] Invalid price {price!r}: {reason}")


class InsufficientSourcesError(OracleError):
    """Raised when too few valid, non-outlier samples remain and no fallback applies.

    :ivar symbol: Symbol that could not be aggregated.
    :ivar available: Number of usable samples.
    :ivar required: Configured minimum number of sources.
    :ivar failures: Dict mapping failed source names to failure reasons.
    """

    def __init__(
        self,
        symbol: str,
        available: int,
        required: int,
        failures: dict[str, str] | None = None,
    ):
        self.symbol = symbol
        self.available = available
        self.required = required
        self.failures = dict(failures or {})
        message = f"Insufficient sources for {symbol}: got {available}, required {required}"
        if self.failures:
            message += f" (failed: {', '.join(sorted(self.failures))})"
        super().__init__(message)


class EmptyAggregationInputError(OracleError):
    """Raised when a strategy is invoked with zero samples."""

    pass


class StaleDataWarning(UserWarning):
    """Warned when an aggregated price is served from the fallback cache."""

    pass
