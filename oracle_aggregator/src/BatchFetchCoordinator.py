"""BatchFetchCoordinator: Concurrent, timeout-bounded fan-out to price sources.

This module calls every admitted source concurrently and collects one outcome
per source, never raising for a single source's failure.

Architecture:
    - One coroutine per source, each wrapped in asyncio.wait_for(fetch_timeout)
    - Timeouts and unexpected exceptions become SourceUnavailableError values
    - OracleError subclasses raised by a source are passed through as values
    - Cancellation of the caller propagates to every in-flight call; an optional
      ``pending`` set is left holding the sources whose calls never settled
    - Batch mode calls get_prices(symbols) once per source
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Mapping, Sequence, TypeVar

from .errors import OracleError, SourceUnavailableError
from .PriceData import PriceSample

if TYPE_CHECKING:
    from .sources import PriceSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _stamp(sample: PriceSample, source: str) -> PriceSample:
    """Attribute a sample to the source it was registered under."""
    if sample.source_name == source:
        return sample
    return dataclasses.replace(sample, source_name=source)


class BatchFetchCoordinator:
    """Coordinates concurrent fetching from multiple price sources.

    :ivar fetch_timeout: Timeout for each source call in seconds.
    """

    def __init__(self, fetch_timeout: float = 10.0) -> None:
        """Initialize the fetch coordinator.

        :param fetch_timeout: Timeout for each source call (default: 10.0).
        """
        self.fetch_timeout = fetch_timeout

    async def fetch_symbol(
        self,
        symbol: str,
        sources: Mapping[str, PriceSource],
        pending: set[str] | None = None,
    ) -> dict[str, PriceSample | OracleError]:
        """Fetch one symbol from all sources concurrently.

        :param symbol: Normalized asset symbol.
        :param sources: Dict mapping source names to source instances.
        :param pending: Optional set of names, each removed once its call settles.
        :returns: Dict mapping source name to its sample or the error it produced.
        """
        if not sources:
            return {}

        logger.debug(f"Fetching {symbol} from {len(sources)} sources: {list(sources)}")
        results = await asyncio.gather(
            *(
                self._call(name, source.get_price(symbol), symbol, pending)
                for name, source in sources.items()
            )
        )

        outcomes: dict[str, PriceSample | OracleError] = {}
        for name, result in zip(sources, results, strict=True):
            outcomes[name] = result if isinstance(result, OracleError) else _stamp(result, name)
        return outcomes

    async def fetch_symbols(
        self,
        symbols: Sequence[str],
        sources: Mapping[str, PriceSource],
        pending: set[str] | None = None,
    ) -> dict[str, list[PriceSample] | OracleError]:
        """Fetch several symbols with one batch call per source.

        :param symbols: Normalized asset symbols.
        :param sources: Dict mapping source names to source instances.
        :param pending: Optional set of names, each removed once its call settles.
        :returns: Dict mapping source name to its samples or the error it produced.
            Samples for symbols that were not requested are dropped.
        """
        if not sources or not symbols:
            return {}

        wanted = set(symbols)
        logger.debug(f"Batch fetching {len(symbols)} symbols from {len(sources)} sources")
        results = await asyncio.gather(
            *(
                self._call(name, source.get_prices(list(symbols)), ",".join(symbols), pending)
                for name, source in sources.items()
            )
        )

        outcomes: dict[str, list[PriceSample] | OracleError] = {}
        for name, result in zip(sources, results, strict=True):
            if isinstance(result, OracleError):
                outcomes[name] = result
            else:
                outcomes[name] = [_stamp(s, name) for s in result if s.symbol in wanted]
        return outcomes

    async def _call(
        self,
        source: str,
        call: Awaitable[T],
        what: str,
        pending: set[str] | None = None,
    ) -> T | OracleError:
        """Await a single source call with timeout.

        :param source: Source name.
        :param call: Awaitable source call.
        :param what: Description of the request for log messages.
        :param pending: Optional set to remove the source from once the call settles.
        :returns: The call's result, or the OracleError describing its failure.
        """
        result: T | OracleError
        try:
            result = await asyncio.wait_for(call, timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{source}] Timeout fetching {what} after {self.fetch_timeout}s")
            result = SourceUnavailableError(source, f"Timeout after {self.fetch_timeout}s")
        except OracleError as e:
            logger.warning(f"[{source}] Error fetching {what}: {e}")
            result = e
        except Exception as e:
            logger.warning(f"[{source}] Unexpected error fetching {what}: {e!r}")
            result = SourceUnavailableError(source, f"Unexpected error: {e!r}")

        if pending is not None:
            pending.discard(source)
        return result


def describe_outcomes(outcomes: Mapping[str, Any]) -> str:
    """Format an outcome dict for log output, e.g. "coinbase=0.120000, kraken=failed"."""
    parts = []
    for source, outcome in outcomes.items():
        if isinstance(outcome, PriceSample):
            parts.append(f"{source}={outcome.price:.6f}")
        else:
            parts.append(f"{source}=failed")
    return ", ".join(parts)
