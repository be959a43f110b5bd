"""OracleAggregator: Multi-source price aggregation with fault tolerance.

Algorithm for one symbol:
    1. Ask the source manager which sources their circuit breakers admit
    2. Fetch the symbol from every admitted source concurrently, with timeout
    3. Record each outcome (invalid or stale samples count as failures)
    4. Cache the raw samples
    5. Drop samples deviating > max_deviation_percent from the batch median,
       then run statistical outlier detection
    6. Fail with InsufficientSourcesError if fewer than min_sources remain,
       unless a recent aggregated price can be served from the cache
    7. Reduce the surviving samples with the active strategy
    8. Score confidence, cache the result and return it

.. code-block:: python

    >>> aggregator = OracleAggregator(AggregationConfig(min_sources=2))
    >>> aggregator.add_source(get_source("coinbase"))
    >>> aggregator.add_source(get_source("coingecko"), weight=2.0)
    >>> result = await aggregator.get_aggregated_price("XLM")
    >>> result.price, result.confidence, result.sources_used
    (0.1201, 0.66, ('coinbase', 'coingecko'))
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
import warnings
from statistics import fmean, median as _median, pstdev
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence, TypeVar

from .BatchFetchCoordinator import BatchFetchCoordinator, describe_outcomes
from .config import AggregationConfig, CacheConfig, CircuitBreakerConfig
from .errors import (
    ConfigurationError,
    InsufficientSourcesError,
    InvalidPriceDataError,
    OracleError,
    SourceUnavailableError,
    StaleDataWarning,
)
from .OutlierDetector import OutlierMethod, filter_outliers
from .PriceCache import CacheStats, PriceCache
from .PriceData import AggregatedPrice, PriceSample, SourceInfo, normalize_symbol
from .PriceValidator import (
    filter_by_deviation,
    require_minimum_sources,
    validate_price,
    validate_prices,
)
from .SourceManager import SourceManager, SourceRecord
from .sources import PriceSource
from .strategies import AggregationStrategy, get_strategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_confidence(prices: Sequence[float], candidates: int) -> float:
    """Score how trustworthy an aggregated price is.

    The score is the product of three factors in [0, 1]:
        - count: n / (n + 1), grows with the number of contributing sources
        - agreement: 1 - min(1, stddev / mean), shrinks with dispersion
        - survival: n / candidates, the share of queried sources that contributed

    :param prices: Prices of the contributing samples.
    :param candidates: Number of sources queried.
    :returns: Confidence in [0, 1]. Empty input scores 0.

    .. code-block:: python

        >>> compute_confidence([0.12, 0.12, 0.12], candidates=3)
        0.75
    """
    n = len(prices)
    if n == 0:
        return 0.0

    count_factor = n / (n + 1)

    mean_price = fmean(prices)
    spread = pstdev(prices) if n > 1 else 0.0
    if spread == 0:
        agreement = 1.0
    elif mean_price <= 0:
        agreement = 0.0
    else:
        agreement = 1.0 - min(1.0, spread / mean_price)

    survival = min(1.0, n / max(candidates, n))

    return max(0.0, min(1.0, count_factor * agreement * survival))


class OracleAggregator:
    """Aggregates prices from multiple sources into one trusted price per symbol.

    Sources are called concurrently, filtered for outliers and reduced by a
    pluggable strategy. Failing sources are isolated by per-source circuit
    breakers, and recent results are served from the cache when too few
    sources answer.

    :ivar cache: Raw sample and aggregated price cache.
    :ivar source_manager: Per-source records and circuit breakers.
    :ivar coordinator: Concurrent fan-out with per-call timeouts.
    """

    def __init__(
        self,
        config: AggregationConfig | None = None,
        cache_config: CacheConfig | None = None,
        circuit_breaker_config: CircuitBreakerConfig | None = None,
        strategy: AggregationStrategy | str = "median",
    ) -> None:
        """Initialize the aggregator.

        :param config: Aggregation settings (default: AggregationConfig()).
        :param cache_config: Cache settings (default: CacheConfig()).
        :param circuit_breaker_config: Breaker settings applied to every source.
        :param strategy: Strategy instance or registered name (default: "median").
        :raises ConfigurationError: If any configuration is invalid.
        """
        self._config = config or AggregationConfig()
        self._config.validate()
        self.cache = PriceCache(cache_config)
        self.source_manager = SourceManager(circuit_breaker_config)
        self.coordinator = BatchFetchCoordinator(fetch_timeout=self._config.fetch_timeout)
        self._sources: dict[str, PriceSource] = {}
        self._strategy = self._resolve_strategy(strategy)

    # ------------------------------------------------------------------
    # Source registry

    def add_source(self, source: PriceSource, weight: float = 1.0) -> None:
        """Register a source.

        :param source: Source instance. Its ``name`` must be unique.
        :param weight: Trust weight for weighted strategies (default: 1.0).
        :raises ConfigurationError: If the name is empty or taken, or weight is invalid.
        """
        name = source.name
        if not name:
            raise ConfigurationError(f"Source {source!r} has no name")
        self.source_manager.add_source(name, weight)
        self._sources[name] = source
        logger.info(f"[{name}] Source added (weight={weight})")

    def remove_source(self, name: str) -> bool:
        """Unregister a source and drop its cached samples.

        :param name: Source name.
        :returns: True if the source was registered.
        """
        removed = self._sources.pop(name, None) is not None
        self.source_manager.remove_source(name)
        self.cache.invalidate_source(name)
        if removed:
            logger.info(f"[{name}] Source removed")
        return removed

    def set_source_weight(self, name: str, weight: float) -> None:
        """Change a source's trust weight.

        :param name: Source name.
        :param weight: New weight (finite, non-negative).
        :raises ConfigurationError: If the source is unknown or weight is invalid.
        """
        self.source_manager.set_weight(name, weight)

    def get_sources(self) -> list[SourceRecord]:
        """Get copies of all source records, in registration order."""
        return self.source_manager.get_all_records()

    def get_source_info(self) -> list[SourceInfo]:
        """Get descriptive information from every registered source."""
        return [source.get_source_info() for source in self._sources.values()]

    async def check_source_health(self) -> dict[str, bool]:
        """Probe every registered source with its health check.

        Probes run concurrently, bounded by fetch_timeout. Results update the
        source records but not the circuit breakers.

        :returns: Dict mapping source name to probe result.
        """
        sources = dict(self._sources)

        async def probe(name: str, source: PriceSource) -> bool:
            try:
                return bool(
                    await asyncio.wait_for(source.is_healthy(), timeout=self._config.fetch_timeout)
                )
            except asyncio.TimeoutError:
                logger.warning(f"[{name}] Health check timed out")
                return False
            except Exception as e:
                logger.warning(f"[{name}] Health check error: {e!r}")
                return False

        results = await asyncio.gather(*(probe(n, s) for n, s in sources.items()))
        health = dict(zip(sources, results, strict=True))
        for name, healthy in health.items():
            self.source_manager.mark_health(name, healthy)
        return health

    # ------------------------------------------------------------------
    # Strategy and configuration

    @staticmethod
    def _resolve_strategy(strategy: AggregationStrategy | str) -> AggregationStrategy:
        if isinstance(strategy, AggregationStrategy):
            return strategy
        if isinstance(strategy, str):
            return get_strategy(strategy)
        raise ConfigurationError(f"Invalid strategy: {strategy!r}")

    def set_strategy(self, strategy: AggregationStrategy | str) -> None:
        """Replace the active strategy. Cached results are not affected.

        :param strategy: Strategy instance or registered name.
        :raises ConfigurationError: If the name is unknown.
        """
        self._strategy = self._resolve_strategy(strategy)
        logger.info(f"Aggregation strategy set to {self._strategy.name}")

    def get_strategy(self) -> AggregationStrategy:
        """Get the active strategy."""
        return self._strategy

    def get_config(self) -> AggregationConfig:
        """Get the current aggregation settings."""
        return self._config

    def update_config(self, **changes: Any) -> AggregationConfig:
        """Change aggregation settings. In-flight aggregations keep the old settings.

        :param changes: AggregationConfig fields to change.
        :returns: The new configuration.
        :raises ConfigurationError: If a field is unknown or a value is invalid.

        .. code-block:: python

            >>> aggregator.update_config(min_sources=3, outlier_method="iqr")
        """
        try:
            config = dataclasses.replace(self._config, **changes)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration field: {e}") from e
        config.validate()
        self._config = config
        self.coordinator.fetch_timeout = config.fetch_timeout
        return config

    # ------------------------------------------------------------------
    # Cache

    def invalidate_cache(self, symbol: str | None = None) -> None:
        """Drop cached entries for one symbol, or everything if symbol is None."""
        if symbol is None:
            self.cache.clear()
        else:
            self.cache.invalidate(symbol)

    def get_cache_stats(self) -> CacheStats:
        """Get cache entry counts."""
        return self.cache.stats()

    # ------------------------------------------------------------------
    # Prices

    async def get_price(self, symbol: str, source: str | None = None) -> PriceSample:
        """Get a single source's price for a symbol.

        With a source name, a cached sample within max_staleness_seconds is
        returned, else the source is called (subject to its circuit breaker).
        Without one, sources are tried by descending weight.

        :param symbol: Asset symbol.
        :param source: Optional source name.
        :returns: Price sample.
        :raises SourceUnavailableError: If the named source is unknown, open or failing.
        :raises InvalidPriceDataError: If the named source returned an unusable price.
        :raises InsufficientSourcesError: If no source returned a price.
        """
        symbol = normalize_symbol(symbol)
        config = self._config

        if source is not None:
            return await self._get_source_price(symbol, source, config)

        weights = self.source_manager.get_weights()
        ordered = sorted(self._sources, key=lambda name: weights.get(name, 0.0), reverse=True)
        failures: dict[str, str] = {}
        for name in ordered:
            try:
                return await self._get_source_price(symbol, name, config)
            except OracleError as e:
                failures[name] = str(e)
        raise InsufficientSourcesError(symbol, 0, 1, failures)

    async def _get_source_price(
        self, symbol: str, name: str, config: AggregationConfig
    ) -> PriceSample:
        instance = self._sources.get(name)
        if instance is None:
            raise SourceUnavailableError(name, "Unknown source")

        cached = self.cache.get_price(symbol, name)
        if cached is not None and time.time() - cached.timestamp <= config.max_staleness_seconds:
            return cached

        if not self.source_manager.acquire(name):
            raise SourceUnavailableError(name, "Circuit open")

        outcomes = await self._fetch_admitted(
            [name], partial(self.coordinator.fetch_symbol, symbol, {name: instance})
        )
        samples, errors = self._record_outcomes(outcomes, config)
        if not samples:
            raise errors[name]
        self.cache.set_price(samples[0])
        return samples[0]

    async def get_aggregated_price(self, symbol: str) -> AggregatedPrice:
        """Aggregate the current price of a symbol across all admitted sources.

        :param symbol: Asset symbol (e.g., "XLM" or "xlm/usd").
        :returns: Aggregated price. A result served from the cache carries
            ``metadata["stale"] = True``.
        :raises InsufficientSourcesError: If too few sources survive and no
            recent cached result exists.
        """
        symbol = normalize_symbol(symbol)
        config = self._config
        strategy = self._strategy

        sources = self._admitted_sources()
        outcomes = await self._fetch_admitted(
            sources, partial(self.coordinator.fetch_symbol, symbol, sources)
        )
        logger.debug(f"{symbol}: fetched [{describe_outcomes(outcomes)}]")

        samples, errors = self._record_outcomes(outcomes, config)
        for sample in samples:
            self.cache.set_price(sample)

        failures = {name: str(e) for name, e in errors.items()}
        return self._aggregate(symbol, samples, failures, len(sources), config, strategy)

    async def get_aggregated_prices(
        self, symbols: Sequence[str]
    ) -> dict[str, AggregatedPrice | OracleError]:
        """Aggregate several symbols with one batch call per source.

        Circuit breakers are evaluated once for the whole batch and each
        source's outcome is recorded once. Outlier filtering and aggregation
        run independently per symbol.

        :param symbols: Asset symbols.
        :returns: Dict mapping normalized symbol to its result, or to the
            OracleError explaining why it could not be aggregated.
        """
        wanted = list(dict.fromkeys(normalize_symbol(s) for s in symbols))
        if not wanted:
            return {}
        config = self._config
        strategy = self._strategy

        sources = self._admitted_sources()
        outcomes = await self._fetch_admitted(
            sources, partial(self.coordinator.fetch_symbols, wanted, sources)
        )

        per_symbol: dict[str, list[PriceSample]] = {s: [] for s in wanted}
        failures: dict[str, str] = {}
        for name, outcome in outcomes.items():
            if isinstance(outcome, OracleError):
                self.source_manager.record_failure(name, str(outcome))
                failures[name] = str(outcome)
                continue

            valid, invalid = validate_prices(outcome, config.max_staleness_seconds)
            for sample in invalid:
                logger.warning(f"[{name}] Rejected sample for {sample.symbol}: {sample.price}")

            # One sample per symbol from each source, the freshest wins
            freshest: dict[str, PriceSample] = {}
            for sample in valid:
                current = freshest.get(sample.symbol)
                if current is None or sample.timestamp > current.timestamp:
                    freshest[sample.symbol] = sample
            valid = list(freshest.values())

            if not valid:
                reason = "all samples invalid" if outcome else "no samples returned"
                self.source_manager.record_failure(name, reason)
                failures[name] = reason
                continue

            self.source_manager.record_success(name)
            for sample in valid:
                self.cache.set_price(sample)
                per_symbol[sample.symbol].append(sample)

        results: dict[str, AggregatedPrice | OracleError] = {}
        for symbol in wanted:
            priced = {s.source_name for s in per_symbol[symbol]}
            missing = {
                name: failures.get(name, f"no price for {symbol}")
                for name in sources
                if name not in priced
            }
            try:
                results[symbol] = self._aggregate(
                    symbol, per_symbol[symbol], missing, len(sources), config, strategy
                )
            except OracleError as e:
                results[symbol] = e
        return results

    # ------------------------------------------------------------------
    # Internals

    def _admitted_sources(self) -> dict[str, PriceSource]:
        """Acquire every source whose circuit breaker admits a call now."""
        eligible = self.source_manager.acquire_eligible(now=time.time())
        return {name: self._sources[name] for name in eligible if name in self._sources}

    async def _fetch_admitted(
        self, admitted: Iterable[str], fetch: Callable[..., Awaitable[T]]
    ) -> T:
        """Run a fan-out, recording a failure for every call cut short by cancellation.

        :param admitted: Names of the sources the fan-out will call.
        :param fetch: Coordinator method, called with a ``pending`` set.
        :returns: The fan-out's outcomes.
        """
        pending = set(admitted)
        try:
            return await fetch(pending=pending)
        except asyncio.CancelledError:
            for name in sorted(pending):
                self.source_manager.record_failure(name, "cancelled")
            if pending:
                logger.warning(f"Fetch cancelled, recorded failure for {sorted(pending)}")
            raise

    def _record_outcomes(
        self,
        outcomes: Mapping[str, PriceSample | OracleError],
        config: AggregationConfig,
    ) -> tuple[list[PriceSample], dict[str, OracleError]]:
        """Validate samples and report every outcome to the source manager.

        :returns: Tuple of (valid samples, dict of failed source to its error).
        """
        samples: list[PriceSample] = []
        errors: dict[str, OracleError] = {}
        for name, outcome in outcomes.items():
            if isinstance(outcome, PriceSample):
                try:
                    samples.append(validate_price(outcome, config.max_staleness_seconds))
                except InvalidPriceDataError as e:
                    outcome = e
                    logger.warning(f"[{name}] Rejected sample: {e.reason}")
                else:
                    self.source_manager.record_success(name)
                    continue

            self.source_manager.record_failure(name, str(outcome))
            errors[name] = outcome
        return samples, errors

    def _aggregate(
        self,
        symbol: str,
        samples: list[PriceSample],
        failures: dict[str, str],
        candidates: int,
        config: AggregationConfig,
        strategy: AggregationStrategy,
    ) -> AggregatedPrice:
        """Filter, gate, reduce and cache one symbol's samples."""
        initial_median = _median(s.price for s in samples) if samples else None
        kept = list(samples)
        outliers: list[PriceSample] = []

        if kept and config.max_deviation_percent > 0:
            kept, dropped = filter_by_deviation(kept, config.max_deviation_percent)
            outliers.extend(dropped)

        if config.enable_outlier_detection:
            kept, flagged = filter_outliers(
                kept, OutlierMethod(config.outlier_method), config.outlier_threshold
            )
            outliers.extend(flagged)

        if not require_minimum_sources(kept, config.min_sources):
            error = InsufficientSourcesError(
                symbol, len({s.source_name for s in kept}), config.min_sources, failures
            )
            if outliers:
                dropped_strs = [f"{s.source_name}=${s.price:.6f}" for s in outliers]
                logger.warning(f"{symbol}: Dropped as outliers: [{', '.join(dropped_strs)}]")
            return self._fallback(symbol, error, config)

        weights = self.source_manager.get_weights()
        price = strategy.aggregate(kept, weights)
        sources_used = tuple(s.source_name for s in kept)
        now = time.time()

        result = AggregatedPrice(
            symbol=symbol,
            price=price,
            timestamp=now,
            confidence=compute_confidence([s.price for s in kept], candidates),
            sources_used=sources_used,
            outliers_filtered=tuple(s.source_name for s in outliers),
            source_count=len(sources_used),
            metadata={
                "strategy": strategy.name,
                "failed_sources": sorted(failures),
                "initial_median": initial_median,
            },
        )
        self.cache.set_aggregated(result)

        breakdown = ", ".join(f"{s.source_name}=${s.price:.6f}" for s in kept)
        log_msg = f"{symbol}: ${price:.6f} ({strategy.name} of [{breakdown}]"
        if outliers:
            dropped_strs = [f"{s.source_name}=${s.price:.6f}" for s in outliers]
            log_msg += f", dropped: [{', '.join(dropped_strs)}]"
        log_msg += f", confidence {result.confidence:.2f})"
        logger.info(log_msg)
        return result

    def _fallback(
        self,
        symbol: str,
        error: InsufficientSourcesError,
        config: AggregationConfig,
    ) -> AggregatedPrice:
        """Serve a recent cached result, or raise the aggregation error."""
        if self.cache.config.enable_fallback:
            cached = self.cache.get_aggregated(symbol)
            if cached is not None:
                age = max(0.0, time.time() - cached.timestamp)
                if age <= config.max_staleness_seconds:
                    logger.warning(
                        f"{symbol}: {error}; serving cached price ${cached.price:.6f} "
                        f"from {age:.1f}s ago"
                    )
                    warnings.warn(
                        f"Serving cached price for {symbol} ({age:.1f}s old)",
                        StaleDataWarning,
                        stacklevel=2,
                    )
                    return dataclasses.replace(
                        cached,
                        metadata={
                            **cached.metadata,
                            "stale": True,
                            "age_seconds": age,
                            "fallback_reason": str(error),
                        },
                    )
                logger.debug(f"{symbol}: Cached price is {age:.1f}s old, too stale for fallback")

        logger.warning(str(error))
        raise error
