#!/usr/bin/env python3
"""Oracle Aggregator.

Fetches cryptocurrency prices from multiple sources, rejects outliers,
aggregates them into one price per symbol and logs the results.

Configure via CLI flags or environment variables (CLI flags take precedence).
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from .src.config import AggregationConfig, CacheConfig, CircuitBreakerConfig
from .src.errors import ConfigurationError, OracleError
from .src.OracleAggregator import OracleAggregator
from .src.OutlierDetector import OutlierMethod
from .src.sources import HTTPPriceSource, get_available_sources, get_source
from .src.strategies import get_available_strategies

logger = logging.getLogger(__name__)


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse comma-separated API key string into a dictionary.

    Format: source1=key1,source2=key2
    Example: coingecko=abc123,coinmarketcap=xyz789

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping source names to API keys.
    """
    if not api_key_str:
        return {}

    api_keys = {}
    for item in api_key_str.split(","):
        item = item.strip()
        if "=" in item:
            source, key = item.split("=", 1)
            api_keys[source.strip().lower()] = key.strip()
    return api_keys


def parse_env_api_keys() -> dict[str, str]:
    """Parse API keys from individual environment variables.

    Looks for: API_KEY_COINGECKO, API_KEY_COINMARKETCAP, etc.

    :returns: Dict mapping source names to API keys.
    """
    api_keys = {}
    prefixes = ["API_KEY_", "APIKEY_"]

    for key, value in os.environ.items():
        for prefix in prefixes:
            if key.startswith(prefix) and value:
                source = key[len(prefix):].lower()
                api_keys[source] = value
                break

    return api_keys


def parse_weights(weight_str: str | None) -> dict[str, float]:
    """Parse comma-separated source weights.

    Format: source1=2.0,source2=0.5

    :param weight_str: Comma-separated weight string.
    :returns: Dict mapping source names to weights.
    :raises ValueError: If an item is malformed or a weight is not a number.
    """
    if not weight_str:
        return {}

    weights = {}
    for item in weight_str.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(f"Invalid weight '{item}'. Expected source=weight")
        source, value = item.split("=", 1)
        weights[source.strip().lower()] = float(value)
    return weights


def build_aggregator(
    args: argparse.Namespace,
    sources: list[str],
    api_keys: dict[str, str],
    weights: dict[str, float],
) -> OracleAggregator:
    """Create an aggregator with the configured sources registered.

    :param args: Parsed command line arguments.
    :param sources: Source names to register.
    :param api_keys: Dict mapping source names to API keys.
    :param weights: Dict mapping source names to weights (default 1.0).
    :returns: Configured aggregator.
    :raises ConfigurationError: If any setting is invalid.
    """
    aggregator = OracleAggregator(
        config=AggregationConfig(
            min_sources=args.min_sources,
            max_deviation_percent=args.max_deviation,
            max_staleness_seconds=args.max_staleness,
            enable_outlier_detection=args.outlier_method != "none",
            outlier_method=(
                OutlierMethod(args.outlier_method)
                if args.outlier_method != "none"
                else OutlierMethod.Z_SCORE
            ),
            outlier_threshold=args.outlier_threshold,
            fetch_timeout=args.fetch_timeout,
        ),
        cache_config=CacheConfig(ttl_seconds=args.cache_ttl),
        circuit_breaker_config=CircuitBreakerConfig(
            failure_threshold=args.failure_threshold,
            reset_timeout_seconds=args.reset_timeout,
        ),
        strategy=args.strategy,
    )
    for name in sources:
        source = get_source(name, api_key=api_keys.get(name), timeout=args.fetch_timeout)
        aggregator.add_source(source, weight=weights.get(name, 1.0))
    return aggregator


async def run(aggregator: OracleAggregator, symbols: list[str], fetch_period: float) -> None:
    """Aggregate all symbols every fetch_period seconds (once if 0).

    :param aggregator: Configured aggregator.
    :param symbols: Symbols to aggregate.
    :param fetch_period: Seconds between rounds. 0 runs a single round.
    """
    logger.info(f"Starting aggregation loop for {len(symbols)} symbols")

    try:
        while True:
            started = time.monotonic()
            results = await aggregator.get_aggregated_prices(symbols)
            for symbol, result in results.items():
                if isinstance(result, OracleError):
                    logger.warning(f"{symbol}: no price ({result})")
                elif result.is_stale:
                    logger.warning(
                        f"{symbol}: ${result.price:.6f} (stale, "
                        f"{result.metadata.get('age_seconds', 0):.1f}s old)"
                    )

            if fetch_period <= 0:
                break
            await asyncio.sleep(max(0.0, fetch_period - (time.monotonic() - started)))
    finally:
        # Clean up shared HTTP client
        await HTTPPriceSource.close_shared_client()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Oracle Aggregator CLI."""
    available_sources = get_available_sources()
    available_strategies = get_available_strategies()

    parser = argparse.ArgumentParser(
        description="Oracle Aggregator: Fault-tolerant multi-source price feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Available strategies:
  {', '.join(available_strategies)}

Examples:
  # Aggregate XLM once from all free sources
  python -m oracle_aggregator.main --symbols xlm --sources coinbase,coingecko \\
      --fetch-period 0

  # Weighted average over several symbols every 30 seconds
  python -m oracle_aggregator.main --symbols btc,eth,xlm \\
      --sources coinbase,coingecko,coinmarketcap \\
      --strategy weighted_average --weights coinbase=2,coingecko=1 \\
      --api-keys coinmarketcap=your-api-key --fetch-period 30

Environment variables (CLI args take precedence):
  SYMBOLS, SOURCES, SOURCE_WEIGHTS, STRATEGY, MIN_SOURCES,
  MAX_DEVIATION_PERCENT, MAX_STALENESS, OUTLIER_METHOD, OUTLIER_THRESHOLD,
  FETCH_TIMEOUT, CACHE_TTL, FAILURE_THRESHOLD, RESET_TIMEOUT, FETCH_PERIOD,
  API_KEYS, API_KEY_COINGECKO, API_KEY_COINMARKETCAP, etc.
""",
    )

    parser.add_argument(
        "--symbols",
        type=str,
        help="Comma-separated asset symbols (e.g., btc,eth,xlm/usd)",
        default=os.environ.get("SYMBOLS") or "btc",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or "coinbase,coingecko",
    )

    parser.add_argument(
        "--weights",
        type=str,
        help="Comma-separated source weights (e.g., coinbase=2,coingecko=1)",
        default=os.environ.get("SOURCE_WEIGHTS"),
    )

    parser.add_argument(
        "--strategy",
        type=str,
        help=f"Aggregation strategy. Available: {', '.join(available_strategies)} (default: median)",
        default=os.environ.get("STRATEGY") or "median",
    )

    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Minimum sources required for valid aggregation (default: 2)",
        default=int(os.environ.get("MIN_SOURCES") or "2"),
    )

    parser.add_argument(
        "--max-deviation",
        dest="max_deviation",
        type=float,
        help="Max price deviation percent from the median before dropping a source "
        "(default: 10.0, 0 to disable)",
        default=float(os.environ.get("MAX_DEVIATION_PERCENT") or "10.0"),
    )

    parser.add_argument(
        "--max-staleness",
        dest="max_staleness",
        type=float,
        help="Max age in seconds of samples and of cached fallback prices (default: 60)",
        default=float(os.environ.get("MAX_STALENESS") or "60"),
    )

    parser.add_argument(
        "--outlier-method",
        dest="outlier_method",
        type=str,
        choices=[m.value for m in OutlierMethod] + ["none"],
        help="Statistical outlier detection method (default: z_score)",
        default=os.environ.get("OUTLIER_METHOD") or "z_score",
    )

    parser.add_argument(
        "--outlier-threshold",
        dest="outlier_threshold",
        type=float,
        help="Z-score threshold for outlier detection (default: 2.0)",
        default=float(os.environ.get("OUTLIER_THRESHOLD") or "2.0"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual fetch requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--cache-ttl",
        dest="cache_ttl",
        type=float,
        help="Lifetime of cached prices in seconds (default: 60)",
        default=float(os.environ.get("CACHE_TTL") or "60"),
    )

    parser.add_argument(
        "--failure-threshold",
        dest="failure_threshold",
        type=int,
        help="Consecutive failures before a source's circuit opens (default: 5)",
        default=int(os.environ.get("FAILURE_THRESHOLD") or "5"),
    )

    parser.add_argument(
        "--reset-timeout",
        dest="reset_timeout",
        type=float,
        help="Seconds an open circuit waits before a trial call (default: 60)",
        default=float(os.environ.get("RESET_TIMEOUT") or "60"),
    )

    parser.add_argument(
        "--fetch-period",
        dest="fetch_period",
        type=float,
        help="Seconds between aggregation rounds (default: 60, 0 to run once)",
        default=float(os.environ.get("FETCH_PERIOD") or "60"),
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., coingecko=abc,coinmarketcap=xyz)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Validate arguments
    if args.fetch_period < 0:
        parser.error("--fetch-period must not be negative")

    if args.min_sources < 1:
        parser.error("--min-sources must be at least 1")

    # Parse symbols and sources
    symbols = [s.strip() for s in args.symbols.split(",") if s.strip()]
    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]

    if not symbols:
        parser.error("At least one symbol must be specified")

    if not sources:
        parser.error("At least one source must be specified")

    # Validate sources
    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    try:
        weights = parse_weights(args.weights)
    except ValueError as e:
        parser.error(str(e))

    # Parse API keys (CLI + environment)
    api_keys = parse_env_api_keys()
    api_keys.update(parse_api_keys(args.api_keys))

    try:
        aggregator = build_aggregator(args, sources, api_keys, weights)
    except ConfigurationError as e:
        parser.error(str(e))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Oracle Aggregator")
    logger.info("=" * 60)
    logger.info(f"Symbols:           {', '.join(symbols)}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Strategy:          {aggregator.get_strategy().name}")
    logger.info(f"Min Sources:       {args.min_sources}")
    logger.info(f"Max Deviation:     {args.max_deviation}%")
    logger.info(f"Outlier Method:    {args.outlier_method}")
    logger.info(f"Fetch Period:      {args.fetch_period}s" if args.fetch_period else "Fetch Period:      once")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    if weights:
        logger.info(f"Weights:           {weights}")
    if api_keys:
        logger.info(f"API Keys:          {', '.join(api_keys.keys())}")
    logger.info("=" * 60)

    try:
        asyncio.run(run(aggregator, symbols, args.fetch_period))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
