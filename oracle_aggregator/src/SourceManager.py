"""SourceManager: Per-source health records and circuit breakers.

Every registered source has a ``SourceRecord`` (weight, health, failure
counters) and a ``CircuitBreaker``. The aggregator asks the manager which
sources may be called, then reports each call's outcome back. A failure
never changes a source's weight.

Records are owned by the manager; callers only receive copies.

.. code-block:: python

    >>> manager = SourceManager(CircuitBreakerConfig(failure_threshold=2))
    >>> manager.add_source("coinbase", weight=2.0)
    >>> manager.add_source("kraken")
    >>> manager.acquire_eligible()
    ['coinbase', 'kraken']
    >>> manager.record_failure("kraken", "timeout")
    <CircuitState.CLOSED: 'closed'>
    >>> manager.record_failure("kraken", "timeout")
    <CircuitState.OPEN: 'open'>
    >>> manager.acquire_eligible()
    ['coinbase']
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace

from .CircuitBreaker import CircuitBreaker, CircuitState
from .config import CircuitBreakerConfig, validate_weight
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class SourceRecord:
    """Tracks the status of a single source.

    :ivar name: Source name.
    :ivar weight: Trust weight used by weighted strategies.
    :ivar is_healthy: Result of the last call or health probe.
    :ivar last_checked: Unix timestamp of the last call or health probe.
    :ivar failure_count: Consecutive failures.
    :ivar circuit_state: Breaker state after the last transition.
    :ivar total_failures: Total failures since registration.
    :ivar total_successes: Total successes since registration.
    :ivar last_error: Reason of the most recent failure.
    """

    name: str
    weight: float = 1.0
    is_healthy: bool = True
    last_checked: float = 0.0
    failure_count: int = 0
    circuit_state: CircuitState = CircuitState.CLOSED
    total_failures: int = 0
    total_successes: int = 0
    last_error: str | None = None


class SourceManager:
    """Manages source records and circuit breakers.

    :ivar breaker_config: Configuration applied to every source's breaker.
    """

    def __init__(self, breaker_config: CircuitBreakerConfig | None = None) -> None:
        """Initialize the source manager.

        :param breaker_config: Circuit breaker configuration for all sources.
        :raises ConfigurationError: If the configuration is invalid.
        """
        self.breaker_config = breaker_config or CircuitBreakerConfig()
        self.breaker_config.validate()
        self._lock = threading.RLock()
        self._records: dict[str, SourceRecord] = {}
        self._breakers: dict[str, CircuitBreaker] = {}

    @property
    def sources(self) -> list[str]:
        """Registered source names, in registration order."""
        with self._lock:
            return list(self._records)

    def __contains__(self, source: object) -> bool:
        with self._lock:
            return source in self._records

    def add_source(self, source: str, weight: float = 1.0) -> None:
        """Register a source.

        :param source: Source name.
        :param weight: Trust weight (default: 1.0).
        :raises ConfigurationError: If already registered or weight is invalid.
        """
        weight = validate_weight(weight)
        with self._lock:
            if source in self._records:
                raise ConfigurationError(f"Source {source} is already registered")
            self._records[source] = SourceRecord(name=source, weight=weight, last_checked=time.time())
            self._breakers[source] = CircuitBreaker(source, self.breaker_config)

    def remove_source(self, source: str) -> bool:
        """Unregister a source.

        :param source: Source name.
        :returns: True if the source was registered.
        """
        with self._lock:
            self._breakers.pop(source, None)
            return self._records.pop(source, None) is not None

    def set_weight(self, source: str, weight: float) -> None:
        """Change a source's weight.

        :param source: Source name.
        :param weight: New weight.
        :raises ConfigurationError: If the source is unknown or weight is invalid.
        """
        weight = validate_weight(weight)
        with self._lock:
            if source not in self._records:
                raise ConfigurationError(f"Unknown source {source}")
            self._records[source].weight = weight

    def acquire(self, source: str, now: float | None = None) -> bool:
        """Ask the source's breaker whether it may be called now.

        A half-open breaker reserves one of its trial slots on success.

        :param source: Source name.
        :param now: Current time (default: time.time()).
        :returns: False if the source is unknown or its circuit rejects the call.
        """
        with self._lock:
            breaker = self._breakers.get(source)
            if breaker is None:
                return False
            allowed = breaker.allow_request(now)
            self._records[source].circuit_state = breaker.state
            return allowed

    def acquire_eligible(self, sources: list[str] | None = None, now: float | None = None) -> list[str]:
        """Acquire every source whose circuit admits a call.

        :param sources: Candidate names (default: all registered sources).
        :param now: Current time (default: time.time()).
        :returns: Admitted source names, in registration order.
        """
        with self._lock:
            candidates = self.sources if sources is None else sources
            eligible = [s for s in candidates if self.acquire(s, now)]
        skipped = [s for s in candidates if s not in eligible]
        if skipped:
            logger.debug(f"Skipping sources with open circuits: {skipped}")
        return eligible

    def record_success(self, source: str, now: float | None = None) -> CircuitState | None:
        """Record a successful call, resetting the failure counter.

        :param source: Source name.
        :param now: Current time (default: time.time()).
        :returns: Breaker state afterwards, or None if the source was removed.
        """
        now = time.time() if now is None else now
        with self._lock:
            record = self._records.get(source)
            if record is None:
                logger.debug(f"[{source}] Ignoring success for unregistered source")
                return None
            state = self._breakers[source].record_success(now)
            record.failure_count = 0
            record.is_healthy = True
            record.last_checked = now
            record.circuit_state = state
            record.total_successes += 1
            return state

    def record_failure(self, source: str, error: str = "", now: float | None = None) -> CircuitState | None:
        """Record a failed call.

        :param source: Source name.
        :param error: Failure reason.
        :param now: Current time (default: time.time()).
        :returns: Breaker state afterwards, or None if the source was removed.
        """
        now = time.time() if now is None else now
        with self._lock:
            record = self._records.get(source)
            if record is None:
                logger.debug(f"[{source}] Ignoring failure for unregistered source")
                return None
            breaker = self._breakers[source]
            state = breaker.record_failure(now)
            record.failure_count = breaker.failure_count
            record.is_healthy = False
            record.last_checked = now
            record.circuit_state = state
            record.total_failures += 1
            record.last_error = error[:500] if error else None
            return state

    def mark_health(self, source: str, healthy: bool, now: float | None = None) -> None:
        """Store the result of a health probe. Breaker state is not affected.

        :param source: Source name.
        :param healthy: Probe result.
        :param now: Current time (default: time.time()).
        """
        with self._lock:
            record = self._records.get(source)
            if record is None:
                return
            record.is_healthy = healthy
            record.last_checked = time.time() if now is None else now

    def get_record(self, source: str) -> SourceRecord | None:
        """Get a copy of a source's record.

        :param source: Source name.
        :returns: SourceRecord copy, or None if not registered.
        """
        with self._lock:
            record = self._records.get(source)
            return replace(record) if record is not None else None

    def get_all_records(self) -> list[SourceRecord]:
        """Get copies of all records, in registration order."""
        with self._lock:
            return [replace(r) for r in self._records.values()]

    def get_weights(self) -> dict[str, float]:
        """Get the current weight of every source."""
        with self._lock:
            return {name: r.weight for name, r in self._records.items()}

    def get_circuit_state(self, source: str) -> CircuitState | None:
        """Get a source's breaker state, or None if not registered."""
        with self._lock:
            breaker = self._breakers.get(source)
            return breaker.state if breaker is not None else None

    def reset_source(self, source: str) -> None:
        """Reset a source's breaker and failure count. Weight is kept.

        :param source: Source name.
        """
        with self._lock:
            if source not in self._records:
                return
            self._breakers[source].reset()
            record = self._records[source]
            self._records[source] = SourceRecord(
                name=source, weight=record.weight, last_checked=time.time()
            )

    def reset_all(self) -> None:
        """Reset all sources to their initial state."""
        with self._lock:
            for source in list(self._records):
                self.reset_source(source)
