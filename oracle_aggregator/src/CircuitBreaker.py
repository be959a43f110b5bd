"""CircuitBreaker: Per-source failure state machine.

States and transitions:
    - CLOSED -> OPEN: after ``failure_threshold`` consecutive failures
    - OPEN -> HALF_OPEN: once ``reset_timeout_seconds`` have passed since opening
    - HALF_OPEN -> CLOSED: on any successful trial call
    - HALF_OPEN -> OPEN: on any failed trial call (timer restarts)

While HALF_OPEN at most ``half_open_max_calls`` trial calls are admitted. If
every slot stays reserved for ``reset_timeout_seconds`` without an outcome,
the trials are treated as lost and a fresh round is admitted. An OPEN source
is never called.

The transitions are pure functions over an immutable ``BreakerSnapshot`` so
they can be tested without any clock or network code. ``CircuitBreaker``
wraps a snapshot behind a lock for use by the source manager.

.. code-block:: python

    >>> config = CircuitBreakerConfig(failure_threshold=2)
    >>> snap = BreakerSnapshot()
    >>> snap = transition(snap, Outcome.FAILURE, config, now=100.0)
    >>> snap = transition(snap, Outcome.FAILURE, config, now=101.0)
    >>> snap.state
    <CircuitState.OPEN: 'open'>
    >>> admit(snap, config, now=120.0)[0]
    False
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum

from .config import CircuitBreakerConfig

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class Outcome(str, Enum):
    """Outcome of a source call."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Immutable circuit breaker state.

    :ivar state: Current circuit state.
    :ivar failure_count: Consecutive failures.
    :ivar opened_at: Unix timestamp the circuit last opened (or last failed while open).
    :ivar half_open_calls: Trial calls admitted since entering HALF_OPEN.
    :ivar half_open_since: Unix timestamp the current round of trials started.
    """

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    opened_at: float | None = None
    half_open_calls: int = 0
    half_open_since: float | None = None


def admit(
    snapshot: BreakerSnapshot,
    config: CircuitBreakerConfig,
    now: float,
) -> tuple[bool, BreakerSnapshot]:
    """Decide whether a call may proceed, reserving a trial slot if half-open.

    :param snapshot: Current state.
    :param config: Breaker configuration.
    :param now: Current time.
    :returns: Tuple of (allowed, next snapshot).
    """
    if snapshot.state is CircuitState.CLOSED:
        return True, snapshot

    if snapshot.state is CircuitState.OPEN:
        opened_at = snapshot.opened_at if snapshot.opened_at is not None else now
        if now - opened_at < config.reset_timeout_seconds:
            return False, snapshot
        snapshot = replace(
            snapshot, state=CircuitState.HALF_OPEN, half_open_calls=0, half_open_since=now
        )

    if snapshot.half_open_calls >= config.half_open_max_calls:
        started = snapshot.half_open_since if snapshot.half_open_since is not None else now
        if now - started < config.reset_timeout_seconds:
            return False, replace(snapshot, half_open_since=started)
        snapshot = replace(snapshot, half_open_calls=0, half_open_since=now)
    return True, replace(snapshot, half_open_calls=snapshot.half_open_calls + 1)


def transition(
    snapshot: BreakerSnapshot,
    outcome: Outcome,
    config: CircuitBreakerConfig,
    now: float,
) -> BreakerSnapshot:
    """Apply a call outcome to the breaker state.

    :param snapshot: Current state.
    :param outcome: Result of the call.
    :param config: Breaker configuration.
    :param now: Current time.
    :returns: Next snapshot.
    """
    if outcome is Outcome.SUCCESS:
        return BreakerSnapshot()

    failures = snapshot.failure_count + 1

    if snapshot.state is CircuitState.HALF_OPEN:
        return BreakerSnapshot(CircuitState.OPEN, failures, opened_at=now)

    if snapshot.state is CircuitState.OPEN:
        return replace(snapshot, failure_count=failures, opened_at=now)

    if failures >= config.failure_threshold:
        return BreakerSnapshot(CircuitState.OPEN, failures, opened_at=now)
    return replace(snapshot, failure_count=failures)


class CircuitBreaker:
    """Thread-safe holder of one source's breaker state.

    :ivar name: Source name, used in log messages.
    :ivar config: Breaker configuration.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig | None = None) -> None:
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.config.validate()
        self._lock = threading.Lock()
        self._snapshot = BreakerSnapshot()

    @property
    def snapshot(self) -> BreakerSnapshot:
        """Current state snapshot."""
        with self._lock:
            return self._snapshot

    @property
    def state(self) -> CircuitState:
        """Current circuit state (without applying time-based transitions)."""
        return self.snapshot.state

    @property
    def failure_count(self) -> int:
        """Consecutive failures."""
        return self.snapshot.failure_count

    def allow_request(self, now: float | None = None) -> bool:
        """Check if a call may proceed, reserving a half-open trial slot.

        :param now: Current time (default: time.time()).
        :returns: True if the source may be called.
        """
        now = time.time() if now is None else now
        with self._lock:
            previous = self._snapshot
            allowed, self._snapshot = admit(self._snapshot, self.config, now)
            current = self._snapshot
        if previous.state is CircuitState.OPEN and current.state is CircuitState.HALF_OPEN:
            logger.info(f"[{self.name}] Circuit half-open, allowing trial calls")
        elif (
            allowed
            and previous.state is CircuitState.HALF_OPEN
            and current.half_open_since != previous.half_open_since
        ):
            logger.warning(f"[{self.name}] Trial calls never reported back, admitting a new round")
        return allowed

    def record_success(self, now: float | None = None) -> CircuitState:
        """Record a successful call.

        :param now: Current time (default: time.time()).
        :returns: State after the transition.
        """
        return self._record(Outcome.SUCCESS, now)

    def record_failure(self, now: float | None = None) -> CircuitState:
        """Record a failed call.

        :param now: Current time (default: time.time()).
        :returns: State after the transition.
        """
        return self._record(Outcome.FAILURE, now)

    def _record(self, outcome: Outcome, now: float | None) -> CircuitState:
        now = time.time() if now is None else now
        with self._lock:
            previous = self._snapshot.state
            self._snapshot = transition(self._snapshot, outcome, self.config, now)
            snapshot = self._snapshot

        if snapshot.state is not previous:
            if snapshot.state is CircuitState.OPEN:
                logger.warning(
                    f"[{self.name}] Circuit OPEN after {snapshot.failure_count} "
                    f"consecutive failures, retry in {self.config.reset_timeout_seconds}s"
                )
            elif snapshot.state is CircuitState.CLOSED:
                logger.info(f"[{self.name}] Circuit closed")
        return snapshot.state

    def reset(self) -> None:
        """Return to the initial CLOSED state."""
        with self._lock:
            self._snapshot = BreakerSnapshot()
