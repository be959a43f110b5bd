"""Unit tests for SourceManager."""

from unittest.mock import patch

import pytest

from oracle_aggregator.src.CircuitBreaker import CircuitState
from oracle_aggregator.src.config import CircuitBreakerConfig
from oracle_aggregator.src.errors import ConfigurationError
from oracle_aggregator.src.SourceManager import SourceManager, SourceRecord


def make_manager(*sources: str, threshold: int = 3, reset_timeout: float = 30.0) -> SourceManager:
    manager = SourceManager(
        CircuitBreakerConfig(failure_threshold=threshold, reset_timeout_seconds=reset_timeout)
    )
    for source in sources:
        manager.add_source(source)
    return manager


class TestSourceManagerRegistry:
    """Test source registration."""

    def test_add_sources(self) -> None:
        """Sources are tracked in registration order."""
        manager = make_manager("a", "b", "c")
        assert manager.sources == ["a", "b", "c"]
        assert "b" in manager
        assert len(manager.get_all_records()) == 3

    def test_initial_record(self) -> None:
        """Initial record should be healthy with zero failures."""
        manager = make_manager("a")
        record = manager.get_record("a")

        assert record is not None
        assert record.weight == 1.0
        assert record.is_healthy
        assert record.failure_count == 0
        assert record.circuit_state is CircuitState.CLOSED
        assert record.total_failures == 0
        assert record.total_successes == 0

    def test_duplicate_rejected(self) -> None:
        """Registering a name twice raises ConfigurationError."""
        manager = make_manager("a")
        with pytest.raises(ConfigurationError, match="already registered"):
            manager.add_source("a")

    def test_negative_weight_rejected(self) -> None:
        """Negative weights are rejected."""
        manager = make_manager()
        with pytest.raises(ConfigurationError, match="weight"):
            manager.add_source("a", weight=-1.0)
        assert manager.sources == []

    def test_remove_source(self) -> None:
        """Removing a source drops its record."""
        manager = make_manager("a", "b")
        assert manager.remove_source("a")
        assert not manager.remove_source("a")
        assert manager.sources == ["b"]

    def test_set_weight(self) -> None:
        """Weights can be changed but not to invalid values."""
        manager = make_manager("a")
        manager.set_weight("a", 2.5)
        assert manager.get_weights() == {"a": 2.5}

        with pytest.raises(ConfigurationError):
            manager.set_weight("a", float("inf"))
        with pytest.raises(ConfigurationError, match="Unknown source"):
            manager.set_weight("missing", 1.0)

    def test_records_are_copies(self) -> None:
        """Mutating a returned record does not affect the manager."""
        manager = make_manager("a")
        record = manager.get_record("a")
        record.weight = 99.0
        assert manager.get_weights()["a"] == 1.0
        assert isinstance(manager.get_all_records()[0], SourceRecord)


class TestSourceManagerOutcomes:
    """Test success/failure recording."""

    def test_record_failure(self) -> None:
        """Failures update counters and health but never the weight."""
        manager = make_manager("a")
        manager.set_weight("a", 2.0)
        state = manager.record_failure("a", "timeout", now=1000.0)

        assert state is CircuitState.CLOSED
        record = manager.get_record("a")
        assert record.failure_count == 1
        assert record.total_failures == 1
        assert not record.is_healthy
        assert record.last_error == "timeout"
        assert record.last_checked == 1000.0
        assert record.weight == 2.0

    def test_success_resets_consecutive_failures(self) -> None:
        """A success resets failure_count but keeps totals."""
        manager = make_manager("a")
        manager.record_failure("a", "x")
        manager.record_failure("a", "x")
        manager.record_success("a")

        record = manager.get_record("a")
        assert record.failure_count == 0
        assert record.total_failures == 2
        assert record.total_successes == 1
        assert record.is_healthy

    def test_threshold_opens_circuit(self) -> None:
        """After failure_threshold failures the source is not acquired."""
        manager = make_manager("a", "b", threshold=2)
        manager.record_failure("a", "x", now=1000.0)
        assert manager.record_failure("a", "x", now=1000.0) is CircuitState.OPEN

        assert manager.acquire_eligible(now=1001.0) == ["b"]
        assert manager.get_record("a").circuit_state is CircuitState.OPEN

    def test_eligible_again_after_reset_timeout(self) -> None:
        """After the reset timeout the source is admitted for a trial."""
        manager = make_manager("a", threshold=1, reset_timeout=30.0)
        manager.record_failure("a", "x", now=1000.0)

        assert manager.acquire_eligible(now=1029.0) == []
        assert manager.acquire_eligible(now=1030.0) == ["a"]
        assert manager.get_circuit_state("a") is CircuitState.HALF_OPEN

    def test_unknown_source_outcomes_ignored(self) -> None:
        """Outcomes for sources removed mid-flight are ignored."""
        manager = make_manager("a")
        manager.remove_source("a")
        assert manager.record_failure("a", "x") is None
        assert manager.record_success("a") is None
        assert not manager.acquire("a")

    def test_acquire_eligible_subset(self) -> None:
        """acquire_eligible can be limited to given candidates."""
        manager = make_manager("a", "b", "c")
        assert manager.acquire_eligible(["c", "a"]) == ["c", "a"]

    @patch("oracle_aggregator.src.SourceManager.time.time")
    def test_mark_health(self, mock_time) -> None:
        """Health probes update the record but not the circuit."""
        mock_time.return_value = 1000.0
        manager = make_manager("a")
        manager.mark_health("a", False)

        record = manager.get_record("a")
        assert not record.is_healthy
        assert record.last_checked == 1000.0
        assert record.circuit_state is CircuitState.CLOSED


class TestSourceManagerReset:
    """Test manual reset."""

    def test_reset_source(self) -> None:
        """Reset clears failures and closes the circuit, keeping weight."""
        manager = make_manager("a", threshold=1)
        manager.set_weight("a", 3.0)
        manager.record_failure("a", "x", now=1000.0)

        manager.reset_source("a")

        record = manager.get_record("a")
        assert record.circuit_state is CircuitState.CLOSED
        assert record.total_failures == 0
        assert record.weight == 3.0
        assert manager.acquire_eligible(now=1001.0) == ["a"]

    def test_reset_all(self) -> None:
        """reset_all resets every source."""
        manager = make_manager("a", "b", threshold=1)
        manager.record_failure("a", "x", now=1000.0)
        manager.record_failure("b", "x", now=1000.0)

        manager.reset_all()

        assert manager.acquire_eligible(now=1001.0) == ["a", "b"]
