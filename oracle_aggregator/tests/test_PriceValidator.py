"""Unit tests for PriceValidator."""

import pytest

from oracle_aggregator.src.errors import InvalidPriceDataError
from oracle_aggregator.src.PriceData import PriceSample
from oracle_aggregator.src.PriceValidator import (
    check_staleness,
    filter_by_deviation,
    require_minimum_sources,
    validate_price,
    validate_prices,
)


def sample(price: float, source: str = "a", timestamp: float = 1000.0) -> PriceSample:
    return PriceSample("XLM", price, timestamp=timestamp, source_name=source)


class TestStaleness:
    """Test staleness checks."""

    def test_fresh_sample(self) -> None:
        """A sample within the bound is fresh."""
        assert not check_staleness(sample(1.0), 60.0, now=1030.0)

    def test_boundary_is_fresh(self) -> None:
        """A sample exactly at the bound is still fresh."""
        assert not check_staleness(sample(1.0), 60.0, now=1060.0)

    def test_stale_sample(self) -> None:
        """A sample past the bound is stale."""
        assert check_staleness(sample(1.0), 60.0, now=1060.5)


class TestValidatePrice:
    """Test single sample validation."""

    def test_valid_sample_returned(self) -> None:
        """A valid sample is returned unchanged."""
        s = sample(1.0)
        assert validate_price(s, 60.0, now=1010.0) is s

    def test_stale_sample_raises(self) -> None:
        """A stale sample raises InvalidPriceDataError naming the source."""
        with pytest.raises(InvalidPriceDataError, match=r"\[a\].*older than 60.0s"):
            validate_price(sample(1.0), 60.0, now=2000.0)

    def test_no_staleness_bound(self) -> None:
        """Without a bound, old samples are accepted."""
        s = sample(1.0, timestamp=0.0)
        assert validate_price(s, None, now=1e9) is s

    def test_split_valid_invalid(self) -> None:
        """validate_prices partitions by validity."""
        fresh = sample(1.0, "a", 1000.0)
        old = sample(1.0, "b", 100.0)
        valid, invalid = validate_prices([fresh, old], 60.0, now=1010.0)
        assert valid == [fresh]
        assert invalid == [old]


class TestMinimumSources:
    """Test distinct-source counting."""

    def test_enough_sources(self) -> None:
        """Two distinct sources satisfy min_sources=2."""
        assert require_minimum_sources([sample(1.0, "a"), sample(1.0, "b")], 2)

    def test_duplicate_sources_count_once(self) -> None:
        """Two samples from one source do not satisfy min_sources=2."""
        assert not require_minimum_sources([sample(1.0, "a"), sample(1.1, "a")], 2)

    def test_empty(self) -> None:
        """No samples never satisfy the requirement."""
        assert not require_minimum_sources([], 1)


class TestDeviationFilter:
    """Test median-deviation filtering."""

    def test_drops_gross_outlier(self) -> None:
        """A 100x price is dropped from a three-source batch."""
        samples = [sample(0.119, "a"), sample(0.120, "b"), sample(12.0, "rogue")]
        kept, dropped = filter_by_deviation(samples, 10.0)
        assert [s.source_name for s in kept] == ["a", "b"]
        assert [s.source_name for s in dropped] == ["rogue"]

    def test_keeps_close_prices(self) -> None:
        """Prices within the limit are all kept."""
        samples = [sample(100.0, "a"), sample(104.0, "b"), sample(96.0, "c")]
        kept, dropped = filter_by_deviation(samples, 5.0)
        assert len(kept) == 3
        assert dropped == []

    def test_zero_median_keeps_all(self) -> None:
        """A zero median disables the relative check."""
        samples = [sample(0.0, "a"), sample(0.0, "b"), sample(1.0, "c")]
        kept, dropped = filter_by_deviation(samples, 5.0)
        assert len(kept) == 3
        assert dropped == []

    def test_empty(self) -> None:
        """Empty input yields empty output."""
        assert filter_by_deviation([], 5.0) == ([], [])
