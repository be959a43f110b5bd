"""Unit tests for OutlierDetector."""

from oracle_aggregator.src.OutlierDetector import (
    OutlierMethod,
    detect_outliers,
    detect_outliers_iqr,
    detect_outliers_zscore,
    filter_outliers,
    quartiles,
)
from oracle_aggregator.src.PriceData import PriceSample


def samples_at(prices: list[float]) -> list[PriceSample]:
    """Build one sample per price, from sources s0, s1, ..."""
    return [
        PriceSample("XLM", p, timestamp=1000.0, source_name=f"s{i}")
        for i, p in enumerate(prices)
    ]


class TestQuartiles:
    """Test quartile computation."""

    def test_even_count(self) -> None:
        """Even count splits into two equal halves."""
        assert quartiles([1, 2, 3, 4]) == (1.5, 2.5, 3.5)

    def test_odd_count_excludes_median(self) -> None:
        """Odd count excludes the median from both halves."""
        assert quartiles([1, 2, 3, 4, 5]) == (1.5, 3, 4.5)

    def test_unsorted_input(self) -> None:
        """Input order should not matter."""
        assert quartiles([4, 1, 3, 2]) == (1.5, 2.5, 3.5)


class TestIQR:
    """Test IQR outlier detection."""

    def test_below_minimum_samples(self) -> None:
        """Fewer than 4 samples should never flag anything."""
        assert detect_outliers_iqr(samples_at([100, 101, 102])) == []

    def test_no_dispersion(self) -> None:
        """Tightly clustered prices have no outliers."""
        assert detect_outliers_iqr(samples_at([100, 101, 102, 103, 104])) == []

    def test_extreme_value_with_five_samples(self) -> None:
        """A huge value in a 5-sample batch should not crash and returns a list."""
        samples = samples_at([100, 101, 102, 103, 10000])
        outliers = detect_outliers_iqr(samples)
        assert isinstance(outliers, list)
        assert all(o in samples for o in outliers)

    def test_flags_extreme_value(self) -> None:
        """With six samples the extreme value falls outside the fences."""
        samples = samples_at([100, 101, 102, 103, 104, 10000])
        outliers = detect_outliers_iqr(samples)
        assert [o.price for o in outliers] == [10000]

    def test_flags_low_value(self) -> None:
        """Outliers below the lower fence are flagged too."""
        samples = samples_at([1, 100, 101, 102, 103, 104])
        assert [o.price for o in detect_outliers_iqr(samples)] == [1]


class TestZScore:
    """Test z-score outlier detection."""

    def test_below_minimum_samples(self) -> None:
        """Fewer than 3 samples should never flag anything."""
        assert detect_outliers_zscore(samples_at([100, 10000])) == []

    def test_identical_prices(self) -> None:
        """Zero standard deviation means no outliers."""
        assert detect_outliers_zscore(samples_at([100, 100, 100, 100])) == []

    def test_flags_outlier(self) -> None:
        """A sample beyond the threshold is flagged."""
        samples = samples_at([100, 100, 100, 100, 100, 130])
        outliers = detect_outliers_zscore(samples, threshold=2.0)
        assert [o.source_name for o in outliers] == ["s5"]

    def test_threshold_monotonicity(self) -> None:
        """Lowering the threshold never decreases the outlier count."""
        samples = samples_at([100, 101, 102, 110, 130])
        strict = detect_outliers_zscore(samples, threshold=3.0)
        loose = detect_outliers_zscore(samples, threshold=1.0)
        assert len(loose) >= len(strict)

    def test_three_samples_cannot_exceed_sqrt_two(self) -> None:
        """With three samples no z-score can exceed the default threshold."""
        assert detect_outliers_zscore(samples_at([0.119, 0.120, 12.0])) == []


class TestDetectAndFilter:
    """Test method dispatch and partitioning."""

    def test_empty_input(self) -> None:
        """Empty input returns no outliers for both methods."""
        assert detect_outliers([], OutlierMethod.IQR) == []
        assert detect_outliers([], OutlierMethod.Z_SCORE) == []

    def test_dispatch_by_string(self) -> None:
        """Method can be given by its string value."""
        samples = samples_at([100, 101, 102, 103, 104, 10000])
        assert [o.price for o in detect_outliers(samples, "iqr")] == [10000]

    def test_partition_sizes(self) -> None:
        """Filtered and outliers always add up to the input."""
        for prices in ([], [100], [100, 101, 102], [100, 101, 102, 103, 104, 10000]):
            samples = samples_at(prices)
            for method in OutlierMethod:
                filtered, outliers = filter_outliers(samples, method)
                assert len(filtered) + len(outliers) == len(samples)

    def test_partition_preserves_order(self) -> None:
        """Filtered samples keep input order and input is not mutated."""
        samples = samples_at([104, 100, 10000, 102, 101, 103])
        original = list(samples)
        filtered, outliers = filter_outliers(samples, OutlierMethod.IQR)
        assert [s.price for s in filtered] == [104, 100, 102, 101, 103]
        assert [s.price for s in outliers] == [10000]
        assert samples == original

    def test_duplicate_sources_judged_independently(self) -> None:
        """Two samples from the same source are partitioned separately."""
        samples = [
            PriceSample("XLM", p, timestamp=1000.0, source_name="same")
            for p in [100, 101, 102, 103, 104, 10000]
        ]
        filtered, outliers = filter_outliers(samples, OutlierMethod.IQR)
        assert len(filtered) == 5
        assert len(outliers) == 1
