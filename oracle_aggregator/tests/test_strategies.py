"""Unit tests for aggregation strategies."""

from unittest.mock import patch

import pytest

from oracle_aggregator.src.errors import ConfigurationError, EmptyAggregationInputError
from oracle_aggregator.src.PriceData import PriceSample
from oracle_aggregator.src.strategies import (
    MeanStrategy,
    MedianStrategy,
    TWAPStrategy,
    WeightedAverageStrategy,
    get_available_strategies,
    get_strategy,
)


def samples_at(prices: list[float], timestamps: list[float] | None = None) -> list[PriceSample]:
    """Build samples from sources a, b, c, ..."""
    timestamps = timestamps or [1000.0] * len(prices)
    return [
        PriceSample("XLM", p, timestamp=t, source_name=chr(ord("a") + i))
        for i, (p, t) in enumerate(zip(prices, timestamps))
    ]


ALL_STRATEGIES = [MedianStrategy(), MeanStrategy(), WeightedAverageStrategy(), TWAPStrategy()]


class TestCommonBehavior:
    """Behavior shared by every strategy."""

    @pytest.mark.parametrize("strategy", ALL_STRATEGIES, ids=lambda s: s.name)
    def test_empty_input_raises(self, strategy) -> None:
        """Empty input should raise EmptyAggregationInputError."""
        with pytest.raises(EmptyAggregationInputError):
            strategy.aggregate([])

    @pytest.mark.parametrize("strategy", ALL_STRATEGIES, ids=lambda s: s.name)
    def test_single_sample(self, strategy) -> None:
        """A single sample returns its price."""
        with patch("oracle_aggregator.src.strategies.twap.time.time", return_value=1000.0):
            assert strategy.aggregate(samples_at([0.12])) == pytest.approx(0.12)


class TestMedian:
    """Test MedianStrategy."""

    def test_odd_count(self) -> None:
        """Odd count returns the middle price."""
        assert MedianStrategy().aggregate(samples_at([100, 200, 300])) == 200

    def test_even_count(self) -> None:
        """Even count returns the mean of the two middle prices."""
        assert MedianStrategy().aggregate(samples_at([100, 200, 300, 400])) == 250

    def test_unsorted(self) -> None:
        """Input order should not matter."""
        assert MedianStrategy().aggregate(samples_at([300, 100, 200])) == 200

    def test_ignores_weights(self) -> None:
        """Weights have no effect on the median."""
        weights = {"a": 10.0, "b": 1.0, "c": 1.0}
        assert MedianStrategy().aggregate(samples_at([100, 200, 300]), weights) == 200


class TestMean:
    """Test MeanStrategy."""

    def test_mean(self) -> None:
        """Returns the arithmetic mean, ignoring weights."""
        result = MeanStrategy().aggregate(samples_at([100, 200, 600]), {"a": 100.0})
        assert result == pytest.approx(300.0)


class TestWeightedAverage:
    """Test WeightedAverageStrategy."""

    def test_weighted(self) -> None:
        """Heavier sources pull the result towards their price."""
        result = WeightedAverageStrategy().aggregate(
            samples_at([100, 200]), {"a": 3.0, "b": 1.0}
        )
        assert result == pytest.approx(125.0)

    def test_missing_weight_defaults_to_one(self) -> None:
        """Sources without a weight count as 1.0."""
        result = WeightedAverageStrategy().aggregate(samples_at([100, 200]), {"a": 3.0})
        assert result == pytest.approx(125.0)

    def test_no_weights_is_mean(self) -> None:
        """Without weights the result is the plain mean."""
        assert WeightedAverageStrategy().aggregate(samples_at([100, 200])) == pytest.approx(150.0)

    def test_zero_total_weight_falls_back_to_equal(self) -> None:
        """All-zero weights count every sample equally."""
        result = WeightedAverageStrategy().aggregate(
            samples_at([100, 200]), {"a": 0.0, "b": 0.0}
        )
        assert result == pytest.approx(150.0)

    def test_zero_weight_excludes_source(self) -> None:
        """A zero weight removes a source's influence."""
        result = WeightedAverageStrategy().aggregate(
            samples_at([100, 200]), {"a": 1.0, "b": 0.0}
        )
        assert result == pytest.approx(100.0)


class TestTWAP:
    """Test TWAPStrategy."""

    @patch("oracle_aggregator.src.strategies.twap.time.time")
    def test_fresher_samples_weigh_more(self, mock_time) -> None:
        """A fresh sample outweighs an older one."""
        mock_time.return_value = 1060.0
        # Ages 0 and 30 in a 60s window: weights 1.0 and 0.5
        samples = samples_at([100, 200], [1060.0, 1030.0])
        result = TWAPStrategy(window_seconds=60).aggregate(samples)
        assert result == pytest.approx((100 * 1.0 + 200 * 0.5) / 1.5)

    @patch("oracle_aggregator.src.strategies.twap.time.time")
    def test_samples_outside_window_ignored(self, mock_time) -> None:
        """Samples older than the window get zero weight."""
        mock_time.return_value = 1100.0
        samples = samples_at([100, 200], [1100.0, 1000.0])
        assert TWAPStrategy(window_seconds=60).aggregate(samples) == pytest.approx(100.0)

    @patch("oracle_aggregator.src.strategies.twap.time.time")
    def test_all_outside_window_is_mean(self, mock_time) -> None:
        """If every sample is too old, the simple mean is returned."""
        mock_time.return_value = 5000.0
        samples = samples_at([100, 200], [1000.0, 1000.0])
        assert TWAPStrategy(window_seconds=60).aggregate(samples) == pytest.approx(150.0)

    @patch("oracle_aggregator.src.strategies.twap.time.time")
    def test_future_timestamp_counts_as_fresh(self, mock_time) -> None:
        """Samples from the future have age 0."""
        mock_time.return_value = 1000.0
        twap = TWAPStrategy(window_seconds=60)
        assert twap.time_weight(samples_at([1.0], [1010.0])[0], 1000.0) == 1.0

    @patch("oracle_aggregator.src.strategies.twap.time.time")
    def test_ignores_source_weights(self, mock_time) -> None:
        """Source weights do not change the TWAP."""
        mock_time.return_value = 1000.0
        samples = samples_at([100, 200], [1000.0, 1000.0])
        result = TWAPStrategy().aggregate(samples, {"a": 100.0, "b": 1.0})
        assert result == pytest.approx(150.0)

    def test_invalid_window(self) -> None:
        """Non-positive windows are rejected."""
        with pytest.raises(ConfigurationError):
            TWAPStrategy(window_seconds=0)


class TestRegistry:
    """Test the strategy registry."""

    def test_available(self) -> None:
        """All built-in strategies are registered."""
        assert get_available_strategies() == ["mean", "median", "twap", "weighted_average"]

    def test_get_by_name(self) -> None:
        """Strategies can be created by name, case-insensitively."""
        assert isinstance(get_strategy("median"), MedianStrategy)
        assert isinstance(get_strategy(" Weighted_Average "), WeightedAverageStrategy)

    def test_get_with_kwargs(self) -> None:
        """Constructor arguments are passed through."""
        twap = get_strategy("twap", window_seconds=120)
        assert twap.window_seconds == 120

    def test_unknown_name(self) -> None:
        """Unknown names raise ConfigurationError listing the options."""
        with pytest.raises(ConfigurationError, match="Available: mean, median"):
            get_strategy("vwap")
