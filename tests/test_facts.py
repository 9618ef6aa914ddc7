"""Tests for the mathematical fact library."""

from datetime import UTC, date, datetime

import pytest

from gh_project_summary.metrics.facts import (
    bin_by_time,
    business_days_between,
    days_between,
    find_top_n,
    gini_coefficient,
    growth_rate,
    hours_between,
    mean,
    median,
    percentage,
    percentile,
    percentiles,
    ratio,
    standard_deviation,
    variance,
)

SAMPLES = [
    [1],
    [3, 1, 2],
    [1, 2, 3, 4],
    [0, 0, 10],
    [5.5, 2.25, 9.75, 1.0, 3.5, 7.0],
    [100, 1, 1, 1, 1, 1, 1],
]


class TestRatios:
    """Tests for ratio, percentage and growth rate."""

    @pytest.mark.parametrize("numerator", [0, 1, -7, 3.5, 1e9])
    def test_ratio_zero_denominator(self, numerator: float) -> None:
        """Test dividing by zero yields zero."""
        assert ratio(numerator, 0) == 0

    def test_ratio_rounds(self) -> None:
        """Test ratio is rounded to two decimals."""
        assert ratio(10, 3) == 3.33
        assert ratio(16, 3) == 5.33

    def test_percentage(self) -> None:
        """Test percentage of a whole."""
        assert percentage(1, 3) == 33.33
        assert percentage(5, 0) == 0

    @pytest.mark.parametrize(("current", "expected"), [(5, 1), (1, 1), (0, 0)])
    def test_growth_from_zero(self, current: int, expected: int) -> None:
        """Test growth from no previous activity."""
        assert growth_rate(current, 0) == expected

    def test_growth_rate(self) -> None:
        """Test relative change."""
        assert growth_rate(15, 10) == 0.5
        assert growth_rate(5, 10) == -0.5
        assert growth_rate(10, 3) == 2.33


class TestCentralTendency:
    """Tests for mean, median and percentiles."""

    def test_empty_inputs(self) -> None:
        """Test empty input gives zero instead of raising."""
        assert mean([]) == 0
        assert median([]) == 0
        assert percentile([], 90) == 0
        assert variance([]) == 0
        assert standard_deviation([]) == 0

    def test_mean(self) -> None:
        """Test arithmetic mean."""
        assert mean([1, 2, 3, 4]) == 2.5
        assert mean([5, 8, 3]) == 5.33

    def test_median_odd_and_even(self) -> None:
        """Test median of odd and even lengths."""
        assert median([3, 1, 2]) == 2
        assert median([4, 1, 3, 2]) == 2.5

    def test_percentile_interpolates(self) -> None:
        """Test linear interpolation between ranks."""
        assert percentile([1, 2, 3, 4, 5], 90) == 4.6
        assert percentile([5, 1, 4, 2, 3], 25) == 2
        assert percentile([10], 99) == 10

    def test_percentile_bounds(self) -> None:
        """Test 0 and 100 are the extremes."""
        values = [7, 3, 9, 1]
        assert percentile(values, 0) == 1
        assert percentile(values, 100) == 9

    @pytest.mark.parametrize("p", [-1, 100.5])
    def test_percentile_out_of_range(self, p: float) -> None:
        """Test percentiles outside 0..100 are rejected."""
        with pytest.raises(ValueError, match="between 0 and 100"):
            percentile([1, 2], p)

    @pytest.mark.parametrize("values", SAMPLES)
    def test_fiftieth_percentile_is_median(self, values: list[float]) -> None:
        """Test percentile 50 equals the median."""
        assert percentile(values, 50) == median(values)

    def test_percentiles_keys(self) -> None:
        """Test several percentiles keyed by name."""
        result = percentiles([1, 2, 3, 4, 5], [25, 50, 99.9])
        assert list(result) == ["P25", "P50", "P99.9"]
        assert result["P25"] == 2
        assert result["P50"] == 3


class TestSpread:
    """Tests for variance, standard deviation and Gini."""

    def test_population_variance(self) -> None:
        """Test population variance and standard deviation."""
        values = [2, 4, 4, 4, 5, 5, 7, 9]
        assert variance(values) == 4
        assert standard_deviation(values) == 2

    def test_single_value_has_no_spread(self) -> None:
        """Test one value has zero variance."""
        assert variance([42]) == 0
        assert standard_deviation([42]) == 0

    def test_gini_equal_values(self) -> None:
        """Test equal values are perfectly equal."""
        assert gini_coefficient([5, 5, 5]) == 0

    def test_gini_concentrated(self) -> None:
        """Test one holder of everything."""
        assert gini_coefficient([0, 0, 10]) == 0.67

    def test_gini_degenerate(self) -> None:
        """Test empty and all-zero inputs."""
        assert gini_coefficient([]) == 0
        assert gini_coefficient([0, 0]) == 0

    @pytest.mark.parametrize("values", SAMPLES)
    def test_gini_in_unit_interval(self, values: list[float]) -> None:
        """Test Gini stays within [0, 1] for non-negative values."""
        assert 0 <= gini_coefficient(values) <= 1


class TestDates:
    """Tests for day and hour arithmetic."""

    def test_days_between_floors(self) -> None:
        """Test partial days are dropped."""
        start = datetime(2025, 1, 1, tzinfo=UTC)
        end = datetime(2025, 1, 3, 12, tzinfo=UTC)
        assert days_between(start, end) == 2
        assert days_between(end, start) == 2

    def test_hours_between(self) -> None:
        """Test whole hours."""
        start = datetime(2025, 1, 1, 10, 0, tzinfo=UTC)
        end = datetime(2025, 1, 1, 11, 30, tzinfo=UTC)
        assert hours_between(start, end) == 1

    def test_business_days_across_weekend(self) -> None:
        """Test Friday to Monday counts both weekdays only."""
        assert business_days_between(date(2025, 3, 14), date(2025, 3, 17)) == 2

    def test_business_days_full_week(self) -> None:
        """Test Monday to Sunday has five business days."""
        assert business_days_between(date(2025, 3, 17), date(2025, 3, 23)) == 5

    def test_business_days_weekend_only(self) -> None:
        """Test a weekend day alone counts zero."""
        saturday = datetime(2025, 3, 15, 9, tzinfo=UTC)
        assert business_days_between(saturday, saturday) == 0

    def test_business_days_order_insensitive(self) -> None:
        """Test swapped arguments give the same count."""
        assert business_days_between(date(2025, 3, 21), date(2025, 3, 10)) == 10


class TestGrouping:
    """Tests for top-N and time binning."""

    def test_find_top_n_keeps_ties_in_order(self) -> None:
        """Test ties keep insertion order."""
        counts = {"a": 3, "b": 5, "c": 3}
        assert find_top_n(counts, 2) == [("b", 5), ("a", 3)]
        assert find_top_n(counts, 0) == []

    def test_bin_by_day_and_hour(self) -> None:
        """Test day and hour bins."""
        moments = [
            datetime(2025, 3, 15, 12, 5, tzinfo=UTC),
            datetime(2025, 3, 15, 12, 55, tzinfo=UTC),
            datetime(2025, 3, 16, 1, 0, tzinfo=UTC),
        ]
        assert bin_by_time(moments, "day") == {"2025-03-15": 2, "2025-03-16": 1}
        assert bin_by_time(moments, "hour") == {"2025-03-15T12:00": 2, "2025-03-16T01:00": 1}

    def test_bin_by_week_starts_monday(self) -> None:
        """Test weeks are keyed by their Monday."""
        moments = [datetime(2025, 3, 15, tzinfo=UTC), datetime(2025, 3, 10, tzinfo=UTC)]
        assert bin_by_time(moments, "week") == {"2025-03-10": 2}

    def test_bin_by_unknown_size(self) -> None:
        """Test unsupported bin sizes are rejected."""
        with pytest.raises(ValueError, match="Unsupported bin size"):
            bin_by_time([], "month")  # type: ignore[arg-type]
