"""Tests for the numeric helpers behind baselines and scoring."""

import math

import pytest

from axle_server.services.statistics import (
    EMPTY_BASELINE,
    clamp,
    compute_rolling_baseline,
    safe_div,
    winsorize,
)


class TestClamp:
    def test_inside_range_unchanged(self) -> None:
        assert clamp(42, 0, 100) == 42

    def test_bounds(self) -> None:
        assert clamp(-5, 0, 100) == 0
        assert clamp(150, 0, 100) == 100


class TestSafeDiv:
    def test_regular_division(self) -> None:
        assert safe_div(10, 4) == 2.5

    def test_zero_denominator(self) -> None:
        assert safe_div(10, 0) == 0.0

    def test_non_finite_operands(self) -> None:
        assert safe_div(math.inf, 2) == 0.0
        assert safe_div(1, math.nan) == 0.0


class TestWinsorize:
    def test_empty(self) -> None:
        assert winsorize([]) == []

    def test_single_value(self) -> None:
        assert winsorize([7.0]) == [7.0]

    def test_caps_outliers_and_preserves_order(self) -> None:
        values = [float(v) for v in range(1, 41)]
        values[3] = 1000.0  # sensor glitch
        result = winsorize(values)

        assert len(result) == len(values)
        assert result[3] == 40.0  # sorted[38]
        assert result[0] == 3.0  # sorted[2]
        assert result[-1] == 40.0

    def test_every_output_within_input_range(self) -> None:
        values = [5.0, -3.0, 12.0, 8.0, 0.5, 99.0, 4.0]
        result = winsorize(values)
        assert all(min(values) <= v <= max(values) for v in result)


class TestRollingBaseline:
    def test_empty_is_zero(self) -> None:
        assert compute_rolling_baseline([]) == EMPTY_BASELINE

    def test_population_std(self) -> None:
        baseline = compute_rolling_baseline([2, 4, 4, 4, 5, 5, 7, 9])
        assert baseline.mean == pytest.approx(5.0)
        assert baseline.std == pytest.approx(2.0)
        assert baseline.count == 8

    def test_constant_series(self) -> None:
        baseline = compute_rolling_baseline([60.0] * 5)
        assert baseline.std == 0.0
        assert baseline.mean == 60.0

