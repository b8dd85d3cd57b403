"""
Tests - trend extraction and impact scoring/classification.
"""

import math

import pytest

from analysis.impact import (
    CLASSIFICATION_RULES,
    classify_risk,
    compute_impact_score,
    compute_volatility,
    matching_rule,
    score_impact,
)
from analysis.trend import aggregate_series, analyze_trend, correlation, regression_slope, series_confidence
from schemas.impact_schema import TrendResult


def _trend(growth: float) -> TrendResult:
    return TrendResult(direction="stable", strength=0.0, growth_rate=growth)


class TestAnalyzeTrend:
    def test_flat_series_is_stable(self, monthly):
        result = analyze_trend(monthly([5, 5, 5, 5, 5, 5]))

        assert result.direction == "stable"
        assert result.strength == 0.0
        assert result.growth_rate == 0.0
        assert result.growth_defined is True

    def test_increasing_series(self, monthly):
        result = analyze_trend(monthly([10, 20, 30, 40, 50, 60]))

        assert result.direction == "increasing"
        assert result.strength == pytest.approx(1.0)
        assert result.growth_rate == pytest.approx(500.0)
        assert result.slope == pytest.approx(10.0)
        assert result.points == 6

    def test_decreasing_series(self, monthly):
        result = analyze_trend(monthly([100, 80, 60, 40]))

        assert result.direction == "decreasing"
        assert result.growth_rate == pytest.approx(-60.0)
        assert 0.0 <= result.strength <= 1.0

    def test_small_slope_counts_as_stable(self, monthly):
        result = analyze_trend(monthly([100, 100.05, 100.1]))
        assert result.direction == "stable"

    @pytest.mark.parametrize("values", [[], [42]])
    def test_fewer_than_two_points(self, monthly, values):
        result = analyze_trend(monthly(values))

        assert result.direction == "stable"
        assert result.strength == 0.0
        assert result.growth_rate == 0.0

    def test_growth_from_zero_is_reported_as_zero(self, monthly):
        result = analyze_trend(monthly([0, 5, 10]))

        assert result.growth_rate == 0.0
        assert result.growth_defined is False
        assert result.direction == "increasing"

    def test_accepts_raw_dicts(self, monthly_raw):
        result = analyze_trend(monthly_raw([1, 2, 3]))
        assert result.growth_rate == pytest.approx(200.0)


class TestTrendHelpers:
    def test_regression_slope(self):
        assert regression_slope([1, 3, 5, 7]) == pytest.approx(2.0)
        assert regression_slope([4]) == 0.0

    def test_correlation(self):
        assert correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
        assert correlation([1, 2, 3], [6, 4, 2]) == pytest.approx(-1.0)
        assert correlation([1, 2, 3], [5, 5, 5]) == 0.0
        assert correlation([1], [1]) == 0.0

    def test_aggregate_series(self, monthly):
        points = monthly([1, 2, 3, 6])
        assert aggregate_series(points, "sum") == 12
        assert aggregate_series(points, "average") == 3
        assert aggregate_series(points, "max") == 6
        assert aggregate_series(points, "min") == 1
        assert aggregate_series([], "sum") == 0.0
        assert aggregate_series(points, "median") == 0.0

    def test_series_confidence(self, monthly):
        points = monthly([1, 2], confidence=0.5)
        overall = series_confidence(points, data_completeness=1.0, source_reliability=1.0, temporal_recency=0.0)
        assert overall == pytest.approx(0.4 * 0.5 + 0.3 + 0.2)
        assert series_confidence([], data_completeness=1, source_reliability=1, temporal_recency=1) == 0.0


class TestImpactScore:
    def test_disruption_scenario(self):
        result = score_impact(_trend(70), _trend(-20), "data-entry-clerk")

        assert compute_volatility(70, -20) == pytest.approx(0.45)
        assert result.impact_score == pytest.approx(85.95)
        assert result.risk_level == "high"
        assert result.classification == "disruption"
        assert result.role_id == "data-entry-clerk"
        assert result.ai_growth_rate == 70
        assert result.job_demand_change == -20

    def test_volatility_is_capped(self):
        assert compute_volatility(500, -500) == 1.0
        assert compute_impact_score(500, -500) == pytest.approx(1000 * 0.9)

    def test_flat_inputs_score_zero(self):
        result = score_impact(_trend(0), _trend(0))
        assert result.impact_score == 0.0
        assert (result.risk_level, result.classification) == ("medium", "transition")


class TestClassification:
    @pytest.mark.parametrize(
        "score, demand, rule, expected",
        [
            (40, -20, "disruption_confirmed", ("high", "disruption")),
            (-20, 15, "growth_confirmed", ("low", "growth")),
            (0, 0, "transition_band", ("medium", "transition")),
            (30, -50, "transition_band", ("medium", "transition")),
            (-10, 50, "transition_band", ("medium", "transition")),
            (40, 0, "disruption_band", ("high", "disruption")),
            (-20, 0, "growth_band", ("low", "growth")),
            (float("nan"), 0, "fallback", ("medium", "transition")),
        ],
    )
    def test_first_matching_rule_wins(self, score, demand, rule, expected):
        assert matching_rule(score, demand).name == rule
        assert classify_risk(score, demand) == expected

    def test_rule_table_ends_with_catch_all(self):
        last = CLASSIFICATION_RULES[-1]
        assert last.predicate(math.inf, math.nan)

    def test_every_input_is_classified(self):
        for score in (-1e9, -10.0001, -10, 0, 30, 30.0001, 1e9):
            for demand in (-100, -15, 0, 10, 100):
                risk, cls = classify_risk(score, demand)
                assert risk in ("low", "medium", "high")
                assert cls in ("growth", "transition", "disruption")
