"""Tests for derived metric recomputation."""

import pytest

from visitor_insights_mcp.engine.metrics import (
    approximate_bounced_sessions,
    mean_duration,
    recompute_bounce_rate,
    safe_ratio,
)


class TestRecomputeBounceRate:
    def test_from_summed_counts(self):
        assert recompute_bounce_rate(5, 4) == pytest.approx(0.2)

    def test_zero_sessions(self):
        assert recompute_bounce_rate(0, 0) == 0.0

    def test_clamped_to_unit_interval(self):
        assert recompute_bounce_rate(2, 3) == 0.0
        assert recompute_bounce_rate(2, -1) == 1.0


class TestMeanDuration:
    def test_unweighted_mean(self):
        assert mean_duration([30.0, 90.0]) == 60.0

    def test_empty(self):
        assert mean_duration([]) == 0.0

    def test_accepts_generators(self):
        assert mean_duration(value for value in (10.0, 20.0, 30.0)) == 20.0


class TestApproximateBouncedSessions:
    @pytest.mark.parametrize(
        "sessions,bounce_rate,expected",
        [
            (1, 0.5, 1),
            (3, 0.5, 2),
            (4, 0.25, 1),
            (10, 0.0, 0),
            (7, 1.0, 7),
        ],
    )
    def test_half_up_rounding(self, sessions, bounce_rate, expected):
        assert approximate_bounced_sessions(sessions, bounce_rate) == expected

    def test_out_of_range_rate_is_clamped(self):
        assert approximate_bounced_sessions(4, 1.5) == 4


class TestSafeRatio:
    def test_division(self):
        assert safe_ratio(90.0, 3) == 30.0

    def test_zero_denominator(self):
        assert safe_ratio(5.0, 0) == 0.0
