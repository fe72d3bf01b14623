"""Tests for the daily new vs returning trend."""

import pytest

from visitor_insights_mcp.core.exceptions import SchemaMismatch
from visitor_insights_mcp.data_providers.mock_provider import make_row
from visitor_insights_mcp.engine.trends import build_trend_query, fold_daily_trend


class TestDailyTrend:
    def test_folds_classes_per_date(self):
        rows = [
            make_row(["20240102", "new"], [5]),
            make_row(["20240101", "returning"], [3]),
            make_row(["20240101", "new"], [2]),
            make_row(["20240101", "(not set)"], [1]),
        ]

        points = fold_daily_trend(rows)

        assert [point.model_dump() for point in points] == [
            {"date": "20240101", "new": 2, "returning": 3, "total": 6},
            {"date": "20240102", "new": 5, "returning": 0, "total": 5},
        ]

    def test_empty(self):
        assert fold_daily_trend([]) == []

    def test_wrong_shape(self):
        with pytest.raises(SchemaMismatch):
            fold_daily_trend([make_row(["20240101"], [5])])

    def test_query(self, date_range):
        query = build_trend_query(date_range)

        assert query.dimensions == ("date", "newVsReturning")
        assert query.metrics == ("activeUsers",)
        assert query.order_by[0].field == "date"
        assert not query.order_by[0].desc
