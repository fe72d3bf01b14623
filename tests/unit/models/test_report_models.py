"""Tests for report query models."""

import pytest
from pydantic import ValidationError

from visitor_insights_mcp.models.report import (
    DateRange,
    FilterClause,
    MatchType,
    ReportQuery,
)


@pytest.fixture
def january():
    return DateRange(start_date="2024-01-01", end_date="2024-01-31")


class TestFilterClause:
    def test_defaults_to_exact_match(self):
        clause = FilterClause(field="country", value="Canada")

        assert clause.match_type == MatchType.EXACT
        assert clause.case_sensitive is False

    def test_in_list_requires_values(self):
        with pytest.raises(ValidationError, match="at least one value"):
            FilterClause(field="pagePath", match_type=MatchType.IN_LIST)


class TestReportQuery:
    def test_term_count_includes_filters(self, january):
        query = ReportQuery(
            date_range=january,
            dimensions=("date", "hour", "pagePath"),
            metrics=("sessions",),
            filters=(
                FilterClause(field="country", value="Canada"),
                FilterClause(
                    field="pagePath", match_type=MatchType.IN_LIST, values=("/a", "/b")
                ),
            ),
        )

        assert query.term_count == 5

    def test_metrics_required(self, january):
        with pytest.raises(ValidationError, match="At least one metric"):
            ReportQuery(date_range=january, metrics=())

    def test_limit_bounds(self, january):
        with pytest.raises(ValidationError):
            ReportQuery(date_range=january, metrics=("sessions",), limit=0)

    def test_queries_are_immutable(self, january):
        query = ReportQuery(date_range=january, metrics=("sessions",))

        with pytest.raises(ValidationError):
            query.limit = 5
