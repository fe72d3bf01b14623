"""Tests for folding session rows into visitors."""

import pytest

from visitor_insights_mcp.core.exceptions import SchemaMismatch
from visitor_insights_mcp.data_providers.mock_provider import make_row
from visitor_insights_mcp.engine.aggregator import SessionAggregator
from visitor_insights_mcp.engine.identity import decode_identity_key, stable_key


def _fold(rows, shape):
    dimensions, metrics = shape
    return SessionAggregator().fold(rows, dimensions, metrics)


class TestSessionAggregator:
    """Test the single-pass visitor fold."""

    def test_sums_counts_and_recomputes_ratios(self, visitor_row, visitor_query_shape):
        rows = [
            visitor_row(
                hour="09",
                landing_page="/home",
                visitor_class="new",
                referrer="google",
                sessions=2,
                page_views=4,
                avg_duration=30.0,
                engagement=50.0,
                engaged=2,
                bounce_rate=0.0,
            ),
            visitor_row(
                hour="14",
                landing_page="/pricing",
                visitor_class="returning",
                referrer="direct",
                sessions=3,
                page_views=6,
                avg_duration=90.0,
                engagement=70.0,
                engaged=2,
                bounce_rate=0.33,
            ),
        ]

        visitors = _fold(rows, visitor_query_shape)

        assert len(visitors) == 1
        visitor = visitors[0]
        assert visitor.sessions == 5
        assert visitor.engaged_sessions == 4
        assert visitor.bounce_rate == pytest.approx(0.2)
        assert visitor.avg_session_duration == pytest.approx(60.0)
        assert visitor.page_views == 10
        assert visitor.engagement_duration == pytest.approx(120.0)
        assert visitor.active_users == 2
        assert visitor.row_count == 2

        assert visitor.last_seen_date == "20240110"
        assert visitor.last_seen_hour == "14"
        assert visitor.landing_page == "/pricing"
        assert visitor.referrer == "direct"
        assert visitor.visitor_class == "returning"

    def test_visitor_id_describes_most_recent_row(self, visitor_row, visitor_query_shape):
        rows = [
            visitor_row(date="20240112", hour="08", landing_page="/late"),
            visitor_row(date="20240105", hour="20", landing_page="/early"),
        ]

        visitor = _fold(rows, visitor_query_shape)[0]
        identity = decode_identity_key(visitor.visitor_id)

        assert identity.date == "20240112"
        assert identity.hour == "08"
        assert identity.landing_page == "/late"
        assert identity.row_index == 0
        assert identity.stable.key == stable_key(
            visitor.country, visitor.region, visitor.city, visitor.browser
        )

    def test_hours_compare_numerically(self, visitor_row, visitor_query_shape):
        rows = [
            visitor_row(hour="14", landing_page="/afternoon"),
            visitor_row(hour="5", landing_page="/morning"),
        ]

        visitor = _fold(rows, visitor_query_shape)[0]

        assert visitor.landing_page == "/afternoon"
        assert visitor.last_seen_hour == "14"

    def test_tied_rows_resolve_independently_of_order(
        self, visitor_row, visitor_query_shape
    ):
        rows = [
            visitor_row(landing_page="/a", referrer="google"),
            visitor_row(landing_page="/b", referrer="bing"),
        ]

        forward = _fold(rows, visitor_query_shape)[0]
        backward = _fold(list(reversed(rows)), visitor_query_shape)[0]

        assert forward.landing_page == backward.landing_page == "/b"
        assert forward.referrer == backward.referrer == "bing"

    def test_row_order_does_not_change_aggregates(
        self, visitor_row, visitor_query_shape
    ):
        rows = [
            visitor_row(city="Oakland", hour="10", sessions=2, engaged=1),
            visitor_row(hour="09", sessions=4, engaged=3, avg_duration=12.0),
            visitor_row(city="Oakland", hour="16", sessions=1, engaged=1),
            visitor_row(date="20240111", hour="01", sessions=1, engaged=0),
        ]

        forward = _fold(rows, visitor_query_shape)
        backward = _fold(list(reversed(rows)), visitor_query_shape)

        def comparable(visitors):
            return [visitor.model_dump(exclude={"visitor_id"}) for visitor in visitors]

        assert comparable(forward) == comparable(backward)

    def test_distinct_locations_are_distinct_visitors(
        self, visitor_row, visitor_query_shape
    ):
        rows = [
            visitor_row(city="San Francisco"),
            visitor_row(city="Oakland"),
            visitor_row(browser="Safari"),
        ]

        assert len(_fold(rows, visitor_query_shape)) == 3

    def test_sorted_most_recent_first_then_by_key(
        self, visitor_row, visitor_query_shape
    ):
        rows = [
            visitor_row(city="Berkeley", date="20240110", hour="14"),
            visitor_row(city="Oakland", date="20240112", hour="01"),
            visitor_row(city="Alameda", date="20240110", hour="14"),
        ]

        visitors = _fold(rows, visitor_query_shape)

        assert [visitor.city for visitor in visitors] == [
            "Oakland",
            "Alameda",
            "Berkeley",
        ]

    def test_engaged_sessions_never_exceed_sessions(
        self, visitor_row, visitor_query_shape
    ):
        visitor = _fold(
            [visitor_row(sessions=1, engaged=3)], visitor_query_shape
        )[0]

        assert visitor.engaged_sessions == 1
        assert visitor.bounce_rate == 0.0

    def test_zero_sessions_gives_zero_bounce_rate(
        self, visitor_row, visitor_query_shape
    ):
        visitor = _fold(
            [visitor_row(sessions=0, engaged=0, bounce_rate=1.0)], visitor_query_shape
        )[0]

        assert visitor.bounce_rate == 0.0

    def test_empty_rows(self, visitor_query_shape):
        assert _fold([], visitor_query_shape) == []

    def test_short_row_raises_schema_mismatch(self, visitor_row, visitor_query_shape):
        short = make_row(["20240110", "14"], [1, 1, 60, 30, 1, 0, 1])

        with pytest.raises(SchemaMismatch) as exc_info:
            _fold([visitor_row(), short], visitor_query_shape)

        assert exc_info.value.expected_dimensions == 9
        assert exc_info.value.actual_dimensions == 2

    def test_page_path_as_landing_dimension(self, visitor_row):
        dimensions = (
            "date",
            "hour",
            "pagePath",
            "browser",
            "country",
            "region",
            "city",
            "newVsReturning",
        )
        metrics = (
            "sessions",
            "screenPageViews",
            "averageSessionDuration",
            "userEngagementDuration",
            "engagedSessions",
            "bounceRate",
            "activeUsers",
        )
        row = make_row(
            ["20240110", "14", "/docs/setup", "Chrome", "US", "", "", "new"],
            [1, 2, 10, 5, 1, 0, 1],
        )

        visitor = SessionAggregator(landing_dimension="pagePath").fold(
            [row], dimensions, metrics
        )[0]

        assert visitor.landing_page == "/docs/setup"
        assert visitor.referrer == ""
        assert decode_identity_key(visitor.visitor_id).region == ""
