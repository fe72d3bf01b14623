"""Shared fixtures for Visitor Insights tests."""

import pytest

from visitor_insights_mcp.core.config import EngineConfig
from visitor_insights_mcp.data_providers.mock_provider import MockQueryAdapter, make_row
from visitor_insights_mcp.engine.identity import IdentityKey
from visitor_insights_mcp.engine.service import VISITOR_DIMENSIONS, VISITOR_METRICS
from visitor_insights_mcp.models.report import DateRange


@pytest.fixture
def adapter():
    """Mock query adapter with the GA4 dimensions+filters cap."""
    return MockQueryAdapter()


@pytest.fixture
def date_range():
    """January 2024."""
    return DateRange(start_date="2024-01-01", end_date="2024-01-31")


@pytest.fixture
def engine_config():
    """Engine configuration with fixed default dates."""
    return EngineConfig(default_start_date="2024-01-01", default_end_date="2024-01-31")


@pytest.fixture
def identity():
    """Identity key of a returning Chrome visitor from San Francisco."""
    return IdentityKey(
        date="20240115",
        hour="14",
        landing_page="/home",
        browser="Chrome",
        country="United States",
        region="California",
        city="San Francisco",
        visitor_class="returning",
        referrer="google",
        row_index=0,
    )


@pytest.fixture
def visitor_row():
    """Build a row for the visitor list query.

    Dimension values default to a Chrome visitor from San Francisco and can be
    overridden by keyword, e.g. ``visitor_row(hour="09", sessions=2)``.
    """

    def _build(
        date="20240110",
        hour="14",
        landing_page="/home",
        browser="Chrome",
        country="United States",
        region="California",
        city="San Francisco",
        visitor_class="new",
        referrer="google",
        sessions=1,
        page_views=1,
        avg_duration=60.0,
        engagement=30.0,
        engaged=1,
        bounce_rate=0.0,
        active_users=1,
    ):
        return make_row(
            [
                date,
                hour,
                landing_page,
                browser,
                country,
                region,
                city,
                visitor_class,
                referrer,
            ],
            [
                sessions,
                page_views,
                avg_duration,
                engagement,
                engaged,
                bounce_rate,
                active_users,
            ],
        )

    return _build


@pytest.fixture
def visitor_query_shape():
    """Dimensions and metrics of the visitor list query."""
    return VISITOR_DIMENSIONS, VISITOR_METRICS
