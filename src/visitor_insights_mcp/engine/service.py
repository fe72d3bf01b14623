"""Visitor analytics engine.

The engine turns session-level rows from a dimensional analytics source
into visitor-level views. It holds no state between requests; the query
adapter is injected so tests and alternative sources can stand in for the
GA4 client.
"""

import logging

from visitor_insights_mcp.core.config import EngineConfig
from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.aggregator import SessionAggregator
from visitor_insights_mcp.engine.detail import VisitorDetailExpander
from visitor_insights_mcp.engine.overview import SessionOverviewBuilder
from visitor_insights_mcp.engine.power_users import (
    POWER_USER_DIMENSIONS,
    POWER_USER_METRICS,
    PowerUserClassifier,
)
from visitor_insights_mcp.engine.reconciler import LandingPageReconciler
from visitor_insights_mcp.engine.trends import build_trend_query, fold_daily_trend
from visitor_insights_mcp.models.report import (
    DateRange,
    FilterClause,
    MatchType,
    OrderSpec,
    ReportQuery,
)
from visitor_insights_mcp.models.visitor import (
    DailyTrendPoint,
    PowerUserRecord,
    SessionOverview,
    VisitorDetail,
    VisitorRecord,
)

logger = logging.getLogger(__name__)

VISITOR_DIMENSIONS = (
    names.DATE,
    names.HOUR,
    names.LANDING_PAGE,
    names.BROWSER,
    names.COUNTRY,
    names.REGION,
    names.CITY,
    names.VISITOR_CLASS,
    names.SESSION_SOURCE,
)
# Referrer is dropped to leave room for the page filter
PAGE_VISITOR_DIMENSIONS = (
    names.DATE,
    names.HOUR,
    names.PAGE_PATH,
    names.BROWSER,
    names.COUNTRY,
    names.REGION,
    names.CITY,
    names.VISITOR_CLASS,
)
VISITOR_METRICS = (
    names.SESSIONS,
    names.PAGE_VIEWS,
    names.AVG_SESSION_DURATION,
    names.ENGAGEMENT_DURATION,
    names.ENGAGED_SESSIONS,
    names.BOUNCE_RATE,
    names.ACTIVE_USERS,
)
MOST_RECENT_FIRST = (
    OrderSpec(field=names.DATE, desc=True),
    OrderSpec(field=names.HOUR, desc=True),
)


class VisitorAnalyticsEngine:
    """Public operations over reconstructed visitors."""

    def __init__(self, adapter: QueryAdapter, config: EngineConfig | None = None):
        self.adapter = adapter
        self.config = config or EngineConfig()
        self.max_query_terms = min(self.config.max_query_terms, adapter.max_query_terms)

    def default_date_range(self) -> DateRange:
        return DateRange(
            start_date=self.config.default_start_date,
            end_date=self.config.default_end_date,
        )

    async def list_visitors(
        self, date_range: DateRange | None = None, limit: int | None = None
    ) -> list[VisitorRecord]:
        """List inferred visitors, most recently seen first.

        ``limit`` caps the rows requested from the source as well as the
        number of visitors returned.

        Raises:
            APIError: If the visitor query fails
            SchemaMismatch: If the source returns rows of the wrong shape
        """
        date_range = date_range or self.default_date_range()
        limit = limit or self.config.default_visitor_limit

        query = ReportQuery(
            date_range=date_range,
            dimensions=VISITOR_DIMENSIONS,
            metrics=VISITOR_METRICS,
            order_by=MOST_RECENT_FIRST,
            limit=limit,
            label="visitors",
        )
        rows = await self.adapter.run_query(query)
        visitors = SessionAggregator().fold(rows, query.dimensions, query.metrics)

        reconciler = LandingPageReconciler(
            self.adapter, row_limit=self.config.reconciliation_row_limit
        )
        await reconciler.reconcile(visitors, date_range)

        logger.info(f"Reconstructed {len(visitors)} visitors from {len(rows)} rows")
        return visitors[:limit]

    async def list_visitors_by_page(
        self,
        page_path: str,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> list[VisitorRecord]:
        """List visitors who viewed pages whose path contains ``page_path``.

        The landing page of each record is the most recent matching page path.

        Raises:
            APIError: If the visitor query fails
            SchemaMismatch: If the source returns rows of the wrong shape
        """
        date_range = date_range or self.default_date_range()
        limit = limit or self.config.default_visitor_limit

        query = ReportQuery(
            date_range=date_range,
            dimensions=PAGE_VISITOR_DIMENSIONS,
            metrics=VISITOR_METRICS,
            filters=(
                FilterClause(
                    field=names.PAGE_PATH,
                    match_type=MatchType.CONTAINS,
                    value=page_path,
                ),
            ),
            order_by=MOST_RECENT_FIRST,
            limit=limit,
            label="visitors_by_page",
        )
        rows = await self.adapter.run_query(query)
        visitors = SessionAggregator(landing_dimension=names.PAGE_PATH).fold(
            rows, query.dimensions, query.metrics
        )

        logger.info(f"Found {len(visitors)} visitors for pages matching '{page_path}'")
        return visitors[:limit]

    async def get_visitor_detail(
        self, visitor_id: str, date_range: DateRange | None = None
    ) -> VisitorDetail:
        """Expand one visitor identity key into sessions, pages and events.

        Raises:
            MalformedIdentityKey: If the key cannot be decoded
            APIError: If the sessions sub-query fails
        """
        expander = VisitorDetailExpander(
            self.adapter,
            max_query_terms=self.max_query_terms,
            row_limit=self.config.detail_row_limit,
        )
        return await expander.expand(visitor_id, date_range or self.default_date_range())

    async def list_power_users(
        self, date_range: DateRange | None = None, min_sessions: int | None = None
    ) -> list[PowerUserRecord]:
        """List repeat visitors with at least ``min_sessions`` sessions.

        Raises:
            APIError: If the power user query fails
            SchemaMismatch: If the source returns rows of the wrong shape
        """
        date_range = date_range or self.default_date_range()
        if min_sessions is None:
            min_sessions = self.config.power_user_min_sessions

        query = ReportQuery(
            date_range=date_range,
            dimensions=POWER_USER_DIMENSIONS,
            metrics=POWER_USER_METRICS,
            order_by=MOST_RECENT_FIRST,
            limit=self.config.power_user_row_limit,
            label="power_users",
        )
        rows = await self.adapter.run_query(query)
        return PowerUserClassifier(min_sessions=min_sessions).classify(
            rows, query.dimensions, query.metrics
        )

    async def daily_visitor_trend(
        self, date_range: DateRange | None = None
    ) -> list[DailyTrendPoint]:
        """New and returning active users per day.

        Raises:
            APIError: If the trend query fails
        """
        query = build_trend_query(date_range or self.default_date_range())
        return fold_daily_trend(await self.adapter.run_query(query))

    async def session_overview(
        self, date_range: DateRange | None = None
    ) -> SessionOverview | None:
        """Headline session totals, or None when the range has no data.

        Raises:
            APIError: If the totals query fails
        """
        builder = SessionOverviewBuilder(
            self.adapter,
            engaged_threshold_seconds=self.config.engaged_duration_threshold_seconds,
            group_row_limit=self.config.overview_group_row_limit,
        )
        return await builder.build(date_range or self.default_date_range())
