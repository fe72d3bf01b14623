"""Property-wide session overview with an estimated engaged-user count."""

import logging

from visitor_insights_mcp.core.exceptions import APIError
from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.metrics import clamp_unit, safe_ratio
from visitor_insights_mcp.engine.rows import unpack_rows
from visitor_insights_mcp.models.report import DateRange, ReportQuery
from visitor_insights_mcp.models.visitor import SessionOverview

logger = logging.getLogger(__name__)

TOTAL_METRICS = (
    names.SESSIONS,
    names.ACTIVE_USERS,
    names.ENGAGED_SESSIONS,
    names.AVG_SESSION_DURATION,
    names.BOUNCE_RATE,
    names.ENGAGEMENT_RATE,
)
ENGAGED_GROUP_DIMENSIONS = (names.COUNTRY, names.REGION, names.CITY, names.BROWSER)
ENGAGED_GROUP_METRICS = (names.ACTIVE_USERS, names.ENGAGEMENT_DURATION)

ENGAGED_GROUPS_STRATEGY = "engaged-groups"
ENGAGED_SESSIONS_STRATEGY = "engaged-sessions"


class SessionOverviewBuilder:
    """Computes headline session totals for a date range.

    Engaged users are estimated by grouping on the stable identity subset and
    counting the active users of groups engaged for longer than the
    threshold. When that query fails the engaged session count stands in.
    """

    def __init__(
        self,
        adapter: QueryAdapter,
        engaged_threshold_seconds: float = 5.0,
        group_row_limit: int = 10000,
    ):
        self.adapter = adapter
        self.engaged_threshold_seconds = engaged_threshold_seconds
        self.group_row_limit = group_row_limit

    async def build(self, date_range: DateRange) -> SessionOverview | None:
        """Return the overview, or None when the source has no data for the range.

        Raises:
            APIError: If the totals query fails
        """
        query = ReportQuery(
            date_range=date_range,
            metrics=TOTAL_METRICS,
            limit=1,
            label="session_totals",
        )
        rows = unpack_rows(await self.adapter.run_query(query), query)
        if not rows:
            logger.info(
                f"No session data from {date_range.start_date} to {date_range.end_date}"
            )
            return None

        totals = rows[0]
        sessions = totals.int_metric(names.SESSIONS)
        active_users = totals.int_metric(names.ACTIVE_USERS)
        engaged_sessions = totals.int_metric(names.ENGAGED_SESSIONS)

        engaged_users = await self._engaged_users(date_range)
        strategy = ENGAGED_GROUPS_STRATEGY
        if engaged_users is None:
            engaged_users, strategy = engaged_sessions, ENGAGED_SESSIONS_STRATEGY

        return SessionOverview(
            sessions=sessions,
            active_users=active_users,
            engaged_sessions=engaged_sessions,
            engaged_users=engaged_users,
            engaged_users_strategy=strategy,
            average_session_duration=totals.float_metric(names.AVG_SESSION_DURATION),
            bounce_rate=clamp_unit(totals.float_metric(names.BOUNCE_RATE)),
            engagement_rate=clamp_unit(totals.float_metric(names.ENGAGEMENT_RATE)),
            sessions_per_active_user=safe_ratio(sessions, active_users),
            engaged_sessions_per_active_user=safe_ratio(engaged_sessions, active_users),
        )

    async def _engaged_users(self, date_range: DateRange) -> int | None:
        query = ReportQuery(
            date_range=date_range,
            dimensions=ENGAGED_GROUP_DIMENSIONS,
            metrics=ENGAGED_GROUP_METRICS,
            limit=self.group_row_limit,
            label="engaged_user_groups",
        )
        try:
            rows = await self.adapter.run_query(query)
        except APIError as e:
            logger.warning(f"Falling back to engaged sessions for engaged users: {e}")
            return None

        return sum(
            row.int_metric(names.ACTIVE_USERS)
            for row in unpack_rows(rows, query)
            if row.float_metric(names.ENGAGEMENT_DURATION) > self.engaged_threshold_seconds
        )
