"""Fold session-level report rows into one record per inferred visitor."""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.identity import IdentityKey, normalize_hour
from visitor_insights_mcp.engine.metrics import mean_duration, recompute_bounce_rate
from visitor_insights_mcp.engine.rows import BoundRow, unpack_row
from visitor_insights_mcp.models.report import ReportRow
from visitor_insights_mcp.models.visitor import VisitorRecord

logger = logging.getLogger(__name__)


def _tie_break(identity: IdentityKey) -> tuple[str, ...]:
    # Compared after the recency stamp; makes the winner independent of row order
    return (
        identity.recency,
        identity.landing_page,
        identity.referrer,
        identity.visitor_class,
    )


@dataclass
class _VisitorTotals:
    latest: IdentityKey
    sessions: int = 0
    page_views: int = 0
    engagement_duration: float = 0.0
    engaged_sessions: int = 0
    active_users: int = 0
    durations: list[float] = field(default_factory=list)
    row_count: int = 0

    def add(self, row: BoundRow) -> None:
        sessions = row.int_metric(names.SESSIONS)
        engaged = row.int_metric(names.ENGAGED_SESSIONS)
        if engaged > sessions:
            logger.debug(
                f"Row reports {engaged} engaged of {sessions} sessions, clamping"
            )
            engaged = sessions

        self.sessions += sessions
        self.engaged_sessions += engaged
        self.page_views += row.int_metric(names.PAGE_VIEWS)
        self.engagement_duration += row.float_metric(names.ENGAGEMENT_DURATION)
        self.active_users += row.int_metric(names.ACTIVE_USERS)
        self.durations.append(row.float_metric(names.AVG_SESSION_DURATION))
        self.row_count += 1

    def observe(self, identity: IdentityKey) -> None:
        if _tie_break(identity) > _tie_break(self.latest):
            self.latest = identity

    def to_record(self) -> VisitorRecord:
        latest = self.latest
        return VisitorRecord(
            visitor_id=latest.encode(),
            country=latest.country,
            region=latest.region,
            city=latest.city,
            browser=latest.browser,
            last_seen_date=latest.date,
            last_seen_hour=latest.hour,
            landing_page=latest.landing_page,
            referrer=latest.referrer,
            visitor_class=latest.visitor_class,
            sessions=self.sessions,
            page_views=self.page_views,
            engagement_duration=self.engagement_duration,
            engaged_sessions=self.engaged_sessions,
            active_users=self.active_users,
            avg_session_duration=mean_duration(self.durations),
            bounce_rate=recompute_bounce_rate(self.sessions, self.engaged_sessions),
            row_count=self.row_count,
        )


class SessionAggregator:
    """Groups report rows by stable identity and folds their metrics.

    Counts and durations are summed, the bounce rate is recomputed from the
    summed counts, and the trailing key fields (last seen date and hour,
    landing page, referrer, visitor class) come from the most recent row.
    """

    def __init__(self, landing_dimension: str = names.LANDING_PAGE):
        self.landing_dimension = landing_dimension

    def identity_for(self, row: BoundRow, row_index: int) -> IdentityKey:
        return IdentityKey(
            date=row.dim(names.DATE),
            hour=normalize_hour(row.dim(names.HOUR)),
            landing_page=row.dim(self.landing_dimension),
            browser=row.dim(names.BROWSER),
            country=row.dim(names.COUNTRY),
            region=row.dim(names.REGION),
            city=row.dim(names.CITY),
            visitor_class=row.dim(names.VISITOR_CLASS),
            referrer=row.dim(names.SESSION_SOURCE),
            row_index=row_index,
        )

    def fold(
        self,
        rows: Sequence[ReportRow],
        dimensions: Sequence[str],
        metrics: Sequence[str],
    ) -> list[VisitorRecord]:
        """Fold rows into visitor records, most recently seen first.

        Raises:
            SchemaMismatch: If any row does not match the requested shape
        """
        totals: dict[str, _VisitorTotals] = {}

        for index, raw in enumerate(rows):
            row = unpack_row(raw, dimensions, metrics)
            identity = self.identity_for(row, index)
            key = identity.stable.key

            visitor = totals.get(key)
            if visitor is None:
                visitor = totals[key] = _VisitorTotals(latest=identity)
            else:
                visitor.observe(identity)
            visitor.add(row)

        logger.debug(f"Folded {len(rows)} rows into {len(totals)} visitors")

        ordered = sorted(totals.items(), key=lambda item: item[0])
        ordered.sort(key=lambda item: item[1].latest.recency, reverse=True)
        return [visitor.to_record() for _key, visitor in ordered]
