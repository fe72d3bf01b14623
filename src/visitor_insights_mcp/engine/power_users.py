"""Identify repeat visitors across a date range."""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.identity import IdentityKey, join_key, normalize_hour
from visitor_insights_mcp.engine.metrics import (
    approximate_bounced_sessions,
    mean_duration,
    safe_ratio,
)
from visitor_insights_mcp.engine.rows import BoundRow, unpack_row
from visitor_insights_mcp.models.report import ReportRow
from visitor_insights_mcp.models.visitor import PowerUserRecord

logger = logging.getLogger(__name__)

POWER_USER_DIMENSIONS = (
    names.DATE,
    names.HOUR,
    names.COUNTRY,
    names.REGION,
    names.CITY,
    names.BROWSER,
    names.VISITOR_CLASS,
    names.SESSION_SOURCE,
)
POWER_USER_METRICS = (
    names.SESSIONS,
    names.PAGE_VIEWS,
    names.AVG_SESSION_DURATION,
    names.ENGAGEMENT_DURATION,
    names.ENGAGED_SESSIONS,
    names.BOUNCE_RATE,
)


@dataclass
class _RepeatVisitor:
    latest: IdentityKey
    first_visit: str
    last_visit: str
    days: set[str] = field(default_factory=set)
    sessions: int = 0
    page_views: int = 0
    engagement_duration: float = 0.0
    engaged_sessions: int = 0
    bounced_sessions: int = 0
    durations: list[float] = field(default_factory=list)
    row_count: int = 0

    def add(self, row: BoundRow, identity: IdentityKey) -> None:
        sessions = row.int_metric(names.SESSIONS)
        self.sessions += sessions
        self.page_views += row.int_metric(names.PAGE_VIEWS)
        self.engagement_duration += row.float_metric(names.ENGAGEMENT_DURATION)
        self.engaged_sessions += min(row.int_metric(names.ENGAGED_SESSIONS), sessions)
        self.bounced_sessions += approximate_bounced_sessions(
            sessions, row.float_metric(names.BOUNCE_RATE)
        )
        self.durations.append(row.float_metric(names.AVG_SESSION_DURATION))
        self.row_count += 1

        self.days.add(identity.date)
        self.first_visit = min(self.first_visit, identity.date)
        self.last_visit = max(self.last_visit, identity.date)
        if identity.recency > self.latest.recency:
            self.latest = identity

    def to_record(self) -> PowerUserRecord:
        latest = self.latest
        return PowerUserRecord(
            visitor_id=latest.encode(),
            country=latest.country,
            region=latest.region,
            city=latest.city,
            browser=latest.browser,
            visitor_class=latest.visitor_class,
            referrer=latest.referrer,
            first_visit=self.first_visit,
            last_visit=self.last_visit,
            unique_days=len(self.days),
            total_sessions=self.sessions,
            total_page_views=self.page_views,
            engagement_duration=self.engagement_duration,
            engaged_sessions=self.engaged_sessions,
            bounced_sessions=self.bounced_sessions,
            avg_session_duration=mean_duration(self.durations),
            bounce_rate=min(1.0, safe_ratio(self.bounced_sessions, self.sessions)),
            row_count=self.row_count,
        )


class PowerUserClassifier:
    """Groups rows by a coarse identity and keeps visitors with many sessions.

    The coarse identity adds visitor class and referrer to the stable subset,
    so one person arriving from two sources is counted as two visitors.
    """

    def __init__(self, min_sessions: int = 3):
        self.min_sessions = min_sessions

    def classify(
        self,
        rows: Sequence[ReportRow],
        dimensions: Sequence[str] = POWER_USER_DIMENSIONS,
        metrics: Sequence[str] = POWER_USER_METRICS,
    ) -> list[PowerUserRecord]:
        """Return repeat visitors with at least ``min_sessions`` sessions.

        Raises:
            SchemaMismatch: If any row does not match the requested shape
        """
        visitors: dict[str, _RepeatVisitor] = {}

        for index, raw in enumerate(rows):
            row = unpack_row(raw, dimensions, metrics)
            identity = IdentityKey(
                date=row.dim(names.DATE),
                hour=normalize_hour(row.dim(names.HOUR)),
                landing_page="",
                browser=row.dim(names.BROWSER),
                country=row.dim(names.COUNTRY),
                region=row.dim(names.REGION),
                city=row.dim(names.CITY),
                visitor_class=row.dim(names.VISITOR_CLASS),
                referrer=row.dim(names.SESSION_SOURCE),
                row_index=index,
            )
            key = join_key(
                identity.country,
                identity.region,
                identity.city,
                identity.browser,
                identity.visitor_class,
                identity.referrer,
            )

            visitor = visitors.get(key)
            if visitor is None:
                visitor = visitors[key] = _RepeatVisitor(
                    latest=identity,
                    first_visit=identity.date,
                    last_visit=identity.date,
                )
            visitor.add(row, identity)

        qualified = [
            (key, visitor)
            for key, visitor in visitors.items()
            if visitor.sessions >= self.min_sessions
        ]
        logger.debug(
            f"{len(qualified)} of {len(visitors)} visitors have at least "
            f"{self.min_sessions} sessions"
        )

        qualified.sort(key=lambda item: item[0])
        qualified.sort(key=lambda item: item[1].sessions, reverse=True)
        return [visitor.to_record() for _key, visitor in qualified]
