"""Daily new vs returning visitor trend."""

from typing import Sequence

from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.rows import unpack_row
from visitor_insights_mcp.models.report import DateRange, OrderSpec, ReportQuery, ReportRow
from visitor_insights_mcp.models.visitor import DailyTrendPoint

TREND_DIMENSIONS = (names.DATE, names.VISITOR_CLASS)
TREND_METRICS = (names.ACTIVE_USERS,)

NEW_VISITOR = "new"
RETURNING_VISITOR = "returning"


def build_trend_query(date_range: DateRange) -> ReportQuery:
    return ReportQuery(
        date_range=date_range,
        dimensions=TREND_DIMENSIONS,
        metrics=TREND_METRICS,
        order_by=(OrderSpec(field=names.DATE),),
        label="daily_visitor_trend",
    )


def fold_daily_trend(rows: Sequence[ReportRow]) -> list[DailyTrendPoint]:
    """Fold (date, visitor class) rows into one point per date, oldest first.

    Visitor classes other than new and returning count toward the total only.
    """
    points: dict[str, DailyTrendPoint] = {}

    for raw in rows:
        row = unpack_row(raw, TREND_DIMENSIONS, TREND_METRICS)
        date = row.dim(names.DATE)
        users = row.int_metric(names.ACTIVE_USERS)

        point = points.get(date)
        if point is None:
            point = points[date] = DailyTrendPoint(date=date)

        visitor_class = row.dim(names.VISITOR_CLASS).lower()
        if visitor_class == NEW_VISITOR:
            point.new += users
        elif visitor_class == RETURNING_VISITOR:
            point.returning += users
        point.total += users

    return [points[date] for date in sorted(points)]
