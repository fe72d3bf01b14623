"""Data models for Visitor Insights."""

from visitor_insights_mcp.models.report import (
    DateRange,
    FilterClause,
    MatchType,
    OrderSpec,
    ReportQuery,
    ReportRow,
)
from visitor_insights_mcp.models.visitor import (
    DailyTrendPoint,
    DetailSummary,
    DeviceInfo,
    EventEntry,
    LocationInfo,
    PageVisit,
    PowerUserRecord,
    SessionEntry,
    SessionOverview,
    VisitorDetail,
    VisitorRecord,
)

__all__ = [
    "DailyTrendPoint",
    "DateRange",
    "DetailSummary",
    "DeviceInfo",
    "EventEntry",
    "FilterClause",
    "LocationInfo",
    "MatchType",
    "OrderSpec",
    "PageVisit",
    "PowerUserRecord",
    "ReportQuery",
    "ReportRow",
    "SessionEntry",
    "SessionOverview",
    "VisitorDetail",
    "VisitorRecord",
]
