"""Dimension and metric names, and row unpacking for report results."""

import logging
from dataclasses import dataclass
from typing import Sequence

from visitor_insights_mcp.core.exceptions import DataError, SchemaMismatch
from visitor_insights_mcp.models.report import ReportQuery, ReportRow

logger = logging.getLogger(__name__)

# Dimensions
DATE = "date"
HOUR = "hour"
LANDING_PAGE = "landingPage"
PAGE_PATH = "pagePath"
PAGE_TITLE = "pageTitle"
BROWSER = "browser"
COUNTRY = "country"
REGION = "region"
CITY = "city"
VISITOR_CLASS = "newVsReturning"
SESSION_SOURCE = "sessionSource"
DEVICE_CATEGORY = "deviceCategory"
OPERATING_SYSTEM = "operatingSystem"
OPERATING_SYSTEM_VERSION = "operatingSystemVersion"
SCREEN_RESOLUTION = "screenResolution"
DEVICE_BRAND = "mobileDeviceBranding"
DEVICE_MODEL = "mobileDeviceModel"
EVENT_NAME = "eventName"

# Metrics
SESSIONS = "sessions"
PAGE_VIEWS = "screenPageViews"
AVG_SESSION_DURATION = "averageSessionDuration"
ENGAGEMENT_DURATION = "userEngagementDuration"
ENGAGED_SESSIONS = "engagedSessions"
BOUNCE_RATE = "bounceRate"
ENGAGEMENT_RATE = "engagementRate"
ACTIVE_USERS = "activeUsers"
EVENT_COUNT = "eventCount"

# Values the source reports when a dimension has no value
UNSET_VALUES = frozenset({"", "(not set)"})


def is_unset(value: str) -> bool:
    return value in UNSET_VALUES


@dataclass(frozen=True)
class BoundRow:
    """A report row with its values bound to dimension and metric names."""

    dimensions: dict[str, str]
    metrics: dict[str, str]

    def dim(self, name: str, default: str = "") -> str:
        return self.dimensions.get(name, default)

    def int_metric(self, name: str) -> int:
        return int(self.float_metric(name))

    def float_metric(self, name: str) -> float:
        raw = self.metrics.get(name, "0")
        if raw == "":
            return 0.0
        try:
            return float(raw)
        except ValueError:
            raise DataError(f"Metric '{name}' has non-numeric value '{raw}'")


def unpack_row(
    row: ReportRow,
    dimensions: Sequence[str],
    metrics: Sequence[str],
) -> BoundRow:
    """Bind a row's positional values to the names that were requested.

    Raises:
        SchemaMismatch: If the row carries a different number of dimension
            or metric values than the query requested
    """
    if len(row.dimension_values) != len(dimensions) or len(row.metric_values) != len(
        metrics
    ):
        raise SchemaMismatch(
            expected_dimensions=len(dimensions),
            actual_dimensions=len(row.dimension_values),
            expected_metrics=len(metrics),
            actual_metrics=len(row.metric_values),
        )
    return BoundRow(
        dimensions=dict(zip(dimensions, row.dimension_values)),
        metrics=dict(zip(metrics, row.metric_values)),
    )


def unpack_rows(rows: Sequence[ReportRow], query: ReportQuery) -> list[BoundRow]:
    """Unpack every row of a query's result."""
    return [unpack_row(row, query.dimensions, query.metrics) for row in rows]
