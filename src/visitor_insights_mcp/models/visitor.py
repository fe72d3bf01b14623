"""Reconstructed visitor models returned by the engine."""

from pydantic import BaseModel, Field


class VisitorRecord(BaseModel):
    """One pseudo-visitor folded from every row sharing a stable identity.

    The stable identity (country, region, city, browser) is a heuristic:
    distinct people sharing those attributes are merged, and one person
    switching browsers is split.
    """

    visitor_id: str = Field(..., description="Encoded identity key")
    country: str
    region: str
    city: str
    browser: str

    # Trailing fields reflect the most recently observed row
    last_seen_date: str = Field(..., description="YYYYMMDD of the most recent row")
    last_seen_hour: str = Field(..., description="Zero-padded hour of the most recent row")
    landing_page: str = ""
    referrer: str = ""
    visitor_class: str = ""

    sessions: int = 0
    page_views: int = 0
    engagement_duration: float = Field(
        default=0.0, description="Total user engagement duration in seconds"
    )
    engaged_sessions: int = 0
    active_users: int = 0
    avg_session_duration: float = Field(
        default=0.0, description="Unweighted mean of per-row average session durations"
    )
    bounce_rate: float = Field(
        default=0.0, ge=0.0, le=1.0, description="(sessions - engaged) / sessions"
    )
    row_count: int = Field(default=0, description="Number of raw rows folded in")


class PowerUserRecord(BaseModel):
    """A visitor grouped without date, hour or landing page, seen often enough."""

    visitor_id: str = Field(..., description="Encoded identity key of the latest row")
    country: str
    region: str
    city: str
    browser: str
    visitor_class: str
    referrer: str

    first_visit: str = Field(..., description="Earliest YYYYMMDD observed")
    last_visit: str = Field(..., description="Latest YYYYMMDD observed")
    unique_days: int = Field(..., description="Distinct calendar dates observed")

    total_sessions: int = 0
    total_page_views: int = 0
    engagement_duration: float = 0.0
    engaged_sessions: int = 0
    bounced_sessions: int = Field(
        default=0, description="Sum of per-row sessions x bounce rate, rounded"
    )
    avg_session_duration: float = 0.0
    bounce_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    row_count: int = 0


class DeviceInfo(BaseModel):
    """Device and technology details for a visitor."""

    category: str = "N/A"
    operating_system: str = "N/A"
    operating_system_version: str = "N/A"
    browser: str = "N/A"
    screen_resolution: str = "N/A"
    brand: str = "N/A"
    model: str = "N/A"


class LocationInfo(BaseModel):
    """Geographic details for a visitor."""

    country: str = "N/A"
    region: str = "N/A"
    city: str = "N/A"


class SessionEntry(BaseModel):
    """One row of the sessions sub-report."""

    date: str
    hour: str
    visitor_class: str = "N/A"
    source: str = "N/A"
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    location: LocationInfo = Field(default_factory=LocationInfo)
    sessions: int = 0
    page_views: int = 0
    avg_duration: float = 0.0
    engaged_sessions: int = 0
    bounce_rate: float = 0.0
    event_count: int = 0

    @property
    def engaged(self) -> bool:
        return self.engaged_sessions > 0


class EventEntry(BaseModel):
    """A named event observed for a visitor."""

    name: str
    date: str
    page_path: str
    count: int = 0


class PageVisit(BaseModel):
    """A page seen during a visitor's sessions."""

    path: str
    title: str = ""
    date: str
    hour: str
    views: int = 0
    engagement_duration: float = 0.0
    avg_session_duration: float = 0.0
    time_on_page: float = Field(
        default=0.0, description="Engagement duration per view, 0 without views"
    )
    scroll_percentage: int = Field(default=0, ge=0, le=100)
    clicks: int = 0
    event_count: int = 0
    events: list[EventEntry] = Field(default_factory=list)


class DetailSummary(BaseModel):
    """Totals computed over a visitor detail."""

    total_sessions: int = 0
    total_page_views: int = 0
    total_events: int = 0
    avg_session_duration: float = 0.0


class VisitorDetail(BaseModel):
    """Timeline expansion of one identity key."""

    visitor_id: str
    date: str
    hour: str
    country: str
    region: str
    city: str
    browser: str
    visitor_class: str
    referrer: str
    listed_landing_page: str = Field(
        default="", description="Landing page carried in the identity key"
    )
    actual_landing_page: str = Field(
        default="", description="Earliest page in the pageviews sub-report"
    )
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    sessions: list[SessionEntry] = Field(default_factory=list)
    page_visits: list[PageVisit] = Field(default_factory=list)
    events: list[EventEntry] = Field(default_factory=list)
    summary: DetailSummary = Field(default_factory=DetailSummary)
    strategies: dict[str, str | None] = Field(
        default_factory=dict,
        description="Variant that answered each fallback chain, None when all failed",
    )


class DailyTrendPoint(BaseModel):
    """New versus returning active users for one day."""

    date: str
    new: int = 0
    returning: int = 0
    total: int = 0


class SessionOverview(BaseModel):
    """Site-wide session totals for a date range."""

    sessions: int = 0
    active_users: int = 0
    engaged_sessions: int = 0
    engaged_users: int = 0
    engaged_users_strategy: str | None = None
    average_session_duration: float = 0.0
    bounce_rate: float = 0.0
    engagement_rate: float = 0.0
    sessions_per_active_user: float = 0.0
    engaged_sessions_per_active_user: float = 0.0
