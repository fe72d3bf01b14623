"""Expand one identity key into a detailed visitor view.

The identity key is decoded into filter predicates and several sub-queries
are issued against the analytics source. Only the sessions sub-query is
required; device, page view, scroll depth, click and event sub-queries are
enrichments whose failure leaves the matching part of the result empty.
Every sub-query stays within the source's dimensions+filters cap by
trimming its dimension list to what the filters leave over. An enrichment
the filters leave no room for is skipped.
"""

import asyncio
import logging
import re
from collections import defaultdict
from typing import Sequence

from visitor_insights_mcp.core.exceptions import (
    APIError,
    QueryBudgetExceeded,
    SecondaryQueryFailed,
)
from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.fallback import (
    ChainResult,
    FallbackChain,
    QueryVariant,
)
from visitor_insights_mcp.engine.identity import (
    IdentityKey,
    decode_identity_key,
    normalize_hour,
)
from visitor_insights_mcp.engine.metrics import mean_duration, safe_ratio
from visitor_insights_mcp.engine.rows import BoundRow, is_unset, unpack_rows
from visitor_insights_mcp.models.report import (
    DateRange,
    FilterClause,
    MatchType,
    OrderSpec,
    ReportQuery,
)
from visitor_insights_mcp.models.visitor import (
    DetailSummary,
    DeviceInfo,
    EventEntry,
    LocationInfo,
    PageVisit,
    SessionEntry,
    VisitorDetail,
)

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"
DESKTOP_PLACEHOLDER = "N/A (Desktop)"

# Event names like "scroll", "scroll_90" or "scroll90"
SCROLL_EVENT_PATTERN = r"scroll(_?\d+)?"
BARE_SCROLL_PERCENTAGE = 90
_PERCENTAGE = re.compile(r"([0-9]+)")

SESSION_DIMENSIONS = (
    names.BROWSER,
    names.DEVICE_CATEGORY,
    names.OPERATING_SYSTEM,
    names.SESSION_SOURCE,
    names.CITY,
    names.REGION,
)
SESSION_METRICS = (
    names.SESSIONS,
    names.PAGE_VIEWS,
    names.AVG_SESSION_DURATION,
    names.ENGAGED_SESSIONS,
    names.BOUNCE_RATE,
    names.EVENT_COUNT,
)
FULL_DEVICE_DIMENSIONS = (
    names.SCREEN_RESOLUTION,
    names.DEVICE_BRAND,
    names.DEVICE_MODEL,
    names.OPERATING_SYSTEM_VERSION,
    names.DEVICE_CATEGORY,
    names.OPERATING_SYSTEM,
)
DESKTOP_DEVICE_DIMENSIONS = (
    names.SCREEN_RESOLUTION,
    names.OPERATING_SYSTEM_VERSION,
    names.DEVICE_CATEGORY,
    names.OPERATING_SYSTEM,
)
DEVICE_METRICS = (names.SESSIONS,)
PAGE_VIEW_DIMENSIONS = (names.PAGE_PATH, names.PAGE_TITLE, names.DATE, names.HOUR)
PAGE_VIEW_METRICS = (
    names.PAGE_VIEWS,
    names.ENGAGEMENT_DURATION,
    names.AVG_SESSION_DURATION,
    names.EVENT_COUNT,
)
PAGE_EVENT_DIMENSIONS = (names.PAGE_PATH, names.EVENT_NAME)
EVENT_DIMENSIONS = (names.EVENT_NAME, names.DATE, names.PAGE_PATH)
EVENT_METRICS = (names.EVENT_COUNT,)


def scroll_percentage(event_name: str) -> int | None:
    """Scroll depth encoded in an event name, if any.

    Digits in the name are the percentage; a bare ``scroll`` event is the
    source's default 90% threshold.
    """
    match = _PERCENTAGE.search(event_name)
    if match:
        value = int(match.group(1))
    elif event_name.lower() == "scroll":
        value = BARE_SCROLL_PERCENTAGE
    else:
        return None
    return value if 0 < value <= 100 else None


def identity_filters(identity: IdentityKey) -> tuple[FilterClause, ...]:
    """Filter predicates that pin a query to one identity key's session."""
    filters = [
        FilterClause(field=names.DATE, value=identity.date),
        FilterClause(field=names.HOUR, value=normalize_hour(identity.hour)),
    ]
    if not is_unset(identity.landing_page):
        filters.append(
            FilterClause(field=names.LANDING_PAGE, value=identity.landing_page)
        )
    filters.append(FilterClause(field=names.COUNTRY, value=identity.country))
    if identity.visitor_class:
        filters.append(
            FilterClause(field=names.VISITOR_CLASS, value=identity.visitor_class)
        )
    return tuple(filters)


def _unique(values: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(values))


class VisitorDetailExpander:
    """Runs the sub-queries behind a single visitor's detail view."""

    def __init__(
        self,
        adapter: QueryAdapter,
        max_query_terms: int = 9,
        row_limit: int = 100,
    ):
        self.adapter = adapter
        self.max_query_terms = max_query_terms
        self.row_limit = row_limit

    def fit_dimensions(
        self,
        preferred: Sequence[str],
        filters: Sequence[FilterClause],
        label: str,
        required: int = 1,
    ) -> tuple[str, ...]:
        """Trim a preferred dimension list to the budget the filters leave.

        Raises:
            QueryBudgetExceeded: If fewer than ``required`` dimensions fit
        """
        budget = self.max_query_terms - len(filters)
        if budget < required:
            raise QueryBudgetExceeded(label, len(filters) + required, self.max_query_terms)
        return tuple(preferred[:budget])

    def _query(
        self,
        date_range: DateRange,
        preferred: Sequence[str],
        metrics: Sequence[str],
        filters: Sequence[FilterClause],
        label: str,
        order_by: Sequence[OrderSpec] = (),
        limit: int | None = None,
        required: int = 1,
    ) -> ReportQuery:
        return ReportQuery(
            date_range=date_range,
            dimensions=self.fit_dimensions(preferred, filters, label, required),
            metrics=tuple(metrics),
            filters=tuple(filters),
            order_by=tuple(order_by),
            limit=limit or self.row_limit,
            label=label,
        )

    def _optional_query(self, *args, **kwargs) -> ReportQuery | None:
        """Build an enrichment query, or None when the filters leave no room."""
        try:
            return self._query(*args, **kwargs)
        except QueryBudgetExceeded as e:
            logger.warning(f"Skipping enrichment: {e}")
            return None

    async def _run_chain(
        self, label: str, variants: Sequence[tuple[str, ReportQuery | None]]
    ) -> ChainResult | None:
        fitting = [
            QueryVariant(name, query) for name, query in variants if query is not None
        ]
        if not fitting:
            return None
        try:
            return await FallbackChain(label, fitting).run(self.adapter)
        except SecondaryQueryFailed as e:
            logger.warning(f"Enrichment '{label}' unavailable: {e}")
            return None

    async def expand(self, visitor_id: str, date_range: DateRange) -> VisitorDetail:
        """Build the detail view for one identity key.

        Raises:
            MalformedIdentityKey: If the key cannot be decoded
            APIError: If the sessions sub-query fails
            SchemaMismatch: If any sub-query returns rows of the wrong shape
        """
        identity = decode_identity_key(visitor_id)
        filters = identity_filters(identity)

        logger.info(
            f"Expanding visitor {identity.stable.key} seen {identity.date} "
            f"hour {identity.hour} with {len(filters)} filters"
        )

        tasks = [
            asyncio.create_task(self._sessions(identity, date_range, filters)),
            asyncio.create_task(self._device(identity, date_range, filters)),
            asyncio.create_task(self._page_activity(date_range, filters)),
            asyncio.create_task(self._clicks(date_range, filters)),
            asyncio.create_task(self._events(date_range, filters)),
        ]
        try:
            sessions_rows, device, page_activity, clicks, events = await asyncio.gather(
                *tasks
            )
        except BaseException:
            # Cancel enrichments still in flight when the sessions query fails
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        device_info, device_strategy = device
        page_rows, scroll_by_path, scroll_strategy = page_activity

        if device_info.category == NOT_AVAILABLE and sessions_rows:
            first = sessions_rows[0]
            device_info.category = first.dim(names.DEVICE_CATEGORY, NOT_AVAILABLE)
            device_info.operating_system = first.dim(
                names.OPERATING_SYSTEM, NOT_AVAILABLE
            )

        sessions = [
            self._session_entry(identity, row, device_info) for row in sessions_rows
        ]

        events_by_path: dict[str, list[EventEntry]] = defaultdict(list)
        for event in events:
            events_by_path[event.page_path].append(event)

        page_visits = []
        for row in page_rows:
            path = row.dim(names.PAGE_PATH)
            views = row.int_metric(names.PAGE_VIEWS)
            engagement = row.float_metric(names.ENGAGEMENT_DURATION)
            page_visits.append(
                PageVisit(
                    path=path,
                    title=row.dim(names.PAGE_TITLE),
                    date=row.dim(names.DATE, identity.date),
                    hour=normalize_hour(row.dim(names.HOUR, identity.hour)),
                    views=views,
                    engagement_duration=engagement,
                    avg_session_duration=row.float_metric(names.AVG_SESSION_DURATION),
                    time_on_page=safe_ratio(engagement, views),
                    scroll_percentage=scroll_by_path.get(path, 0),
                    clicks=clicks.get(path, 0),
                    event_count=row.int_metric(names.EVENT_COUNT),
                    events=events_by_path.get(path, []),
                )
            )

        summary = DetailSummary(
            total_sessions=len(sessions),
            total_page_views=sum(visit.views for visit in page_visits),
            total_events=sum(event.count for event in events),
            avg_session_duration=mean_duration(entry.avg_duration for entry in sessions),
        )

        return VisitorDetail(
            visitor_id=visitor_id,
            date=identity.date,
            hour=identity.hour,
            country=identity.country,
            region=identity.region,
            city=identity.city,
            browser=identity.browser,
            visitor_class=identity.visitor_class,
            referrer=identity.referrer,
            listed_landing_page=identity.landing_page,
            actual_landing_page=page_visits[0].path if page_visits else "",
            device=device_info,
            sessions=sessions,
            page_visits=page_visits,
            events=events,
            summary=summary,
            strategies={"device": device_strategy, "scroll_depth": scroll_strategy},
        )

    def _session_entry(
        self, identity: IdentityKey, row: BoundRow, device: DeviceInfo
    ) -> SessionEntry:
        return SessionEntry(
            date=identity.date,
            hour=identity.hour,
            visitor_class=identity.visitor_class or NOT_AVAILABLE,
            source=row.dim(names.SESSION_SOURCE, identity.referrer or NOT_AVAILABLE),
            device=device.model_copy(
                update={
                    "category": row.dim(names.DEVICE_CATEGORY, device.category),
                    "operating_system": row.dim(
                        names.OPERATING_SYSTEM, device.operating_system
                    ),
                    "browser": row.dim(names.BROWSER, identity.browser),
                }
            ),
            location=LocationInfo(
                country=identity.country,
                region=row.dim(names.REGION, identity.region or NOT_AVAILABLE),
                city=row.dim(names.CITY, identity.city or NOT_AVAILABLE),
            ),
            sessions=row.int_metric(names.SESSIONS),
            page_views=row.int_metric(names.PAGE_VIEWS),
            avg_duration=row.float_metric(names.AVG_SESSION_DURATION),
            engaged_sessions=row.int_metric(names.ENGAGED_SESSIONS),
            bounce_rate=row.float_metric(names.BOUNCE_RATE),
            event_count=row.int_metric(names.EVENT_COUNT),
        )

    async def _sessions(
        self,
        identity: IdentityKey,
        date_range: DateRange,
        filters: tuple[FilterClause, ...],
    ) -> list[BoundRow]:
        query = self._query(
            date_range,
            SESSION_DIMENSIONS,
            SESSION_METRICS,
            filters,
            label="visitor_sessions",
            required=0,
        )
        rows = await self.adapter.run_query(query)
        return unpack_rows(rows, query)

    async def _device(
        self,
        identity: IdentityKey,
        date_range: DateRange,
        filters: tuple[FilterClause, ...],
    ) -> tuple[DeviceInfo, str | None]:
        ordering = (OrderSpec(field=names.SESSIONS, desc=True, is_metric=True),)
        result = await self._run_chain(
            "visitor_device",
            [
                (
                    "full",
                    self._optional_query(
                        date_range,
                        FULL_DEVICE_DIMENSIONS,
                        DEVICE_METRICS,
                        filters,
                        label="visitor_device_full",
                        order_by=ordering,
                        limit=1,
                    ),
                ),
                (
                    "desktop",
                    self._optional_query(
                        date_range,
                        DESKTOP_DEVICE_DIMENSIONS,
                        DEVICE_METRICS,
                        filters,
                        label="visitor_device_desktop",
                        order_by=ordering,
                        limit=1,
                    ),
                ),
            ],
        )
        if result is None:
            return DeviceInfo(browser=identity.browser), None

        bound = unpack_rows(result.rows, result.query)
        if not bound:
            return DeviceInfo(browser=identity.browser), result.variant

        row = bound[0]
        mobile_default = DESKTOP_PLACEHOLDER if result.variant == "desktop" else NOT_AVAILABLE
        return (
            DeviceInfo(
                category=row.dim(names.DEVICE_CATEGORY, NOT_AVAILABLE),
                operating_system=row.dim(names.OPERATING_SYSTEM, NOT_AVAILABLE),
                operating_system_version=row.dim(
                    names.OPERATING_SYSTEM_VERSION, NOT_AVAILABLE
                ),
                browser=identity.browser,
                screen_resolution=row.dim(names.SCREEN_RESOLUTION, NOT_AVAILABLE),
                brand=row.dim(names.DEVICE_BRAND, mobile_default),
                model=row.dim(names.DEVICE_MODEL, mobile_default),
            ),
            result.variant,
        )

    async def _page_activity(
        self, date_range: DateRange, filters: tuple[FilterClause, ...]
    ) -> tuple[list[BoundRow], dict[str, int], str | None]:
        page_rows = await self._page_views(date_range, filters)
        paths = _unique([row.dim(names.PAGE_PATH) for row in page_rows])
        scroll_by_path, strategy = await self._scroll_depth(date_range, filters, paths)
        return page_rows, scroll_by_path, strategy

    async def _page_views(
        self, date_range: DateRange, filters: tuple[FilterClause, ...]
    ) -> list[BoundRow]:
        query = self._optional_query(
            date_range,
            PAGE_VIEW_DIMENSIONS,
            PAGE_VIEW_METRICS,
            filters,
            label="visitor_page_views",
            order_by=(OrderSpec(field=names.DATE), OrderSpec(field=names.HOUR)),
        )
        if query is None:
            return []
        try:
            rows = await self.adapter.run_query(query)
        except APIError as e:
            logger.warning(f"Page views unavailable: {e}")
            return []
        return unpack_rows(rows, query)

    async def _scroll_depth(
        self,
        date_range: DateRange,
        filters: tuple[FilterClause, ...],
        paths: list[str],
    ) -> tuple[dict[str, int], str | None]:
        if not paths:
            return {}, None

        page_filter = FilterClause(
            field=names.PAGE_PATH, match_type=MatchType.IN_LIST, values=tuple(paths)
        )
        pattern_filters = filters + (
            page_filter,
            FilterClause(
                field=names.EVENT_NAME,
                match_type=MatchType.FULL_REGEXP,
                value=SCROLL_EVENT_PATTERN,
            ),
        )
        contains_filters = filters + (
            page_filter,
            FilterClause(
                field=names.EVENT_NAME, match_type=MatchType.CONTAINS, value="scroll"
            ),
        )
        result = await self._run_chain(
            "visitor_scroll_depth",
            [
                (
                    "scroll-pattern",
                    self._optional_query(
                        date_range,
                        PAGE_EVENT_DIMENSIONS,
                        EVENT_METRICS,
                        pattern_filters,
                        label="visitor_scroll_pattern",
                        required=2,
                    ),
                ),
                (
                    "scroll-contains",
                    self._optional_query(
                        date_range,
                        PAGE_EVENT_DIMENSIONS,
                        EVENT_METRICS,
                        contains_filters,
                        label="visitor_scroll_contains",
                        required=2,
                    ),
                ),
            ],
        )
        if result is None:
            return {}, None

        depth: dict[str, int] = {}
        for row in unpack_rows(result.rows, result.query):
            percentage = scroll_percentage(row.dim(names.EVENT_NAME))
            if percentage is None:
                continue
            path = row.dim(names.PAGE_PATH)
            depth[path] = max(depth.get(path, 0), percentage)
        return depth, result.variant

    async def _clicks(
        self, date_range: DateRange, filters: tuple[FilterClause, ...]
    ) -> dict[str, int]:
        click_filters = filters + (
            FilterClause(
                field=names.EVENT_NAME, match_type=MatchType.CONTAINS, value="click"
            ),
        )
        query = self._optional_query(
            date_range,
            PAGE_EVENT_DIMENSIONS,
            EVENT_METRICS,
            click_filters,
            label="visitor_clicks",
        )
        if query is None:
            return {}
        try:
            rows = await self.adapter.run_query(query)
        except APIError as e:
            logger.warning(f"Click counts unavailable: {e}")
            return {}

        clicks: dict[str, int] = defaultdict(int)
        for row in unpack_rows(rows, query):
            clicks[row.dim(names.PAGE_PATH)] += row.int_metric(names.EVENT_COUNT)
        return dict(clicks)

    async def _events(
        self, date_range: DateRange, filters: tuple[FilterClause, ...]
    ) -> list[EventEntry]:
        query = self._optional_query(
            date_range,
            EVENT_DIMENSIONS,
            EVENT_METRICS,
            filters,
            label="visitor_events",
            order_by=(OrderSpec(field=names.EVENT_COUNT, desc=True, is_metric=True),),
        )
        if query is None:
            return []
        try:
            rows = await self.adapter.run_query(query)
        except APIError as e:
            logger.warning(f"Events unavailable: {e}")
            return []

        return [
            EventEntry(
                name=row.dim(names.EVENT_NAME),
                date=row.dim(names.DATE),
                page_path=row.dim(names.PAGE_PATH),
                count=row.int_metric(names.EVENT_COUNT),
            )
            for row in unpack_rows(rows, query)
        ]
