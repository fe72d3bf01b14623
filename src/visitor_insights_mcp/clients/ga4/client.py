"""GA4 Data API client.

This module answers dimensional report queries from the GA4 Data API and
is the production implementation of the engine's query adapter.
"""

import asyncio
import logging
import time

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import DateRange as GA4DateRange
from google.analytics.data_v1beta.types import (
    Dimension,
    Filter,
    FilterExpression,
    FilterExpressionList,
    Metric,
    OrderBy,
    RunReportRequest,
)
from google.api_core.exceptions import (
    DeadlineExceeded,
    GoogleAPIError,
    TooManyRequests,
)

from visitor_insights_mcp.clients.ga4.auth import GA4Authenticator
from visitor_insights_mcp.core.config import GA4Config
from visitor_insights_mcp.core.exceptions import (
    AdapterUnavailable,
    APIError,
    QueryTimeoutError,
    RateLimitError,
)
from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.models.report import (
    FilterClause,
    MatchType,
    OrderSpec,
    ReportQuery,
    ReportRow,
)

logger = logging.getLogger(__name__)

_STRING_MATCH_TYPES = {
    MatchType.EXACT: Filter.StringFilter.MatchType.EXACT,
    MatchType.CONTAINS: Filter.StringFilter.MatchType.CONTAINS,
    MatchType.BEGINS_WITH: Filter.StringFilter.MatchType.BEGINS_WITH,
    MatchType.FULL_REGEXP: Filter.StringFilter.MatchType.FULL_REGEXP,
}


class GA4DataClient(QueryAdapter):
    """Client for GA4 Data API report queries."""

    def __init__(
        self,
        config: GA4Config,
        authenticator: GA4Authenticator | None = None,
    ):
        """Initialize the GA4 Data API client.

        Args:
            config: GA4 configuration
            authenticator: Optional authenticator, built from config when omitted

        Raises:
            AdapterUnavailable: If GA4 is disabled or has no property configured
        """
        if not config.enabled or not config.property_id:
            raise AdapterUnavailable(
                "GA4 is not configured. Set VIS_GA4__ENABLED=true and "
                "VIS_GA4__PROPERTY_ID."
            )

        self.config = config
        self.authenticator = authenticator or GA4Authenticator(config)
        self._client: BetaAnalyticsDataClient | None = None
        self._request_count = 0
        self._last_request_time = 0.0
        self._rate_limit_lock = asyncio.Lock()

    @property
    def client(self) -> BetaAnalyticsDataClient:
        """Get the authenticated GA4 client."""
        if self._client is None:
            self._client = self.authenticator.get_client()
        return self._client

    async def run_query(self, query: ReportQuery) -> list[ReportRow]:
        """Run a report query against the configured GA4 property.

        Raises:
            QueryBudgetExceeded: If the query exceeds the dimensions+filters cap
            RateLimitError: If GA4 quota is exhausted
            QueryTimeoutError: If GA4 does not answer before the deadline
            APIError: For any other GA4 API failure
        """
        self.check_budget(query)
        request = self.build_request(query)

        await self._check_rate_limits()

        logger.info(
            f"Running GA4 '{query.label}' report for property {self.config.property_id} "
            f"from {query.date_range.start_date} to {query.date_range.end_date}"
        )

        try:
            response = await asyncio.to_thread(
                self.client.run_report,
                request,
                timeout=self.config.request_timeout_seconds,
            )
        except TooManyRequests as e:
            logger.warning(f"GA4 API rate limit exceeded: {e}")
            raise RateLimitError(f"GA4 API rate limit exceeded: {e}")
        except DeadlineExceeded as e:
            logger.warning(f"GA4 '{query.label}' report timed out: {e}")
            raise QueryTimeoutError(f"GA4 report '{query.label}' timed out: {e}")
        except GoogleAPIError as e:
            logger.error(f"GA4 API error: {e}")
            raise APIError(f"GA4 report '{query.label}' failed: {e}")
        finally:
            self._track_request()

        return self._format_response(response)

    def build_request(self, query: ReportQuery) -> RunReportRequest:
        """Translate a report query into a GA4 RunReportRequest."""
        request = RunReportRequest(
            property=f"properties/{self.config.property_id}",
            date_ranges=[
                GA4DateRange(
                    start_date=query.date_range.start_date,
                    end_date=query.date_range.end_date,
                )
            ],
            dimensions=[Dimension(name=dim) for dim in query.dimensions],
            metrics=[Metric(name=metric) for metric in query.metrics],
            limit=query.limit,
        )

        if query.filters:
            request.dimension_filter = self._build_filter_expression(query.filters)

        if query.order_by:
            request.order_bys = [self._build_order_by(spec) for spec in query.order_by]

        return request

    def _build_filter_expression(
        self, filters: tuple[FilterClause, ...]
    ) -> FilterExpression:
        """Build a GA4 filter expression, AND-combining multiple clauses."""
        filter_expressions = [
            FilterExpression(filter=self._build_filter(clause)) for clause in filters
        ]

        if len(filter_expressions) == 1:
            return filter_expressions[0]
        return FilterExpression(
            and_group=FilterExpressionList(
                expressions=filter_expressions
            )
        )

    @staticmethod
    def _build_filter(clause: FilterClause) -> Filter:
        if clause.match_type == MatchType.IN_LIST:
            return Filter(
                field_name=clause.field,
                in_list_filter=Filter.InListFilter(
                    values=list(clause.values),
                    case_sensitive=clause.case_sensitive,
                ),
            )
        return Filter(
            field_name=clause.field,
            string_filter=Filter.StringFilter(
                value=clause.value,
                match_type=_STRING_MATCH_TYPES[clause.match_type],
                case_sensitive=clause.case_sensitive,
            ),
        )

    @staticmethod
    def _build_order_by(spec: OrderSpec) -> OrderBy:
        if spec.is_metric:
            return OrderBy(
                metric=OrderBy.MetricOrderBy(metric_name=spec.field), desc=spec.desc
            )
        return OrderBy(
            dimension=OrderBy.DimensionOrderBy(dimension_name=spec.field),
            desc=spec.desc,
        )

    @staticmethod
    def _format_response(response) -> list[ReportRow]:
        """Convert a GA4 response into positionally aligned rows."""
        return [
            ReportRow(
                dimension_values=tuple(value.value for value in row.dimension_values),
                metric_values=tuple(value.value for value in row.metric_values),
            )
            for row in response.rows
        ]

    async def _check_rate_limits(self) -> None:
        """Check and enforce rate limits for GA4 API requests.

        Concurrent callers are serialized so each one reserves its own slot.
        """
        if not self.config.enable_rate_limiting:
            return

        async with self._rate_limit_lock:
            min_interval = 60.0 / self.config.requests_per_minute
            time_since_last = time.time() - self._last_request_time

            if time_since_last < min_interval:
                sleep_time = min_interval - time_since_last
                logger.info(f"Rate limiting: sleeping {sleep_time:.2f}s")
                await asyncio.sleep(sleep_time)

            self._last_request_time = time.time()

    def _track_request(self) -> None:
        self._request_count += 1

        logger.debug(f"GA4 API request #{self._request_count} completed")
