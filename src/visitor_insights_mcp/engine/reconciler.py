"""Backfill missing landing pages from the earliest page view of a session."""

import logging

from visitor_insights_mcp.core.exceptions import APIError
from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.engine import rows as names
from visitor_insights_mcp.engine.identity import decode_identity_key, normalize_hour
from visitor_insights_mcp.engine.rows import is_unset, unpack_rows
from visitor_insights_mcp.models.report import DateRange, OrderSpec, ReportQuery
from visitor_insights_mcp.models.visitor import VisitorRecord

logger = logging.getLogger(__name__)

RECONCILE_DIMENSIONS = (
    names.DATE,
    names.HOUR,
    names.COUNTRY,
    names.REGION,
    names.CITY,
    names.BROWSER,
    names.VISITOR_CLASS,
    names.PAGE_PATH,
)
RECONCILE_METRICS = (names.SESSIONS,)

SessionKey = tuple[str, str, str, str, str, str, str]


def _record_key(record: VisitorRecord) -> SessionKey:
    return (
        record.last_seen_date,
        normalize_hour(record.last_seen_hour),
        record.country,
        record.region,
        record.city,
        record.browser,
        record.visitor_class,
    )


class LandingPageReconciler:
    """Fills empty landing pages with the first page path of the same session.

    Records that already carry a landing page are never modified. A failed
    page path query leaves every record as it was.
    """

    def __init__(self, adapter: QueryAdapter, row_limit: int = 10000):
        self.adapter = adapter
        self.row_limit = row_limit

    def build_query(self, date_range: DateRange) -> ReportQuery:
        return ReportQuery(
            date_range=date_range,
            dimensions=RECONCILE_DIMENSIONS,
            metrics=RECONCILE_METRICS,
            order_by=(OrderSpec(field=names.DATE), OrderSpec(field=names.HOUR)),
            limit=self.row_limit,
            label="landing_page_reconciliation",
        )

    async def reconcile(
        self, records: list[VisitorRecord], date_range: DateRange
    ) -> int:
        """Backfill landing pages in place and return how many were filled.

        Raises:
            SchemaMismatch: If the page path rows have an unexpected shape
        """
        missing = [record for record in records if is_unset(record.landing_page)]
        if not missing:
            return 0

        query = self.build_query(date_range)
        try:
            rows = await self.adapter.run_query(query)
        except APIError as e:
            logger.warning(
                f"Landing page reconciliation skipped for {len(missing)} visitors: {e}"
            )
            return 0

        first_paths: dict[SessionKey, str] = {}
        for row in unpack_rows(rows, query):
            path = row.dim(names.PAGE_PATH)
            if is_unset(path):
                continue
            key = (
                row.dim(names.DATE),
                normalize_hour(row.dim(names.HOUR)),
                row.dim(names.COUNTRY),
                row.dim(names.REGION),
                row.dim(names.CITY),
                row.dim(names.BROWSER),
                row.dim(names.VISITOR_CLASS),
            )
            first_paths.setdefault(key, path)

        filled = 0
        for record in missing:
            path = first_paths.get(_record_key(record))
            if path is None:
                continue
            record.landing_page = path
            record.visitor_id = (
                decode_identity_key(record.visitor_id).with_landing_page(path).encode()
            )
            filled += 1

        logger.info(f"Backfilled landing pages for {filled} of {len(missing)} visitors")
        return filled
