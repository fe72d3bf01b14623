"""Base QueryAdapter interface for dimensional analytics sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from visitor_insights_mcp.core.exceptions import QueryBudgetExceeded
from visitor_insights_mcp.models.report import ReportQuery, ReportRow

# Combined dimensions + filter predicates the GA4 Data API accepts per report
DEFAULT_MAX_QUERY_TERMS = 9


class QueryAdapter(ABC):
    """Interface for sources that answer dimensional report queries.

    Implementations return rows whose dimension and metric values are
    positionally aligned with ``query.dimensions`` and ``query.metrics``.
    """

    max_query_terms: int = DEFAULT_MAX_QUERY_TERMS

    @abstractmethod
    async def run_query(self, query: ReportQuery) -> list[ReportRow]:
        """Execute a report query and return its rows in source order."""
        pass

    def check_budget(self, query: ReportQuery) -> None:
        """Reject queries that exceed the per-request dimensions+filters cap."""
        if query.term_count > self.max_query_terms:
            raise QueryBudgetExceeded(query.label, query.term_count, self.max_query_terms)
