"""Mock query adapter for testing."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.models.report import ReportQuery, ReportRow


@dataclass
class _Response:
    dimensions: tuple[str, ...]
    rows: list[ReportRow] | None
    error: Exception | None
    predicate: Callable[[ReportQuery], bool] | None


def make_row(dimensions: Sequence[str], metrics: Sequence[float | int | str]) -> ReportRow:
    """Build a row from plain values, stringifying metrics like the source does."""
    return ReportRow(
        dimension_values=tuple(str(value) for value in dimensions),
        metric_values=tuple(str(value) for value in metrics),
    )


class MockQueryAdapter(QueryAdapter):
    """Query adapter that answers from canned responses.

    Responses are registered per dimension list. When several responses
    match a query, the most recently registered one wins. Every query is
    recorded in ``queries`` so tests can assert on what the engine asked for.
    Queries with no registered response return no rows.
    """

    def __init__(self, max_query_terms: int | None = None):
        if max_query_terms is not None:
            self.max_query_terms = max_query_terms
        self._responses: list[_Response] = []
        self.queries: list[ReportQuery] = []

    def add_rows(
        self,
        dimensions: Sequence[str],
        rows: Sequence[ReportRow],
        predicate: Callable[[ReportQuery], bool] | None = None,
    ) -> None:
        """Register rows returned for queries over ``dimensions``."""
        self._responses.append(
            _Response(tuple(dimensions), list(rows), None, predicate)
        )

    def add_error(
        self,
        dimensions: Sequence[str],
        error: Exception,
        predicate: Callable[[ReportQuery], bool] | None = None,
    ) -> None:
        """Register an error raised for queries over ``dimensions``."""
        self._responses.append(_Response(tuple(dimensions), None, error, predicate))

    def queries_labelled(self, label: str) -> list[ReportQuery]:
        return [query for query in self.queries if query.label == label]

    async def run_query(self, query: ReportQuery) -> list[ReportRow]:
        self.check_budget(query)
        self.queries.append(query)

        for response in reversed(self._responses):
            if response.dimensions != query.dimensions:
                continue
            if response.predicate is not None and not response.predicate(query):
                continue
            if response.error is not None:
                raise response.error
            return list(response.rows or [])

        return []
