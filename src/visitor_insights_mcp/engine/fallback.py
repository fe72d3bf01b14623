"""Ordered fallback chains for optional enrichment queries."""

import logging
from dataclasses import dataclass
from typing import Sequence

from visitor_insights_mcp.core.exceptions import APIError, SecondaryQueryFailed
from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.models.report import ReportQuery, ReportRow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryVariant:
    """One named way of asking for the same information."""

    name: str
    query: ReportQuery


@dataclass(frozen=True)
class ChainResult:
    """Rows from the first variant that succeeded."""

    rows: list[ReportRow]
    variant: str
    query: ReportQuery


class FallbackChain:
    """Tries query variants in order and returns the first success.

    Every adapter failure is treated the same way: the chain logs it and
    moves on to the next variant. Errors that are not adapter failures
    (schema or budget violations) propagate immediately.
    """

    def __init__(self, label: str, variants: Sequence[QueryVariant]):
        if not variants:
            raise ValueError(f"Fallback chain '{label}' needs at least one variant")
        self.label = label
        self.variants = list(variants)

    async def run(self, adapter: QueryAdapter) -> ChainResult:
        """Run the chain.

        Raises:
            SecondaryQueryFailed: If every variant failed
        """
        attempts: list[tuple[str, Exception]] = []

        for variant in self.variants:
            try:
                rows = await adapter.run_query(variant.query)
            except APIError as e:
                logger.warning(
                    f"'{self.label}' variant '{variant.name}' failed: {e}"
                )
                attempts.append((variant.name, e))
                continue

            if attempts:
                logger.info(
                    f"'{self.label}' answered by fallback variant '{variant.name}'"
                )
            return ChainResult(rows=rows, variant=variant.name, query=variant.query)

        raise SecondaryQueryFailed(self.label, attempts)
