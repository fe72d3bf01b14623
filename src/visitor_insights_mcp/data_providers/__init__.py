"""Query adapters for dimensional analytics sources."""

from visitor_insights_mcp.data_providers.base import QueryAdapter
from visitor_insights_mcp.data_providers.mock_provider import MockQueryAdapter

__all__ = ["MockQueryAdapter", "QueryAdapter"]
