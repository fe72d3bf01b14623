"""GA4 Data API integration."""

from visitor_insights_mcp.clients.ga4.auth import GA4Authenticator
from visitor_insights_mcp.clients.ga4.client import GA4DataClient

__all__ = ["GA4Authenticator", "GA4DataClient"]
