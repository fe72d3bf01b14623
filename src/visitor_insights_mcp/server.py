"""FastMCP server for Visitor Insights GA4 visitor analytics."""

import logging
import os
import re
from enum import Enum
from typing import Any

from fastmcp import FastMCP
from pydantic import BaseModel, Field

from visitor_insights_mcp import __version__
from visitor_insights_mcp.clients.ga4.client import GA4DataClient
from visitor_insights_mcp.core.config import get_settings
from visitor_insights_mcp.core.exceptions import (
    AdapterUnavailable,
    APIError,
    AuthenticationError,
    ConfigurationError,
    DataError,
    MalformedIdentityKey,
    QueryBudgetExceeded,
    QueryTimeoutError,
    RateLimitError,
    ValidationError,
)
from visitor_insights_mcp.engine.service import VisitorAnalyticsEngine
from visitor_insights_mcp.models.report import DateRange

logger = logging.getLogger(__name__)
# Warn if debug logging is enabled in production
if os.getenv("VIS_ENVIRONMENT") == "production" and logger.level <= logging.DEBUG:
    logger.warning(
        "DEBUG logging enabled in production environment. "
        "This may expose sensitive information in logs. "
        "Set VIS_LOGGING__LEVEL to INFO or higher."
    )


# ============================================================================
# Error Codes
# ============================================================================


class ErrorCode(str, Enum):
    """Error codes for programmatic error handling."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    GA4_NOT_CONFIGURED = "GA4_NOT_CONFIGURED"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_VISITOR_ID = "INVALID_VISITOR_ID"
    VISITORS_FETCH_ERROR = "VISITORS_FETCH_ERROR"
    VISITOR_DETAIL_FETCH_ERROR = "VISITOR_DETAIL_FETCH_ERROR"
    POWER_USERS_FETCH_ERROR = "POWER_USERS_FETCH_ERROR"
    TREND_FETCH_ERROR = "TREND_FETCH_ERROR"
    OVERVIEW_FETCH_ERROR = "OVERVIEW_FETCH_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    QUERY_TIMEOUT = "QUERY_TIMEOUT"
    DATA_ERROR = "DATA_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Initialize MCP server
mcp = FastMCP("Visitor Insights MCP Server")


# ============================================================================
# Helper Functions
# ============================================================================


def sanitize_error_message(msg: str) -> str:
    """Remove potential credentials from error messages.

    This prevents accidental logging of sensitive data like tokens,
    private keys, and email addresses in error messages.

    Args:
        msg: Original error message

    Returns:
        Sanitized error message with credentials redacted

    Examples:
        >>> sanitize_error_message("Token abc123xyz0abc123xyz0 failed")
        "Token [REDACTED] failed"
        >>> sanitize_error_message("svc@project.iam.gserviceaccount.com denied")
        "[EMAIL_REDACTED] denied"
    """
    # Emails first so service account addresses are not half-redacted as tokens
    msg = re.sub(r"\b[\w.-]+@[\w.-]+\.\w+\b", "[EMAIL_REDACTED]", msg)

    # Anything that looks like a token (20+ alphanumeric/dash/underscore)
    msg = re.sub(r"[A-Za-z0-9_-]{20,}", "[REDACTED]", msg)

    # Key-value style secrets
    msg = re.sub(
        r"(api[_-]?key|token|secret|password|credential|private[_-]?key)[\"']?\s*[:=]\s*[\"']?[^\s\"']+",
        r"\1=[REDACTED]",
        msg,
        flags=re.IGNORECASE,
    )

    return msg


# Global engine instance for reuse across requests
_engine_instance: VisitorAnalyticsEngine | None = None


def reset_client_for_testing():
    """Reset the singleton engine instance (for testing only)."""
    global _engine_instance
    _engine_instance = None


def _get_engine() -> VisitorAnalyticsEngine:
    """
    Get or create the visitor analytics engine (singleton pattern).

    The GA4 client is shared across requests so that rate limiting state
    and the authenticated transport are reused. The engine itself keeps no
    per-request state.

    Reads configuration from VIS_* environment variables (see Settings).

    Raises:
        AdapterUnavailable: If GA4 is not enabled or has no property ID
    """
    global _engine_instance

    if _engine_instance is not None:
        return _engine_instance

    settings = get_settings()
    client = GA4DataClient(settings.ga4)
    _engine_instance = VisitorAnalyticsEngine(client, settings.engine)

    return _engine_instance


def _date_range(start_date: str | None, end_date: str | None) -> DateRange | None:
    """Build a date range from optional request fields.

    Missing fields fall back to the engine's configured defaults.

    Raises:
        InvalidDateRange: If a date is malformed or the range is inverted
    """
    if start_date is None and end_date is None:
        return None
    settings = get_settings()
    return DateRange(
        start_date=start_date or settings.engine.default_start_date,
        end_date=end_date or settings.engine.default_end_date,
    )


def _error_response(
    e: Exception, fetch_error: ErrorCode, empty_data: Any
) -> dict[str, Any]:
    """Map an engine exception onto the tool error payload."""
    message = sanitize_error_message(str(e))

    if isinstance(e, MalformedIdentityKey):
        logger.warning(f"Rejected visitor ID: {message}")
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_VISITOR_ID,
            "message": f"Invalid visitor ID: {e.reason}",
            "details": {"error_type": "validation", "retry_allowed": False},
            "data": empty_data,
        }
    if isinstance(e, QueryBudgetExceeded):
        logger.error(f"Query budget exceeded: {message}", exc_info=True)
        return {
            "status": "error",
            "error_code": ErrorCode.INTERNAL_ERROR,
            "message": "An unexpected error occurred. Please contact support if this persists.",
            "details": {"error_type": "unexpected"},
            "data": empty_data,
        }
    if isinstance(e, ValidationError):
        logger.warning(f"Invalid input: {message}")
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT,
            "message": f"Invalid input: {message}",
            "details": {"error_type": "validation", "retry_allowed": False},
            "data": empty_data,
        }
    if isinstance(e, AuthenticationError):
        logger.error(f"Authentication failed: {message}", exc_info=True)
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_CREDENTIALS,
            "message": "Authentication failed. Please check your credentials.",
            "details": {"error_type": "authentication", "retry_allowed": False},
            "data": empty_data,
        }
    if isinstance(e, ConfigurationError):
        logger.error(f"Invalid configuration: {message}")
        return {
            "status": "error",
            "error_code": ErrorCode.GA4_NOT_CONFIGURED,
            "message": f"Server configuration is invalid: {message}",
            "details": {"error_type": "configuration", "retry_allowed": False},
            "data": empty_data,
        }
    if isinstance(e, AdapterUnavailable):
        logger.error(f"GA4 unavailable: {message}")
        return {
            "status": "error",
            "error_code": ErrorCode.GA4_NOT_CONFIGURED,
            "message": f"GA4 is not available: {message}",
            "details": {"error_type": "configuration", "retry_allowed": False},
            "data": empty_data,
        }
    if isinstance(e, RateLimitError):
        logger.warning(f"Rate limit exceeded: {message}")
        return {
            "status": "error",
            "error_code": ErrorCode.RATE_LIMIT_EXCEEDED,
            "message": "API rate limit exceeded. Please try again later.",
            "details": {
                "error_type": "rate_limit",
                "retry_allowed": True,
                "retry_after_seconds": 60,
            },
            "data": empty_data,
        }
    if isinstance(e, QueryTimeoutError):
        logger.warning(f"Query timed out: {message}")
        return {
            "status": "error",
            "error_code": ErrorCode.QUERY_TIMEOUT,
            "message": "The analytics query timed out. Try a shorter date range.",
            "details": {"error_type": "timeout", "retry_allowed": True},
            "data": empty_data,
        }
    if isinstance(e, APIError):
        logger.error(f"GA4 API error: {message}", exc_info=True)
        return {
            "status": "error",
            "error_code": fetch_error,
            "message": f"GA4 API error: {message}",
            "details": {"error_type": "api_error", "retry_allowed": True},
            "data": empty_data,
        }
    if isinstance(e, DataError):
        logger.error(f"Unexpected report shape: {message}", exc_info=True)
        return {
            "status": "error",
            "error_code": ErrorCode.DATA_ERROR,
            "message": f"GA4 returned unexpected data: {message}",
            "details": {"error_type": "data", "retry_allowed": False},
            "data": empty_data,
        }

    logger.error(f"Unexpected error: {message}", exc_info=True)
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR,
        "message": "An unexpected error occurred. Please contact support if this persists.",
        "details": {"error_type": "unexpected"},
        "data": empty_data,
    }


# ============================================================================
# Request Models
# ============================================================================


class DateRangeRequest(BaseModel):
    """Request model for date-bounded reports."""

    start_date: str | None = Field(
        None, description="Start date (YYYY-MM-DD, today, yesterday or NdaysAgo)"
    )
    end_date: str | None = Field(
        None, description="End date (YYYY-MM-DD, today, yesterday or NdaysAgo)"
    )


class VisitorListRequest(DateRangeRequest):
    """Request model for listing visitors."""

    limit: int | None = Field(
        None, ge=1, le=10000, description="Maximum number of visitors to return"
    )


class PageVisitorsRequest(VisitorListRequest):
    """Request model for listing visitors of a page."""

    page_path: str = Field(
        ..., min_length=1, description="Page path or fragment, e.g. /pricing"
    )


class VisitorDetailRequest(DateRangeRequest):
    """Request model for a single visitor's detail view."""

    visitor_id: str = Field(
        ..., description="Visitor ID as returned by list_visitors or list_power_users"
    )


class PowerUsersRequest(DateRangeRequest):
    """Request model for listing repeat visitors."""

    min_sessions: int | None = Field(
        None, ge=1, description="Minimum number of sessions (default 3)"
    )


# ============================================================================
# Tools - Visitors
# ============================================================================


@mcp.tool()
async def list_visitors(request: VisitorListRequest) -> dict[str, Any]:
    """
    List visitors reconstructed from GA4 session data, most recent first.

    GA4 exposes no visitor identifier, so visitors are inferred from
    country, region, city and browser. Each visitor carries summed session
    counts, a recomputed bounce rate and a visitor ID that can be passed to
    get_visitor_detail.
    """
    try:
        date_range = _date_range(request.start_date, request.end_date)
        engine = _get_engine()

        visitors = await engine.list_visitors(date_range=date_range, limit=request.limit)
        data = [visitor.model_dump() for visitor in visitors]

        return {
            "status": "success",
            "message": f"Retrieved {len(data)} visitors",
            "metadata": {
                "start_date": request.start_date,
                "end_date": request.end_date,
                "limit": request.limit,
                "record_count": len(data),
            },
            "data": data,
        }

    except Exception as e:
        return _error_response(e, ErrorCode.VISITORS_FETCH_ERROR, [])


@mcp.tool()
async def list_visitors_by_page(request: PageVisitorsRequest) -> dict[str, Any]:
    """
    List visitors who viewed pages whose path contains the given fragment.
    """
    try:
        date_range = _date_range(request.start_date, request.end_date)
        engine = _get_engine()

        visitors = await engine.list_visitors_by_page(
            request.page_path, date_range=date_range, limit=request.limit
        )
        data = [visitor.model_dump() for visitor in visitors]

        return {
            "status": "success",
            "message": f"Retrieved {len(data)} visitors for '{request.page_path}'",
            "metadata": {
                "page_path": request.page_path,
                "start_date": request.start_date,
                "end_date": request.end_date,
                "record_count": len(data),
            },
            "data": data,
        }

    except Exception as e:
        return _error_response(e, ErrorCode.VISITORS_FETCH_ERROR, [])


@mcp.tool()
async def get_visitor_detail(request: VisitorDetailRequest) -> dict[str, Any]:
    """
    Expand a visitor ID into sessions, device, page visits and events.

    Device, scroll depth, click and event enrichments are best effort; the
    strategies field reports which query variant supplied each of them.
    """
    try:
        date_range = _date_range(request.start_date, request.end_date)
        engine = _get_engine()

        detail = await engine.get_visitor_detail(request.visitor_id, date_range=date_range)

        return {
            "status": "success",
            "message": (
                f"Retrieved {len(detail.sessions)} sessions and "
                f"{len(detail.page_visits)} page visits"
            ),
            "metadata": {
                "visitor_id": request.visitor_id,
                "start_date": request.start_date,
                "end_date": request.end_date,
            },
            "data": detail.model_dump(),
        }

    except Exception as e:
        return _error_response(e, ErrorCode.VISITOR_DETAIL_FETCH_ERROR, None)


@mcp.tool()
async def list_power_users(request: PowerUsersRequest) -> dict[str, Any]:
    """
    List repeat visitors with at least min_sessions sessions in the range.
    """
    try:
        date_range = _date_range(request.start_date, request.end_date)
        engine = _get_engine()

        power_users = await engine.list_power_users(
            date_range=date_range, min_sessions=request.min_sessions
        )
        data = [user.model_dump() for user in power_users]

        return {
            "status": "success",
            "message": f"Retrieved {len(data)} power users",
            "metadata": {
                "start_date": request.start_date,
                "end_date": request.end_date,
                "min_sessions": request.min_sessions,
                "record_count": len(data),
            },
            "data": data,
        }

    except Exception as e:
        return _error_response(e, ErrorCode.POWER_USERS_FETCH_ERROR, [])


# ============================================================================
# Tools - Trends
# ============================================================================


@mcp.tool()
async def get_daily_visitor_trend(request: DateRangeRequest) -> dict[str, Any]:
    """
    New and returning active users per day, oldest first.
    """
    try:
        date_range = _date_range(request.start_date, request.end_date)
        engine = _get_engine()

        points = await engine.daily_visitor_trend(date_range=date_range)
        data = [point.model_dump() for point in points]

        return {
            "status": "success",
            "message": f"Retrieved {len(data)} days",
            "metadata": {
                "start_date": request.start_date,
                "end_date": request.end_date,
                "record_count": len(data),
            },
            "data": data,
        }

    except Exception as e:
        return _error_response(e, ErrorCode.TREND_FETCH_ERROR, [])


@mcp.tool()
async def get_session_overview(request: DateRangeRequest) -> dict[str, Any]:
    """
    Headline session totals with an engaged-user estimate.
    """
    try:
        date_range = _date_range(request.start_date, request.end_date)
        engine = _get_engine()

        overview = await engine.session_overview(date_range=date_range)
        if overview is None:
            return {
                "status": "success",
                "message": "No session data for the requested range",
                "metadata": {
                    "start_date": request.start_date,
                    "end_date": request.end_date,
                },
                "data": None,
            }

        return {
            "status": "success",
            "message": f"Retrieved overview of {overview.sessions} sessions",
            "metadata": {
                "start_date": request.start_date,
                "end_date": request.end_date,
                "engaged_users_strategy": overview.engaged_users_strategy,
            },
            "data": overview.model_dump(),
        }

    except Exception as e:
        return _error_response(e, ErrorCode.OVERVIEW_FETCH_ERROR, None)


# ============================================================================
# Resources
# ============================================================================


TOOLS_AVAILABLE = [
    "list_visitors",
    "list_visitors_by_page",
    "get_visitor_detail",
    "list_power_users",
    "get_daily_visitor_trend",
    "get_session_overview",
]


@mcp.resource("resource://health")
def health_check() -> dict[str, Any]:
    """
    Provides server health status and configuration information.
    """
    ga4 = get_settings().ga4
    return {
        "status": "healthy",
        "version": __version__,
        "server": "Visitor Insights MCP Server",
        "ga4_configured": bool(ga4.enabled and ga4.property_id),
        "tools_available": TOOLS_AVAILABLE,
    }


@mcp.resource("resource://config")
def get_config() -> dict[str, Any]:
    """
    Provides the server's configuration status (without exposing secrets).
    """
    settings = get_settings()
    return {
        "server_version": __version__,
        "environment": settings.environment.value,
        "features": {
            "ga4": {
                "enabled": settings.ga4.enabled,
                "property_configured": bool(settings.ga4.property_id),
                "credentials": (
                    "key_file"
                    if settings.ga4.service_account_key_path
                    else "base64_json"
                    if settings.ga4.service_account_json_base64
                    else "application_default"
                ),
                "rate_limiting": settings.ga4.enable_rate_limiting,
            },
            "engine": settings.engine.model_dump(),
        },
    }


# ============================================================================
# Server Factory
# ============================================================================


def create_mcp_server() -> FastMCP:
    """
    Create and return the configured MCP server instance.

    Returns:
        FastMCP: The configured server instance ready to run.
    """
    return mcp


# ============================================================================
# Entry Point
# ============================================================================

if __name__ == "__main__":
    # Run the MCP server
    mcp.run()
