"""Tests for MCP server functionality."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from visitor_insights_mcp.core.config import GA4Config, Settings


def test_create_mcp_server():
    """Test that the MCP server can be created."""
    from visitor_insights_mcp.server import create_mcp_server

    server = create_mcp_server()
    assert server is not None
    assert server.name == "Visitor Insights MCP Server"


def test_mcp_server_has_tools():
    """Test that the MCP server has the expected tools registered."""
    from visitor_insights_mcp.server import create_mcp_server

    server = create_mcp_server()

    assert hasattr(server, "_tool_manager")


def test_mcp_server_has_resources():
    """Test that the MCP server has resources registered."""
    from visitor_insights_mcp.server import create_mcp_server

    server = create_mcp_server()

    assert hasattr(server, "_resource_manager")


def test_server_module_exports():
    """Test that server module exports expected functions."""
    from visitor_insights_mcp import server

    for name in server.TOOLS_AVAILABLE:
        assert hasattr(server, name)
    assert hasattr(server, "health_check")
    assert hasattr(server, "get_config")
    assert hasattr(server, "create_mcp_server")


def test_error_code_enum():
    """Test that ErrorCode enum is properly defined."""
    from visitor_insights_mcp.server import ErrorCode

    assert ErrorCode.INVALID_VISITOR_ID == "INVALID_VISITOR_ID"
    assert hasattr(ErrorCode, "GA4_NOT_CONFIGURED")
    assert hasattr(ErrorCode, "VISITORS_FETCH_ERROR")
    assert hasattr(ErrorCode, "INVALID_INPUT")


# ============================================================================
# Request Models
# ============================================================================


def test_visitor_list_request_defaults():
    from visitor_insights_mcp.server import VisitorListRequest

    request = VisitorListRequest()
    assert request.start_date is None
    assert request.end_date is None
    assert request.limit is None


def test_visitor_list_request_limit_bounds():
    from visitor_insights_mcp.server import VisitorListRequest

    with pytest.raises(ValidationError):
        VisitorListRequest(limit=0)
    with pytest.raises(ValidationError):
        VisitorListRequest(limit=10001)


def test_page_visitors_request_requires_path():
    from visitor_insights_mcp.server import PageVisitorsRequest

    with pytest.raises(ValidationError):
        PageVisitorsRequest(page_path="")

    request = PageVisitorsRequest(page_path="/pricing", limit=10)
    assert request.page_path == "/pricing"


def test_power_users_request_min_sessions():
    from visitor_insights_mcp.server import PowerUsersRequest

    assert PowerUsersRequest().min_sessions is None
    with pytest.raises(ValidationError):
        PowerUsersRequest(min_sessions=0)


# ============================================================================
# Error Sanitization
# ============================================================================


@pytest.mark.parametrize(
    "message,expected",
    [
        ("Token abc123xyz0abc123xyz0 failed", "Token [REDACTED] failed"),
        ("svc@project.iam.gserviceaccount.com denied", "[EMAIL_REDACTED] denied"),
        ("login failed: password=hunter2", "login failed: password=[REDACTED]"),
        ("Quota exceeded for property 123", "Quota exceeded for property 123"),
    ],
)
def test_sanitize_error_message(message, expected):
    from visitor_insights_mcp.server import sanitize_error_message

    assert sanitize_error_message(message) == expected


# ============================================================================
# Resources
# ============================================================================


def test_health_check_reports_ga4_configuration():
    from visitor_insights_mcp import __version__, server

    settings = Settings(
        ga4=GA4Config(
            enabled=True,
            property_id="123456789",
            use_application_default_credentials=True,
        )
    )
    with patch("visitor_insights_mcp.server.get_settings", return_value=settings):
        health = server.health_check.fn()

    assert health["status"] == "healthy"
    assert health["version"] == __version__
    assert health["ga4_configured"] is True
    assert health["tools_available"] == server.TOOLS_AVAILABLE


def test_get_config_hides_secrets():
    from visitor_insights_mcp import server

    settings = Settings(
        ga4=GA4Config(
            enabled=True,
            property_id="123456789",
            service_account_json_base64="eyJ0eXBlIjoic2VydmljZV9hY2NvdW50In0=",
        )
    )
    with patch("visitor_insights_mcp.server.get_settings", return_value=settings):
        config = server.get_config.fn()

    assert config["features"]["ga4"]["credentials"] == "base64_json"
    assert config["features"]["engine"]["max_query_terms"] == 9
    assert "eyJ0eXBl" not in str(config)
