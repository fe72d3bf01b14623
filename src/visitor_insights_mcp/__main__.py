"""Run the Visitor Insights MCP server."""

from visitor_insights_mcp.core.config import get_settings, setup_logging
from visitor_insights_mcp.server import create_mcp_server


def main() -> None:
    setup_logging(get_settings())
    create_mcp_server().run()


if __name__ == "__main__":
    main()
