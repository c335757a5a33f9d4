"""
ADB Panel - MCP Server
Entry point for the MCP server.
"""
from mcp.server.fastmcp import FastMCP

from .core.config import configure_logging
from .tools import register_tools

# Create MCP server instance
mcp = FastMCP("AdbPanel")
register_tools(mcp)


def main():
    """Main entry point for script execution."""
    configure_logging()
    mcp.run()


if __name__ == "__main__":
    main()
