"""
MCP tools for the ADB panel.
"""
from .handlers import register_tools

__all__ = ["register_tools"]
