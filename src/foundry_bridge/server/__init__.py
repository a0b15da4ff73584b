"""
MCP stdio server.

Exposes a FoundryClient as MCP tools through the mcp SDK.
"""

from foundry_bridge.server.tools import DOCUMENT_TYPES, ToolDispatcher, tool_definitions
from foundry_bridge.server.stdio import create_server, serve

__all__ = [
    "DOCUMENT_TYPES",
    "ToolDispatcher",
    "tool_definitions",
    "create_server",
    "serve",
]
