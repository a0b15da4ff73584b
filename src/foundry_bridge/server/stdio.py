"""MCP server on stdin/stdout, built on the mcp SDK's low-level Server."""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from foundry_bridge import __version__
from foundry_bridge.server.tools import ToolDispatcher, tool_definitions

logger = logging.getLogger(__name__)

SERVER_NAME = "foundry-mcp"


def create_server(dispatcher: ToolDispatcher, instructions: str | None = None) -> Server:
    """
    Build an MCP server whose tools run through ``dispatcher``.

    Initialize, ping and notifications are answered by the SDK. Input is
    validated by the dispatcher so argument errors keep their own messages.
    """
    server: Server = Server(SERVER_NAME, version=__version__, instructions=instructions)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return tool_definitions()

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        logger.debug(f"Calling tool {name}")
        return await dispatcher.call(name, arguments)

    return server


async def serve(dispatcher: ToolDispatcher, instructions: str | None = None) -> None:
    """Serve until stdin reaches EOF."""
    server = create_server(dispatcher, instructions)
    async with stdio_server() as (read_stream, write_stream):
        logger.info("FoundryVTT MCP server running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())
    logger.info("stdin closed, server stopping")
