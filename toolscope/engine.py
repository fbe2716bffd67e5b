"""
Execution engine adapter.

The gateway doesn't know how tools are defined or run. It talks to a
ToolEngine, which supplies the ordered catalogue and executes a tool by
name. FastMCPEngine backs that protocol with a FastMCP server's own tool
registry, so the /rpc endpoint and the standard MCP endpoint expose the same
tools.
"""

import logging
from typing import Any, Protocol, Sequence

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from mcp.types import CallToolResult, TextContent, Tool

logger = logging.getLogger("toolscope.engine")


class ToolEngine(Protocol):
    """Catalogue and execution collaborator used by the gateway."""

    async def list_tools(self) -> Sequence[Tool]: ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult: ...


class FastMCPEngine:
    """ToolEngine backed by the tools registered on a FastMCP server."""

    def __init__(self, server: FastMCP):
        self.server = server

    async def list_tools(self) -> list[Tool]:
        """Return tool descriptors in registration order."""
        tools = await self.server.get_tools()
        return [tool.to_mcp_tool() for tool in tools.values() if tool.enabled]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> CallToolResult:
        """
        Run a tool and wrap its outcome.

        Errors raised by the tool are reported as an isError result rather
        than a protocol error: the call was authorized and did run. Only
        ToolError messages reach the caller; anything else is logged and
        replaced by a generic message.
        """
        tools = await self.server.get_tools()
        tool = tools[name]
        try:
            result = await tool.run(arguments)
        except ToolError as e:
            return _error_result(str(e))
        except Exception:
            logger.exception("Tool execution failed: %s", name)
            return _error_result(f"Error calling tool '{name}'")

        return CallToolResult(
            content=result.content,
            structuredContent=result.structured_content,
            isError=False,
        )


def _error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=message)], isError=True)
