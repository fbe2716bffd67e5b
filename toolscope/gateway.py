"""
Tool gateway: applies the effective scope to tool listing and invocation.

For every request the gateway resolves the effective scope (see
toolscope.scope) and then either:

- filters the catalogue for tools/list, keeping catalogue order, or
- checks that the requested tool is in scope for tools/call before the
  execution engine is touched.

A tool outside the scope is reported exactly like a tool that doesn't exist:

    {"jsonrpc": "2.0", "id": "call_1",
     "error": {"code": -32602, "message": "Tool not found: create_artist"}}

so a scoped caller can't discover hidden tools by calling them.

The same gateway serves two surfaces:

- ToolGateway.handle(): a plain JSON-RPC dispatcher, used by the /rpc route.
- ToolScopeMiddleware and guard_call_tool(): tools/list filtering and the
  tools/call check on the standard MCP endpoint (streamable HTTP or stdio).
"""

import logging
from typing import Any, Sequence, TypeVar

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool as FastMCPTool
from mcp.shared.exceptions import McpError
from mcp.types import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    CallToolRequest,
    CallToolResult,
    ErrorData,
    JSONRPCRequest,
    ListToolsRequest,
    ListToolsResult,
    ServerResult,
    Tool,
)
from pydantic import ValidationError

from toolscope.engine import ToolEngine
from toolscope.request_scope import RequestContext
from toolscope.scope import UNRESTRICTED, EffectiveScope, ScopeSpec, resolve

logger = logging.getLogger("toolscope.gateway")

T = TypeVar("T")


class ToolNotFoundError(McpError):
    """
    Raised when a requested tool is not in the effective scope.

    The message is the same whether the tool is missing from the catalogue
    or only hidden from this request.
    """

    def __init__(self, name: str):
        self.tool_name = name
        super().__init__(ErrorData(code=INVALID_PARAMS, message=f"Tool not found: {name}"))


class ToolGateway:
    """
    Scope-enforcing front for a ToolEngine.

    The static scope is fixed at construction and shared by all requests;
    everything else is computed per request and never cached.
    """

    def __init__(self, engine: ToolEngine, static_scope: ScopeSpec = UNRESTRICTED):
        self.engine = engine
        self.static_scope = static_scope

    def effective_scope(self, context: RequestContext, catalogue: Sequence[str]) -> EffectiveScope:
        scope = resolve(self.static_scope, context.request_scope, catalogue)
        if scope.unknown:
            logger.debug(
                "Dropped tool names not in catalogue",
                extra={
                    "scope_data": {
                        "request_id": context.request_id,
                        "source": scope.source,
                        "unknown_tools": list(scope.unknown),
                    }
                },
            )
        return scope

    def filter_tools(self, context: RequestContext, tools: Sequence[T]) -> list[T]:
        """Keep the tools (anything with a `.name`) that are in scope, in their given order."""
        scope = self.effective_scope(context, [tool.name for tool in tools])
        allowed = [tool for tool in tools if tool.name in scope]

        logger.info(
            "Tool list filtered by scope",
            extra={
                "scope_data": {
                    "request_id": context.request_id,
                    "source": scope.source,
                    "total_tools": len(tools),
                    "allowed_tools": [tool.name for tool in allowed],
                    "decision": "filtered",
                }
            },
        )
        return allowed

    async def list_tools(self, context: RequestContext) -> list[Tool]:
        return self.filter_tools(context, await self.engine.list_tools())

    async def authorize(self, context: RequestContext, name: str) -> None:
        """
        Check that `name` may be called in this request.

        Raises:
            ToolNotFoundError: If the tool is not in the effective scope
        """
        catalogue = [tool.name for tool in await self.engine.list_tools()]
        scope = self.effective_scope(context, catalogue)

        if name not in scope:
            logger.warning(
                "Tool call rejected: not in scope",
                extra={
                    "scope_data": {
                        "request_id": context.request_id,
                        "tool": name,
                        "source": scope.source,
                        "decision": "rejected",
                    }
                },
            )
            raise ToolNotFoundError(name)

        logger.info(
            "Tool call authorized",
            extra={
                "scope_data": {
                    "request_id": context.request_id,
                    "tool": name,
                    "source": scope.source,
                    "decision": "allowed",
                }
            },
        )

    async def call_tool(
        self, context: RequestContext, name: str, arguments: dict[str, Any]
    ) -> CallToolResult:
        """Authorize, then run the tool. The engine's result is returned unchanged."""
        await self.authorize(context, name)
        return await self.engine.call_tool(name, arguments)

    async def handle(self, message: Any, context: RequestContext) -> dict[str, Any]:
        """
        Handle one JSON-RPC request object and return the response object.

        Supports tools/list, tools/call and ping. Scope rejections and
        protocol errors are returned as JSON-RPC errors, never raised.
        """
        request = _parse_request(message)
        if request is None:
            return {
                "jsonrpc": "2.0",
                "id": None,
                "error": {"code": INVALID_REQUEST, "message": "Invalid Request"},
            }

        params = request.params or {}
        try:
            if request.method == "tools/list":
                tools = await self.list_tools(context)
                result = ListToolsResult(tools=tools)
            elif request.method == "tools/call":
                name = params.get("name")
                if not isinstance(name, str):
                    raise McpError(ErrorData(code=INVALID_PARAMS, message="Missing tool name"))
                arguments = params.get("arguments")
                if arguments is None:
                    arguments = {}
                if not isinstance(arguments, dict):
                    raise McpError(
                        ErrorData(code=INVALID_PARAMS, message="Tool arguments must be an object")
                    )
                result = await self.call_tool(context, name, arguments)
            elif request.method == "ping":
                return {"jsonrpc": "2.0", "id": request.id, "result": {}}
            else:
                raise McpError(
                    ErrorData(code=METHOD_NOT_FOUND, message=f"Method not found: {request.method}")
                )
        except McpError as e:
            return {
                "jsonrpc": "2.0",
                "id": request.id,
                "error": e.error.model_dump(exclude_none=True),
            }

        return {
            "jsonrpc": "2.0",
            "id": request.id,
            "result": result.model_dump(by_alias=True, mode="json", exclude_none=True),
        }


def _parse_request(message: Any) -> JSONRPCRequest | None:
    """Validate a request object; the "jsonrpc" member is optional."""
    if not isinstance(message, dict):
        return None
    try:
        return JSONRPCRequest.model_validate({"jsonrpc": "2.0", **message})
    except ValidationError:
        return None


def current_request_context() -> RequestContext:
    """
    Build the request context from the current HTTP request.

    Returns an unrestricted request scope when there is no HTTP request
    (e.g., stdio transport).
    """
    try:
        request = get_http_request()
    except RuntimeError:
        request = None
    return RequestContext.from_request(request)


class ToolScopeMiddleware(Middleware):
    """
    FastMCP middleware filtering tools/list on the MCP endpoint.

    tools/call is checked by guard_call_tool(), one level lower.
    """

    def __init__(self, gateway: ToolGateway):
        self.gateway = gateway

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[FastMCPTool]],
    ) -> Sequence[FastMCPTool]:
        all_tools = await call_next(context)
        return self.gateway.filter_tools(current_request_context(), list(all_tools))


def guard_call_tool(server: FastMCP, gateway: ToolGateway) -> None:
    """
    Authorize tools/call in the MCP protocol handler, before FastMCP runs the tool.

    A McpError raised from the request handler is sent back as a JSON-RPC
    error object; raised anywhere inside FastMCP's tool call path it would
    become an isError result instead, losing the error code.
    """
    handlers = server._mcp_server.request_handlers
    call_tool = handlers[CallToolRequest]

    async def guarded_call_tool(request: CallToolRequest) -> ServerResult:
        await gateway.authorize(current_request_context(), request.params.name)
        return await call_tool(request)

    handlers[CallToolRequest] = guarded_call_tool
