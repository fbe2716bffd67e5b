"""
MCP server with per-request tool scoping, built on FastMCP v2.

This module wires the pieces together:
- The music tool catalogue (toolscope.tools)
- A ToolGateway holding the static scope from configuration (MCP_TOOLS)
- ToolScopeMiddleware and guard_call_tool(), which apply the gateway to the
  standard MCP endpoint
- A plain JSON-RPC endpoint (/rpc) served directly by the gateway
- RequestScopeMiddleware, which attaches a per-request scope from a header
- Health and readiness HTTP endpoints
- Structured JSON logging

Request flow:

    1. Client sends an HTTP request, optionally with "X-MCP-Tools: a,b"
    2. RequestScopeMiddleware attaches ["a", "b"] to the request state
    3. The gateway resolves the effective scope:
       static scope (if configured) > request scope (if attached) > full catalogue
    4. tools/list is filtered; tools/call outside the scope gets
       "Tool not found: <name>" (code -32602) and the tool never runs

Running the server:
    uv run python -m toolscope.server

    This starts the server on http://0.0.0.0:8080 with:
    - MCP endpoint at /mcp (Streamable HTTP)
    - JSON-RPC endpoint at /rpc
    - Health check at /health
    - Readiness check at /ready
"""

import json
import logging
import sys

from fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.middleware import Middleware as ASGIMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from toolscope.config import Settings, settings
from toolscope.engine import FastMCPEngine
from toolscope.gateway import ToolGateway, ToolScopeMiddleware, guard_call_tool
from toolscope.request_scope import RequestContext, RequestScopeMiddleware, header_tools
from toolscope.scope import scope_from_tools
from toolscope.tools import TOOL_NAMES, register_tools

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# One JSON object per line on stdout. Scope decisions carry their fields in
# extra={"scope_data": {...}} so they can be filtered by tool, decision or
# request ID in the log backend.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "WARNING",
         "logger": "toolscope.gateway", "message": "Tool call rejected: not in scope",
         "request_id": "3f2a9c1d", "tool": "create_artist", "source": "request",
         "decision": "rejected"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "scope_data"):
            log_entry.update(record.scope_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("toolscope.server")


# ---------------------------------------------------------------------------
# Server factory
# ---------------------------------------------------------------------------


def create_server(static_tools: list[str] | None = None) -> FastMCP:
    """
    Create the MCP server with the music catalogue and scope enforcement.

    Args:
        static_tools: Server-wide allowed tools. None leaves the decision to
                      the request scope; [] exposes no tools at all.

    Returns:
        A configured FastMCP server
    """
    mcp = FastMCP(
        name="toolscope",
        instructions=(
            "Music library MCP server. The tools visible to a request depend on "
            "the server's static configuration and on the scope attached to the request."
        ),
    )
    register_tools(mcp)

    if static_tools is not None:
        unknown = [name for name in static_tools if name not in TOOL_NAMES]
        if unknown:
            # Not fatal: unknown names are dropped when the scope is resolved.
            logger.warning(
                "Static tool scope lists unknown tools",
                extra={"scope_data": {"unknown_tools": unknown}},
            )

    gateway = ToolGateway(FastMCPEngine(mcp), static_scope=scope_from_tools(static_tools))
    mcp.add_middleware(ToolScopeMiddleware(gateway))
    guard_call_tool(mcp, gateway)

    @mcp.custom_route("/rpc", methods=["POST"])
    async def rpc_endpoint(request: Request) -> Response:
        """JSON-RPC endpoint for tools/list and tools/call, without MCP sessions."""
        try:
            message = await request.json()
        except ValueError:
            return JSONResponse(
                {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}},
                status_code=400,
            )
        response = await gateway.handle(message, RequestContext.from_request(request))
        return JSONResponse(response)

    # Health and readiness endpoints are not scoped: probes have no tool list.

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe: is the server process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    @mcp.custom_route("/ready", methods=["GET"])
    async def readiness_check(request: Request) -> Response:
        """Readiness probe: is there a catalogue to serve?"""
        tools = await gateway.engine.list_tools()
        if not tools:
            return JSONResponse(
                {"status": "not_ready", "reason": "tool catalogue is empty"},
                status_code=503,
            )
        return JSONResponse({"status": "ready", "tools": len(tools)})

    return mcp


def http_middleware(config: Settings = settings) -> list[ASGIMiddleware]:
    """ASGI middleware that attaches the request scope from the configured header."""
    return [
        ASGIMiddleware(
            RequestScopeMiddleware,
            tools_for=header_tools(config.request_scope_header),
        )
    ]


def create_app(
    server: FastMCP,
    middleware: list[ASGIMiddleware] | None = None,
) -> Starlette:
    """Build the Starlette app serving /mcp, /rpc, /health and /ready."""
    if middleware is None:
        middleware = http_middleware()
    return server.http_app(transport="streamable-http", middleware=middleware)


mcp = create_server(settings.tools)


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http, static_scope=%s)",
        settings.host,
        settings.port,
        "unset" if settings.tools is None else ",".join(settings.tools) or "<empty>",
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        middleware=http_middleware(),
    )
