"""
Integration tests for scope enforcement on the standard MCP endpoint.

These tests exercise the full MCP protocol flow over Streamable HTTP:
HTTP request -> RequestScopeMiddleware -> MCP session -> tools/call guard or
ToolScopeMiddleware -> tool.

Test approach:
    httpx.AsyncClient with the FastMCP ASGI app (in-memory, no server
    process). The app's lifespan must be running for the StreamableHTTP
    session manager, so the fixture drives the ASGI lifespan by hand.

    Each test follows the MCP protocol:
    1. POST to /mcp with "initialize" to start a session
    2. Use the returned Mcp-Session-Id for subsequent requests
    3. POST "tools/list" or "tools/call", with the request scope in the
       "x-mcp-tools" header (the scope is per request, not per session)
"""

import asyncio
import json

import httpx
import pytest
from starlette.middleware import Middleware

from toolscope.request_scope import RequestScopeMiddleware
from toolscope.server import create_app, create_server
from toolscope.tools import TOOL_NAMES, store

MCP_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/event-stream",
}


@pytest.fixture
async def mcp_session():
    """
    Factory fixture for initialized MCP sessions against a fresh server.

    Returns (client, session_id). The lifespan of every app created is
    started here and shut down on teardown.
    """
    lifespans = []
    clients = []

    async def _create_session(
        static_tools: list[str] | None = None,
        middleware: list[Middleware] | None = None,
    ):
        app = create_app(create_server(static_tools), middleware)

        startup_complete = asyncio.Event()
        shutdown_triggered = asyncio.Event()

        async def receive():
            if not startup_complete.is_set():
                startup_complete.set()
                return {"type": "lifespan.startup"}
            await shutdown_triggered.wait()
            return {"type": "lifespan.shutdown"}

        async def send(message):
            pass

        scope = {"type": "lifespan", "asgi": {"version": "3.0"}}
        lifespan_task = asyncio.create_task(app(scope, receive, send))
        lifespans.append((shutdown_triggered, lifespan_task))

        await startup_complete.wait()
        await asyncio.sleep(0.1)

        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
        clients.append(client)

        response = await client.post(
            "http://testserver/mcp",
            headers=MCP_HEADERS,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {
                    "protocolVersion": "2025-03-26",
                    "capabilities": {},
                    "clientInfo": {"name": "test-client", "version": "1.0"},
                },
            },
        )
        session_id = response.headers.get("mcp-session-id")

        await client.post(
            "http://testserver/mcp",
            headers={**MCP_HEADERS, "Mcp-Session-Id": session_id},
            json={"jsonrpc": "2.0", "method": "notifications/initialized"},
        )
        return client, session_id

    yield _create_session

    for client in clients:
        await client.aclose()
    for shutdown_triggered, lifespan_task in lifespans:
        shutdown_triggered.set()
        await lifespan_task


# ---------------------------------------------------------------------------
# Helper functions for MCP protocol requests
# ---------------------------------------------------------------------------


async def list_tools(client, session_id: str, tools: str | None = None) -> dict:
    """Send a tools/list request and return the parsed JSON-RPC response."""
    headers = {**MCP_HEADERS, "Mcp-Session-Id": session_id}
    if tools is not None:
        headers["x-mcp-tools"] = tools
    response = await client.post(
        "http://testserver/mcp",
        headers=headers,
        json={"jsonrpc": "2.0", "id": 2, "method": "tools/list", "params": {}},
    )
    return _parse_sse_response(response.text)


async def call_tool(
    client, session_id: str, tool_name: str, arguments: dict | None = None, tools: str | None = None
) -> dict:
    """Send a tools/call request and return the parsed JSON-RPC response."""
    headers = {**MCP_HEADERS, "Mcp-Session-Id": session_id}
    if tools is not None:
        headers["x-mcp-tools"] = tools
    response = await client.post(
        "http://testserver/mcp",
        headers=headers,
        json={
            "jsonrpc": "2.0",
            "id": 3,
            "method": "tools/call",
            "params": {"name": tool_name, "arguments": arguments or {}},
        },
    )
    return _parse_sse_response(response.text)


def _parse_sse_response(text: str) -> dict:
    """Extract the JSON-RPC message from an SSE 'data:' line."""
    for line in text.strip().split("\n"):
        if line.startswith("data: "):
            return json.loads(line[6:])
    return {}


def _not_found(name: str) -> dict:
    """The JSON-RPC error response for a tools/call sent by call_tool()."""
    return {
        "jsonrpc": "2.0",
        "id": 3,
        "error": {"code": -32602, "message": f"Tool not found: {name}"},
    }


class TestToolListFiltering:
    async def test_request_scope_filters_list(self, mcp_session):
        client, session_id = await mcp_session()

        data = await list_tools(client, session_id, tools="list_artists")

        assert [t["name"] for t in data["result"]["tools"]] == ["list_artists"]

    async def test_no_scope_lists_full_catalogue(self, mcp_session):
        client, session_id = await mcp_session()

        data = await list_tools(client, session_id)

        assert [t["name"] for t in data["result"]["tools"]] == list(TOOL_NAMES)

    async def test_empty_request_scope_lists_nothing(self, mcp_session):
        client, session_id = await mcp_session()

        data = await list_tools(client, session_id, tools="")

        assert data["result"]["tools"] == []

    async def test_static_scope_wins(self, mcp_session):
        client, session_id = await mcp_session(static_tools=["list_artists"])

        data = await list_tools(client, session_id, tools="create_artist")

        assert [t["name"] for t in data["result"]["tools"]] == ["list_artists"]


class TestToolCallAuthorization:
    async def test_out_of_scope_call_is_rejected(self, mcp_session):
        client, session_id = await mcp_session()

        data = await call_tool(
            client, session_id, "create_artist", {"name": "Hidden"}, tools="list_artists"
        )

        assert data == _not_found("create_artist")
        assert store.all() == []

    async def test_in_scope_call_runs(self, mcp_session):
        client, session_id = await mcp_session()
        store.add(name="Scoped Artist")

        data = await call_tool(client, session_id, "list_artists", tools="list_artists")

        result = data["result"]
        assert result.get("isError") is not True
        assert "Scoped Artist" in result["content"][0]["text"]

    async def test_static_scope_rejects_request_scoped_tool(self, mcp_session):
        client, session_id = await mcp_session(static_tools=["list_artists"])

        data = await call_tool(
            client, session_id, "create_artist", {"name": "Hidden"}, tools="create_artist"
        )

        assert data == _not_found("create_artist")
        assert store.all() == []

    async def test_unknown_tool_looks_like_hidden_tool(self, mcp_session):
        client, session_id = await mcp_session()

        data = await call_tool(client, session_id, "no_such_tool")

        assert data == _not_found("no_such_tool")

    async def test_empty_request_scope_rejects_every_call(self, mcp_session):
        client, session_id = await mcp_session()

        data = await call_tool(client, session_id, "list_artists", tools="")

        assert data == _not_found("list_artists")


class TestLastAttachedScope:
    async def test_inner_middleware_overwrites_outer(self, mcp_session):
        client, session_id = await mcp_session(
            middleware=[
                Middleware(RequestScopeMiddleware, tools_for=lambda request: ["list_artists"]),
                Middleware(RequestScopeMiddleware, tools_for=lambda request: ["create_artist"]),
            ]
        )

        listed = await list_tools(client, session_id)
        assert [t["name"] for t in listed["result"]["tools"]] == ["create_artist"]

        data = await call_tool(client, session_id, "list_artists")
        assert data == _not_found("list_artists")

        created = await call_tool(client, session_id, "create_artist", {"name": "Last Write"})
        assert created["result"].get("isError") is not True
        assert [artist.name for artist in store.all()] == ["Last Write"]


class TestConcurrentRequests:
    async def test_scopes_do_not_leak_between_concurrent_requests(self, mcp_session):
        client, session_id = await mcp_session()
        scopes = ["list_artists", "create_artist,update_artist", "", None, "search_artists"]

        results = await asyncio.gather(
            *(list_tools(client, session_id, tools=tools) for tools in scopes)
        )

        assert [[t["name"] for t in data["result"]["tools"]] for data in results] == [
            ["list_artists"],
            ["create_artist", "update_artist"],
            [],
            list(TOOL_NAMES),
            ["search_artists"],
        ]
