"""
Shared test fixtures for the toolscope test suite.

Key fixtures:
- make_request: builds a bare Starlette request (no server needed)
- rpc_client: factory for httpx clients wired to the /rpc endpoint of a
  freshly built server (in-memory ASGI, no network)

Testing approach:
- test_scope.py: unit tests for resolve(), the precedence rules in isolation.
- test_request_scope.py: the per-request attachment store and middleware.
- test_gateway.py: ToolGateway against a fake engine, checking the exact
  JSON-RPC shapes and that rejected calls never reach the engine.
- test_server.py: the real server over HTTP (/rpc, /health, /ready).
- test_mcp_endpoint.py: the standard MCP endpoint through a full session.
"""

import httpx
import pytest
from starlette.middleware import Middleware
from starlette.requests import Request

from toolscope.server import create_app, create_server
from toolscope.tools import store


@pytest.fixture(autouse=True)
def reset_store():
    """The artist store is module-level; start every test with it empty."""
    store.reset()
    yield
    store.reset()


@pytest.fixture
def make_request():
    """
    Factory fixture for bare Starlette requests.

    Usage in tests:
        def test_something(make_request):
            request = make_request(headers={"x-mcp-tools": "list_artists"})
    """

    def _make_request(headers: dict[str, str] | None = None) -> Request:
        scope = {
            "type": "http",
            "method": "GET",
            "path": "/",
            "query_string": b"",
            "headers": [
                (key.lower().encode("latin-1"), value.encode("latin-1"))
                for key, value in (headers or {}).items()
            ],
        }
        return Request(scope)

    return _make_request


@pytest.fixture
async def rpc_client():
    """
    Factory fixture for clients talking to a server's /rpc endpoint.

    Usage in tests:
        async def test_something(rpc_client):
            client = await rpc_client(static_tools=["list_artists"])
            response = await client.post("/rpc", json={...})

    The default ASGI middleware reads the request scope from the
    "x-mcp-tools" header; pass `middleware` to replace it.
    """
    clients = []

    async def _create_client(
        static_tools: list[str] | None = None,
        middleware: list[Middleware] | None = None,
    ) -> httpx.AsyncClient:
        app = create_app(create_server(static_tools), middleware)
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
        )
        clients.append(client)
        return client

    yield _create_client

    for client in clients:
        await client.aclose()
