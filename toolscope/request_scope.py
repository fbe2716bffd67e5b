"""
Request-scoped tool lists.

Upstream middleware (an auth layer, a tenant router, a header reader) can
narrow the tools available to a single request by attaching a list of names
to it. The list is stored in the ASGI scope's "state" mapping under the
"toolscope" key, so it follows the request through Starlette and into the
MCP transport without any global state:

    set_tools(request, ["list_artists", "create_artist"])
    get_tools(request)   # -> ["list_artists", "create_artist"]

get_tools() returns None when nothing was attached, which is not the same as
[] (attached, but no tools allowed).

The gateway never reads the store directly. It receives a RequestContext,
built once per request with RequestContext.from_request().
"""

import uuid
from collections.abc import Callable, Iterable, MutableMapping
from dataclasses import dataclass, field

from starlette.requests import HTTPConnection, Request
from starlette.types import ASGIApp, Receive, Scope, Send

from toolscope.scope import UNRESTRICTED, ScopeSpec, scope_from_tools

STATE_KEY = "toolscope"


def _namespace(scope: MutableMapping) -> MutableMapping | None:
    state = scope.get("state")
    if not isinstance(state, MutableMapping):
        return None
    namespace = state.get(STATE_KEY)
    if not isinstance(namespace, MutableMapping):
        return None
    return namespace


def set_tools(request: HTTPConnection, tools: Iterable[str] | None) -> None:
    """
    Attach the list of tool names allowed for this request.

    Other values stored under the same namespace are preserved. Calling this
    again replaces the previous list (last write wins); passing None clears
    the attachment.
    """
    state = request.scope.setdefault("state", {})
    namespace = dict(_namespace(request.scope) or {})
    namespace["tools"] = list(tools) if tools is not None else None
    state[STATE_KEY] = namespace


def get_tools(request: HTTPConnection) -> list[str] | None:
    """Return the tool list attached to this request, or None if none was attached."""
    namespace = _namespace(request.scope)
    if namespace is None:
        return None
    return namespace.get("tools")


def _short_id() -> str:
    return str(uuid.uuid4())[:8]


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request input to the gateway.

    Attributes:
        request_scope: Scope attached by upstream middleware (UNRESTRICTED if none)
        request_id: Short random ID for log correlation
    """

    request_scope: ScopeSpec = UNRESTRICTED
    request_id: str = field(default_factory=_short_id)

    @classmethod
    def from_request(cls, request: HTTPConnection | None) -> "RequestContext":
        """Build a context from an HTTP request; None (e.g. stdio) is unrestricted."""
        if request is None:
            return cls()
        return cls(request_scope=scope_from_tools(get_tools(request)))


class RequestScopeMiddleware:
    """
    ASGI middleware that attaches a request scope before the app runs.

    `tools_for` is called with the incoming request and returns the list of
    allowed tool names, or None to leave the request as it is. Several
    instances can be stacked; the innermost one to return a list wins.
    """

    def __init__(
        self,
        app: ASGIApp,
        tools_for: Callable[[Request], Iterable[str] | None],
    ) -> None:
        self.app = app
        self.tools_for = tools_for

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            request = Request(scope, receive)
            tools = self.tools_for(request)
            if tools is not None:
                set_tools(request, tools)
        await self.app(scope, receive, send)


def header_tools(header_name: str) -> Callable[[Request], list[str] | None]:
    """
    Read a comma separated tool list from a request header.

    A missing header means "not set" (None). A present but empty header means
    "no tools" ([]).
    """

    def _tools_for(request: Request) -> list[str] | None:
        value = request.headers.get(header_name)
        if value is None:
            return None
        return [name.strip() for name in value.split(",") if name.strip()]

    return _tools_for
