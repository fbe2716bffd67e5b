"""
CLI utility to send tools/list and tools/call requests to the /rpc endpoint.

Useful for checking what a given request scope can see without setting up an
MCP client session.

Usage examples:

    # Everything the server exposes (no request scope)
    uv run python -m scripts.call_tool list

    # Only what a request scoped to two tools can see
    uv run python -m scripts.call_tool --tools list_artists,create_artist list

    # An empty request scope: no tools
    uv run python -m scripts.call_tool --tools "" list

    # Call a tool with arguments
    uv run python -m scripts.call_tool call create_artist --args '{"name": "Nina Simone"}'
"""

import argparse
import json
import sys

import httpx


def build_payload(
    method: str,
    request_id: str | int,
    name: str | None = None,
    arguments: dict | None = None,
) -> dict:
    """
    Build a JSON-RPC request object.

    Args:
        method: "tools/list" or "tools/call"
        request_id: The JSON-RPC id echoed back in the response
        name: Tool name (tools/call only)
        arguments: Tool arguments (tools/call only)
    """
    payload: dict = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if method == "tools/call":
        payload["params"] = {"name": name, "arguments": arguments or {}}
    return payload


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Send tools/list or tools/call to a toolscope server"
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8080/rpc",
        help="JSON-RPC endpoint (default: http://localhost:8080/rpc)",
    )
    parser.add_argument(
        "--tools",
        default=None,
        help="Comma separated request scope, sent in the scope header ('' for no tools)",
    )
    parser.add_argument(
        "--header",
        default="x-mcp-tools",
        help="Header carrying the request scope (default: x-mcp-tools)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="List the tools visible to this request")
    call_parser = subparsers.add_parser("call", help="Call a tool")
    call_parser.add_argument("name", help="Tool name")
    call_parser.add_argument("--args", default="{}", help="Tool arguments as a JSON object")

    args = parser.parse_args(argv)

    if args.command == "list":
        payload = build_payload("tools/list", "list_1")
    else:
        payload = build_payload("tools/call", "call_1", args.name, json.loads(args.args))

    headers = {}
    if args.tools is not None:
        headers[args.header] = args.tools

    response = httpx.post(args.url, json=payload, headers=headers)
    body = response.json()
    print(json.dumps(body, indent=2))

    return 1 if "error" in body else 0


if __name__ == "__main__":
    sys.exit(main())
