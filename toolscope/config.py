"""
Application configuration loaded from environment variables.

Uses pydantic-settings so every option can be set through the environment
(MCP_ prefix) or a local .env file. The static tool scope lives here: it is
read once at server start and shared read-only by every request.

    MCP_TOOLS='["list_artists", "get_artist"]'   -> only those two tools, for everyone
    MCP_TOOLS='[]'                                -> no tools at all
    (unset)                                       -> defer to the request scope
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the MCP_ prefix.
    For example, `port` reads from MCP_PORT and `tools` from MCP_TOOLS.
    """

    # --- Server settings ---

    host: str = "0.0.0.0"
    port: int = 8080

    # Maps to Python's logging levels ("debug", "info", "warning", ...).
    log_level: str = "info"

    # --- Tool scope settings ---

    # Static scope. None means "not configured", which is different from an
    # empty list: [] hides every tool, None lets the request scope decide.
    # Complex types are parsed as JSON by pydantic-settings.
    tools: list[str] | None = None

    # Header read by the upstream middleware to attach a per-request scope,
    # as a comma separated list of tool names.
    request_scope_header: str = "x-mcp-tools"

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance, created at import time.
settings = Settings()
