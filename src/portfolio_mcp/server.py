#!/usr/bin/env python3
"""
Portfolio Tracker MCP Server

MCP SDK server generated from the tool registry. The same server object is
served over stdio (this module's main) and over SSE (http_server.py mounts
it at /sse and /messages/).

Tool results are wrapped in the standard ResponseEnvelope:
    {"ok": true, "error": null, "message": "...", "data": <result>}
"""

import asyncio
import json
import logging
from typing import Any, Optional

import sentry_sdk
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from portfolio_mcp.context import ToolContext, build_context
from portfolio_mcp.env_config import Settings, get_env
from portfolio_mcp.errors import ToolError
from portfolio_mcp.handlers import build_registry
from portfolio_mcp.registry import ToolRegistry
from portfolio_mcp.response import ErrorCodes, ResponseEnvelope

logger = logging.getLogger(__name__)

SERVER_NAME = "project-tracker"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "2024-11-05"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def init_logging(level: Optional[str] = None):
    """Configure root logging for an entry point (stderr, LOG_LEVEL)."""
    logging.basicConfig(
        level=(level or get_env("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


def init_sentry(settings: Settings) -> bool:
    """Enable Sentry when SENTRY_DSN is set."""
    if not settings.sentry_dsn:
        return False
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=1.0,
        environment=settings.sentry_environment or "development",
        release=settings.sentry_release or f"portfolio-mcp@{SERVER_VERSION}",
    )
    logger.info("Sentry monitoring enabled")
    return True


def format_response(response: dict) -> list[types.TextContent]:
    """Format response as MCP TextContent."""
    return [types.TextContent(type="text", text=json.dumps(response, indent=2, default=str))]


def create_mcp_server(registry: ToolRegistry, ctx: ToolContext) -> Server:
    """
    Build an MCP SDK server exposing every registered tool.

    Args:
        registry: Tool registry to advertise and dispatch through
        ctx: Handler dependencies

    Returns:
        Server: Ready to run over any MCP transport
    """
    app = Server(SERVER_NAME, version=SERVER_VERSION)

    @app.list_tools()
    async def list_tools() -> list[types.Tool]:
        return registry.mcp_tools()

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[types.TextContent]:
        try:
            result = await registry.invoke(ctx, name, arguments)
        except ToolError as e:
            return format_response(ResponseEnvelope.from_error(e))
        except Exception as e:
            logger.exception(f"Tool {name} failed")
            sentry_sdk.capture_exception(e)
            return format_response(
                ResponseEnvelope.error(ErrorCodes.UNEXPECTED_EXCEPTION, f"Tool execution failed: {e}")
            )
        return format_response(ResponseEnvelope.success(name, data=result))

    return app


async def _run():
    """Run the MCP server over stdio (async)."""
    settings = Settings.from_env()
    init_sentry(settings)
    ctx = build_context(settings)
    app = create_mcp_server(build_registry(), ctx)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        await ctx.aclose()


def main():
    """Entry point for the stdio MCP server."""
    init_logging()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
