#!/usr/bin/env python3
"""
HTTP/SSE Transport for portfolio-mcp

Exposes the tool registry over plain HTTP, a minimal JSON /mcp endpoint, the
standard MCP SDK SSE transport and a chat endpoint that runs the agent loop.

Endpoints:
  GET  /                   - Service index
  GET  /info               - Server info, tool names and configured integrations
  GET  /health             - Liveness check
  GET  /tools              - Full tool registry
  POST /tools/{name}       - Call a tool directly (body = arguments)
  GET  /mcp                - Keep-alive event stream
  POST /mcp                - initialize / tools/list / tools/call
  GET  /sse                - SSE connection for MCP protocol
  POST /messages/          - Message endpoint for MCP protocol
  POST /chat               - Agent loop
  POST /upload             - Store a base64 file as a company document

Usage:
  python http_server.py                          # Default port 3000
  python http_server.py --port 8080              # Custom port
  PORT=8080 python http_server.py                # Via environment
"""

import argparse
import asyncio
import contextlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Mount, Route
from mcp.server.sse import SseServerTransport

from portfolio_mcp.agent import AgentLoop, build_agent
from portfolio_mcp.context import ToolContext, build_context
from portfolio_mcp.env_config import Settings
from portfolio_mcp.errors import (
    ArgumentValidationError,
    ConfigurationError,
    NotFoundError,
    ToolError,
    UnknownToolError,
)
from portfolio_mcp.handlers import build_registry
from portfolio_mcp.handlers.documents import register_upload
from portfolio_mcp.registry import ToolRegistry
from portfolio_mcp.server import (
    PROTOCOL_VERSION,
    SERVER_NAME,
    SERVER_VERSION,
    create_mcp_server,
    init_logging,
    init_sentry,
)

logger = logging.getLogger("portfolio-mcp-http")

PING_INTERVAL = 30  # seconds
UPLOAD_FIELDS = ("slug", "filename", "content_base64", "content_type")


class _SseResponse(Response):
    """
    No-op Response for SSE endpoints.

    The SSE transport handles the response directly via ASGI send callback.
    """
    async def __call__(self, scope, receive, send):
        # Do nothing - SSE transport already sent the response
        pass


def error_response(e: Exception, not_found_status: int = 500) -> JSONResponse:
    """
    Map an exception to an {error} response.

    Unknown tools are 404 and malformed requests (schema failures, bad JSON)
    400. Errors a handler raises, validation and NotFoundError included, are
    handler failures (500); an endpoint may pass not_found_status for the
    latter. Everything else is 500.
    """
    if isinstance(e, UnknownToolError):
        status_code = 404
    elif isinstance(e, ArgumentValidationError):
        status_code = 400
    elif isinstance(e, NotFoundError):
        status_code = not_found_status
    else:
        status_code = 500
    if not isinstance(e, ToolError):
        logger.error(f"Request failed: {e}", exc_info=True)
    return JSONResponse({"error": str(e)}, status_code=status_code)


async def read_json(request: Request, default: Any = None) -> Any:
    """
    Parse a JSON request body; an empty body yields default.

    Raises:
        ArgumentValidationError: If the body is not valid JSON
    """
    body = await request.body()
    if not body.strip():
        return default
    try:
        return json.loads(body)
    except ValueError as e:
        raise ArgumentValidationError(f"Request body is not valid JSON: {e}") from e


async def keepalive_events(request: Request, interval: float = PING_INTERVAL):
    """
    Event stream for GET /mcp: a connected event, then a ping every interval.

    The sleep is cancelled when the client goes away; the stream ends on
    every exit path.
    """
    yield f"data: {json.dumps({'type': 'connected'})}\n\n"
    try:
        while True:
            await asyncio.sleep(interval)
            if await request.is_disconnected():
                break
            yield f"data: {json.dumps({'type': 'ping'})}\n\n"
    finally:
        logger.info("MCP event stream closed")


def create_app(
    ctx: ToolContext,
    registry: Optional[ToolRegistry] = None,
    agent: Optional[AgentLoop] = None,
) -> Starlette:
    """
    Create the Starlette app.

    Args:
        ctx: Handler dependencies; closed when the app shuts down
        registry: Tool registry (defaults to the full registry)
        agent: Agent loop for /chat (built from ctx.settings when the
            completion API is configured)
    """
    registry = registry or build_registry()
    if agent is None and ctx.settings.llm_configured:
        agent = build_agent(ctx, registry)

    mcp_server = create_mcp_server(registry, ctx)

    # Initialize SSE transport with message endpoint
    sse = SseServerTransport("/messages/")

    async def handle_sse(request):
        """Handle SSE connection for MCP protocol."""
        logger.info(f"SSE connection from {request.client.host if request.client else 'unknown'}")

        try:
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as streams:
                await mcp_server.run(
                    streams[0], streams[1], mcp_server.create_initialization_options()
                )
        except Exception as e:
            logger.error(f"SSE connection error: {e}")
            raise

        # Return no-op response - SSE transport already sent everything
        return _SseResponse()

    async def index(request):
        return JSONResponse({
            "name": SERVER_NAME,
            "description": "Portfolio tracker: companies, milestones, documents, dev tasks and deployments as MCP tools",
            "endpoints": {
                "info": "GET /info",
                "health": "GET /health",
                "tools": "GET /tools",
                "call_tool": "POST /tools/{name}",
                "mcp": "GET|POST /mcp",
                "sse": "GET /sse",
                "messages": "POST /messages/",
                "chat": "POST /chat",
                "upload": "POST /upload",
            },
        })

    async def info(request):
        """Server info endpoint."""
        return JSONResponse({
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "transport": "http",
            "protocol": "mcp",
            "protocol_version": PROTOCOL_VERSION,
            "tools": registry.names(),
            "features": {
                "chat": agent is not None,
                "email": ctx.mailer.is_configured,
                "google": ctx.google.is_configured,
                "monitoring": bool(ctx.settings.sentry_dsn),
            },
        })

    async def health(request):
        return JSONResponse({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    async def list_tools(request):
        return JSONResponse({"tools": registry.descriptors()})

    async def call_tool_endpoint(request):
        """
        Call a tool via HTTP.

        POST /tools/{name}
        Body: JSON arguments for the tool

        Example:
          POST /tools/get_company
          {"slug": "dtiq"}
        """
        name = request.path_params["name"]
        try:
            arguments = await read_json(request, default={})
            logger.info(f"HTTP tool call: {name}")
            result = await registry.invoke(ctx, name, arguments)
        except Exception as e:
            return error_response(e)
        return JSONResponse({"result": result})

    async def mcp_stream(request):
        return StreamingResponse(
            keepalive_events(request),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    async def mcp_message(request):
        """Minimal JSON MCP endpoint: initialize, tools/list, tools/call."""
        try:
            body = await read_json(request, default={})
            if not isinstance(body, dict):
                raise ArgumentValidationError("Request body must be an object")
            method = body.get("method")
            params = body.get("params") or {}

            if method == "initialize":
                return JSONResponse({
                    "protocolVersion": PROTOCOL_VERSION,
                    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                    "capabilities": {"tools": {}},
                })
            if method == "tools/list":
                return JSONResponse({"tools": registry.descriptors()})
            if method == "tools/call":
                result = await registry.invoke(ctx, params.get("name"), params.get("arguments") or {})
                return JSONResponse({
                    "content": [{"type": "text", "text": json.dumps(result, indent=2, default=str)}]
                })
            return JSONResponse({"error": f"Unknown method: {method}"}, status_code=400)
        except Exception as e:
            return error_response(e)

    async def chat(request):
        try:
            body = await read_json(request, default={})
            message = body.get("message") if isinstance(body, dict) else None
            if not message:
                return JSONResponse({"error": "Message required"}, status_code=400)
            if agent is None:
                raise ConfigurationError("Chat not configured. Set the ANTHROPIC_API_KEY environment variable.")

            result = await agent.run(message, body.get("conversation_history") or [])
        except Exception as e:
            return error_response(e)
        return JSONResponse({
            "response": result.response,
            "conversation_history": result.conversation_history,
            "stopped_early": result.stopped_early,
        })

    async def upload(request):
        try:
            body = await read_json(request, default={})
            if not isinstance(body, dict):
                raise ArgumentValidationError("Request body must be an object")
            missing = [field for field in UPLOAD_FIELDS if not body.get(field)]
            if missing:
                return JSONResponse(
                    {"error": f"Missing required fields: {', '.join(missing)}"}, status_code=400
                )
            result = await register_upload(
                ctx,
                body["slug"],
                body["filename"],
                body["content_base64"],
                body["content_type"],
                category=body.get("category"),
                description=body.get("description"),
            )
        except Exception as e:
            return error_response(e, not_found_status=404)
        return JSONResponse(result)

    @contextlib.asynccontextmanager
    async def lifespan(app):
        logger.info(f"{SERVER_NAME} ready with {len(registry)} tools")
        try:
            yield
        finally:
            await ctx.aclose()

    # Define routes
    routes = [
        Route("/", endpoint=index, methods=["GET"]),
        Route("/info", endpoint=info, methods=["GET"]),
        Route("/health", endpoint=health, methods=["GET"]),
        Route("/tools", endpoint=list_tools, methods=["GET"]),
        Route("/tools/{name}", endpoint=call_tool_endpoint, methods=["POST"]),
        Route("/mcp", endpoint=mcp_stream, methods=["GET"]),
        Route("/mcp", endpoint=mcp_message, methods=["POST"]),
        Route("/chat", endpoint=chat, methods=["POST"]),
        Route("/upload", endpoint=upload, methods=["POST"]),
        Route("/sse", endpoint=handle_sse, methods=["GET"]),
        Mount("/messages/", app=sse.handle_post_message),
    ]

    # Configure CORS middleware
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )
    ]

    return Starlette(routes=routes, middleware=middleware, lifespan=lifespan)


def main():
    """Run the portfolio-mcp HTTP server."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="HTTP/SSE server for the portfolio tracker MCP tools"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=settings.port,
        help="HTTP port to listen on (default: PORT or MCP_HTTP_PORT, else 3000)"
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL or INFO)"
    )
    args = parser.parse_args()

    init_logging(args.log_level)
    init_sentry(settings)

    ctx = build_context(settings)
    app = create_app(ctx)

    logger.info(f"Starting {SERVER_NAME} HTTP server on {args.host}:{args.port}")
    logger.info(f"Tools: http://{args.host}:{args.port}/tools")
    logger.info(f"SSE endpoint: http://{args.host}:{args.port}/sse")
    logger.info(f"Chat: {'enabled' if settings.llm_configured else 'disabled (ANTHROPIC_API_KEY not set)'}")

    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
