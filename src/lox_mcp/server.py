"""Loxone MCP Server.

Exposes a Loxone Miniserver to MCP clients. Tools and resources come from
YAML definitions (see lox_mcp.config); each call is routed to a dispatcher
bound to the shared LoxoneAdapter.

Usage:
    # Run as module (SSE on port 3001)
    python -m lox_mcp

    # STDIO mode for Claude Desktop and similar clients
    python -m lox_mcp --transport stdio

    # Or import and run
    from lox_mcp import create_lox_mcp_server
    server = create_lox_mcp_server()
    asyncio.run(server.serve("stdio"))

Environment:
    LOXONE_HOST, LOXONE_USER, LOXONE_PASS (required)
    LOX_MCP_CONFIG, LOX_MCP_LOG_LEVEL, LOXONE_TIMEOUT (optional)
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Any

import uvicorn
from mcp import types
from mcp.server.lowlevel import NotificationOptions, Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Mount, Route

from lox_mcp import __version__
from lox_mcp.adapter import LoxoneAdapter
from lox_mcp.address import resolve_endpoint
from lox_mcp.config import LoxoneConfig, McpConfig
from lox_mcp.constants import DEFAULT_HTTP_PORT, SERVER_NAME
from lox_mcp.exceptions import AddressError, ConfigurationError
from lox_mcp.registry import ResourceRegistry, ToolRegistry

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging to stderr; stdout is reserved for the stdio transport."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


class LoxoneMCPServer:
    """MCP server exposing configured Loxone tools and resources.

    Attributes:
        adapter: Shared Miniserver adapter.
        tools: Registry of configured tools.
        resources: Registry of configured resources.
        server: Low-level MCP server instance.
    """

    def __init__(
        self,
        adapter: LoxoneAdapter,
        definitions: McpConfig,
        name: str = SERVER_NAME,
        version: str = __version__,
    ) -> None:
        """Initialize the server.

        Args:
            adapter: Miniserver adapter shared by all dispatchers.
            definitions: Tool and resource definitions.
            name: Server name reported to clients.
            version: Server version reported to clients.
        """
        self.adapter = adapter
        self.tools = ToolRegistry(adapter, definitions.tools)
        self.resources = ResourceRegistry(adapter, definitions.resources)
        self.server = Server(name, version=version)
        self._register_handlers()

    def _register_handlers(self) -> None:
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self.tools.list_tools()

        # Arguments are checked by the dispatchers, which report missing
        # parameters by name
        @self.server.call_tool(validate_input=False)
        async def call_tool(name: str, arguments: dict[str, Any]) -> types.CallToolResult:
            logger.info(f"call_tool: {name}")
            result = await self.tools.call(name, arguments)
            return result.to_call_tool_result()

        @self.server.list_resources()
        async def list_resources() -> list[types.Resource]:
            return self.resources.list_resources()

        @self.server.list_resource_templates()
        async def list_resource_templates() -> list[types.ResourceTemplate]:
            return self.resources.list_templates()

        @self.server.read_resource()
        async def read_resource(uri: Any) -> list[ReadResourceContents]:
            logger.info(f"read_resource: {uri}")
            result = await self.resources.read(str(uri))
            return [ReadResourceContents(content=result.text, mime_type=result.mime_type)]

    def create_initialization_options(self) -> InitializationOptions:
        """Capabilities: tools and resources, without change notifications."""
        return self.server.create_initialization_options(
            notification_options=NotificationOptions(
                tools_changed=False,
                resources_changed=False,
            )
        )

    async def run_stdio(self) -> None:
        """Serve one client over stdin/stdout."""
        logger.info("Loxone MCP Server started in STDIO mode")
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.create_initialization_options(),
            )

    def create_sse_app(self) -> Starlette:
        """Build the Starlette app serving MCP over SSE (GET /sse, POST /messages/)."""
        sse = SseServerTransport("/messages/")

        async def handle_sse(request: Request) -> Response:
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.create_initialization_options(),
                )
            return Response()

        return Starlette(
            routes=[
                Route("/sse", endpoint=handle_sse, methods=["GET"]),
                Mount("/messages/", app=sse.handle_post_message),
            ]
        )

    async def run_sse(self, host: str = "0.0.0.0", port: int = DEFAULT_HTTP_PORT) -> None:
        """Serve clients over HTTP/SSE with uvicorn."""
        log_level = logging.getLevelName(logging.getLogger().getEffectiveLevel()).lower()
        config = uvicorn.Config(
            self.create_sse_app(),
            host=host,
            port=port,
            log_level=log_level if log_level in uvicorn.config.LOG_LEVELS else "info",
        )
        logger.info(f"Loxone MCP Server started in SSE mode on {host}:{port}")
        await uvicorn.Server(config).serve()

    async def serve(
        self,
        transport: str = "sse",
        host: str = "0.0.0.0",
        port: int = DEFAULT_HTTP_PORT,
    ) -> None:
        """Run the chosen transport, closing the Miniserver connection afterwards.

        Args:
            transport: 'stdio' or 'sse'.
            host: Bind address for SSE.
            port: Port for SSE.
        """
        try:
            if transport == "stdio":
                await self.run_stdio()
            else:
                await self.run_sse(host, port)
        finally:
            await self.close()

    async def close(self) -> None:
        """Close the Miniserver connection."""
        await self.adapter.close()
        logger.info("Loxone connection closed")


# =============================================================================
# Factory Functions
# =============================================================================


def create_lox_mcp_server(
    config: LoxoneConfig | None = None,
    adapter: LoxoneAdapter | None = None,
    definitions: McpConfig | None = None,
) -> LoxoneMCPServer:
    """Create a Loxone MCP Server instance.

    Args:
        config: Process configuration (defaults to LoxoneConfig.from_env()).
        adapter: Optional pre-built adapter.
        definitions: Optional tool/resource definitions (defaults to config's YAML).

    Returns:
        Configured LoxoneMCPServer instance.
    """
    config = config or LoxoneConfig.from_env()
    adapter = adapter or LoxoneAdapter(
        config.host,
        config.username,
        config.password,
        timeout=config.timeout,
    )
    definitions = definitions if definitions is not None else config.load_definitions()
    return LoxoneMCPServer(adapter, definitions)


# =============================================================================
# CLI Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point for the MCP server."""
    import argparse

    parser = argparse.ArgumentParser(description="Loxone MCP Server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "http"],
        default="sse",
        help="Transport to use (default: sse; http is an alias for sse)",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind address for SSE")
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_HTTP_PORT,
        help=f"Port for SSE (default: {DEFAULT_HTTP_PORT})",
    )
    parser.add_argument("--config", help="Path to tool/resource YAML configuration")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: LOX_MCP_LOG_LEVEL or INFO)",
    )

    args = parser.parse_args()

    config = LoxoneConfig()
    setup_logging(args.log_level or config.log_level)

    # Credentials and address are checked before any Miniserver access
    try:
        config.validate()
        endpoint = resolve_endpoint(config.host)
    except (ConfigurationError, AddressError) as e:
        logger.error(str(e))
        sys.exit(1)

    if args.config:
        config.config_path = args.config

    logger.info(
        f"Starting Loxone MCP Server ({args.transport}) for {endpoint.address_type.value} "
        f"address {config.host}"
    )
    server = create_lox_mcp_server(config=config)
    transport = "stdio" if args.transport == "stdio" else "sse"

    try:
        asyncio.run(server.serve(transport, args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Server interrupted, shutting down")


if __name__ == "__main__":
    main()
