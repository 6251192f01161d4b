"""MCP stdio server exposing the Docker Hub tools."""

import asyncio
import json
from typing import Optional

from mcp.server import Server
from mcp.server.lowlevel import NotificationOptions
from mcp.server.models import InitializationOptions
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from hubproxy.context import HubContext
from hubproxy.logging_config import configure_module_logging
from hubproxy.tools.catalog import TOOLS, ToolError, run_tool

logger = configure_module_logging("mcp")

SERVER_NAME = "hubproxy"
SERVER_VERSION = "0.1.0"


class HubMCPServer:
    """MCP server for the Docker Hub tools."""

    def __init__(self, ctx: Optional[HubContext] = None):
        self.ctx = ctx or HubContext.create()
        self.server = Server(SERVER_NAME)
        self._setup_handlers()

    def _setup_handlers(self):
        """Register MCP handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            return [
                Tool(
                    name=spec.name,
                    description=spec.description,
                    inputSchema=spec.input_model.model_json_schema(),
                )
                for spec in TOOLS.values()
            ]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict) -> list[TextContent]:
            """Run a tool; the second item carries the structured payload."""
            try:
                result = await run_tool(self.ctx, name, arguments)
            except ToolError as e:
                logger.warning(f"Rejected MCP call to {name}: {e}")
                return [TextContent(type="text", text=json.dumps({"error": str(e)}))]

            return [
                TextContent(type="text", text=result.summary),
                TextContent(type="text", text=json.dumps(result.data, default=str)),
            ]

    async def start(self):
        """Serve over stdio until the client disconnects."""
        await self.ctx.start()
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    InitializationOptions(
                        server_name=SERVER_NAME,
                        server_version=SERVER_VERSION,
                        capabilities=self.server.get_capabilities(
                            notification_options=NotificationOptions(),
                            experimental_capabilities={},
                        ),
                    ),
                )
        finally:
            await self.ctx.aclose()


def main():
    """Entry point."""
    asyncio.run(HubMCPServer().start())


if __name__ == "__main__":
    main()
