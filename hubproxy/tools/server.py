"""JSON-RPC over HTTP server for the Docker Hub tools."""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI

from hubproxy.context import HubContext
from hubproxy.tools.base import ToolResult, ToolServer
from hubproxy.tools.catalog import run_tool, tool_definitions

DEFAULT_PORT = 8100


class HubToolServer(ToolServer):
    """Serves every catalog tool from one shared HubContext"""

    def __init__(
        self,
        ctx: Optional[HubContext] = None,
        port: int = DEFAULT_PORT,
        preload: bool = False,
    ):
        self.ctx = ctx or HubContext.create()
        self.preload = preload
        super().__init__(
            name="hubproxy",
            port=port,
            tools=tool_definitions(),
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.ctx.start()
        if self.preload:
            report = await self.ctx.api.preload_popular_images()
            self.logger.info(
                f"Preloaded {len(report.successful)}/{report.total} popular image entries"
            )
        try:
            yield
        finally:
            await self.ctx.aclose()

    async def execute_tool(self, tool_id: str, params: Dict[str, Any]) -> ToolResult:
        return await run_tool(self.ctx, tool_id, params)

    def health(self) -> Dict[str, Any]:
        limiter = self.ctx.limiter.health()
        return {
            "status": limiter["status"],
            "name": self.name,
            "credential_configured": self.ctx.config.has_credential,
            "cache": self.ctx.cache.stats().model_dump(),
            "cache_cleanup_running": self.ctx.cache.running,
            "rate_limit": limiter,
        }


def create_app(ctx: Optional[HubContext] = None) -> FastAPI:
    """FastAPI app for ASGI servers (uvicorn hubproxy.tools.server:create_app --factory)"""
    return HubToolServer(ctx).app
