from typing import Any, Dict, Literal

from pydantic import BaseModel

from hubproxy.context import HubContext
from hubproxy.tools.base import ToolResult, ToolSpec


class CacheInfoInput(BaseModel):
    action: Literal["stats", "info", "clear"] = "info"


def _rate_limit_status(ctx: HubContext) -> Dict[str, Any]:
    return {**ctx.limiter.stats().model_dump(), "health": ctx.limiter.health()}


async def cache_info(ctx: HubContext, args: CacheInfoInput) -> ToolResult:
    cache: Dict[str, Any] = {}
    if args.action == "stats":
        cache["stats"] = ctx.api.cache_stats().model_dump()
        summary = "Cache statistics retrieved"
    elif args.action == "clear":
        ctx.api.clear_cache()
        cache["cleared"] = True
        summary = "Cache cleared successfully"
    else:
        cache["info"] = ctx.api.cache_info()
        summary = "Cache information retrieved"

    cache["rate_limit"] = _rate_limit_status(ctx)
    return ToolResult(summary=summary, data={"cache": cache})


TOOLS = [
    ToolSpec(
        name="docker_cache_info",
        description="Inspect or clear the response cache: hit rate, entries, memory usage and rate limit status.",
        input_model=CacheInfoInput,
        handler=cache_info,
        failure=lambda a: "Cache operation failed",
        error_data=lambda msg: {"cache": {"error": msg}},
    ),
]
