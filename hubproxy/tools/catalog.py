"""
Tool catalog

Every tool the proxy exposes, by name, and the single entry point that runs
one. Whatever a handler raises is turned into an error ToolResult here, with
secrets scrubbed from the message.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from hubproxy.context import HubContext
from hubproxy.logging_config import configure_module_logging
from hubproxy.tools import cache_info, images, repositories
from hubproxy.tools.base import ToolDefinition, ToolResult, ToolSpec

logger = configure_module_logging("catalog")

TOOLS: Dict[str, ToolSpec] = {
    spec.name: spec for spec in repositories.TOOLS + images.TOOLS + cache_info.TOOLS
}


class ToolError(Exception):
    """The request never reached a tool handler"""

    pass


class UnknownTool(ToolError):
    pass


class InvalidArguments(ToolError):
    pass


def tool_definitions() -> List[ToolDefinition]:
    return [spec.definition() for spec in TOOLS.values()]


async def run_tool(
    ctx: HubContext, name: str, arguments: Optional[Dict[str, Any]] = None
) -> ToolResult:
    """
    Validate arguments and run one tool.

    Args:
        ctx: Services to run against
        name: Tool name (e.g., "docker_list_tags")
        arguments: Raw tool arguments

    Returns:
        The handler's result, or an error result if the handler raised

    Raises:
        UnknownTool: No tool has this name
        InvalidArguments: Arguments do not match the tool's input model
    """
    spec = TOOLS.get(name)
    if spec is None:
        raise UnknownTool(f"Unknown tool: {name}")

    try:
        args = spec.input_model.model_validate(arguments or {})
    except ValidationError as e:
        raise InvalidArguments(f"Invalid arguments for {name}: {e}") from e

    try:
        return await spec.handler(ctx, args)
    except Exception as e:
        message = ctx.redact(str(e)) or type(e).__name__
        logger.error(f"Tool {name} failed: {type(e).__name__}: {message}")
        return ToolResult(
            summary=f"{spec.failure(args)}: {message}",
            data=spec.error_data(message),
            is_error=True,
        )
