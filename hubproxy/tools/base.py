"""Tool envelope and the JSON-RPC tool server base class."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, List, Optional, Type

from fastapi import FastAPI
from pydantic import BaseModel, Field

from hubproxy.logging_config import configure_module_logging


class Message(BaseModel):
    """JSON-RPC 2.0 request"""

    jsonrpc: str = "2.0"
    method: str
    params: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None


class ToolResult(BaseModel):
    """Uniform result of every tool, successful or not"""

    summary: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_error: bool = False


class ToolDefinition(BaseModel):
    """Tool entry of the tool card"""

    id: str
    description: str
    input_schema: Optional[Dict[str, Any]] = None


class ToolCard(BaseModel):
    name: str
    url: str
    tools: List[ToolDefinition]


@dataclass
class ToolSpec:
    """
    One tool: its argument model, its handler and what it returns on failure.

    failure builds the summary prefix from the validated arguments;
    error_data builds the payload from the redacted error message.
    """

    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[Any, Any], Awaitable[ToolResult]]
    failure: Callable[[Any], str]
    error_data: Callable[[str], Dict[str, Any]]

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            id=self.name,
            description=self.description,
            input_schema=self.input_model.model_json_schema(),
        )


class ToolServer(ABC):
    """FastAPI server exposing tools over JSON-RPC"""

    def __init__(
        self,
        name: str,
        port: int,
        tools: List[ToolDefinition],
        lifespan: Optional[Callable[[FastAPI], AsyncContextManager[None]]] = None,
    ):
        """Initialize tool server.

        Args:
            name: Server name
            port: Port to run FastAPI server on
            tools: Tools this server provides
            lifespan: Startup/shutdown hook passed to FastAPI
        """
        self.name = name
        self.port = port
        self.tools = tools
        self.app = FastAPI(title=name, lifespan=lifespan)

        self.logger = configure_module_logging("server")
        self.logger.info(f"Initializing {name} on port {port}")
        self.logger.debug(f"Provided tools: {[t.id for t in tools]}")

        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes."""

        @self.app.get("/tool-card")
        async def get_tool_card():
            """Get the tool card with input schemas."""
            return ToolCard(
                name=self.name,
                url=f"http://localhost:{self.port}",
                tools=self.tools,
            ).model_dump()

        @self.app.get("/health")
        async def health():
            return self.health()

        @self.app.post("/execute")
        async def execute(message: Message):
            """Execute a tool."""
            start_time = time.time()
            tool_id = message.method
            self.logger.info(f"Received request to execute tool: {tool_id}")
            self.logger.debug(f"Request ID: {message.id}, Params: {list(message.params)}")

            try:
                result = await self.execute_tool(tool_id, message.params)
                elapsed = time.time() - start_time
                self.logger.info(
                    f"Tool {tool_id} completed in {elapsed:.2f}s (error={result.is_error})"
                )
                return {
                    "jsonrpc": "2.0",
                    "result": result.model_dump(),
                    "id": message.id,
                }
            except Exception as e:
                elapsed = time.time() - start_time
                self.logger.error(f"Tool {tool_id} rejected after {elapsed:.2f}s: {e}")
                return {
                    "jsonrpc": "2.0",
                    "error": {
                        "code": -1,
                        "message": str(e),
                    },
                    "id": message.id,
                }

    @abstractmethod
    async def execute_tool(self, tool_id: str, params: Dict[str, Any]) -> ToolResult:
        """Execute a tool. Must be implemented by subclasses.

        Raises:
            Exception: The tool is unknown or the arguments are invalid
        """
        pass

    def health(self) -> Dict[str, Any]:
        return {"status": "healthy", "name": self.name}

    def run(self, host: str = "127.0.0.1"):
        """Run the FastAPI server.

        Args:
            host: Host to bind to
        """
        import uvicorn

        uvicorn.run(self.app, host=host, port=self.port)
