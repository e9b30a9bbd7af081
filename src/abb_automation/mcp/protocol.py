"""MCP tool registry and the Model Context Protocol server that serves it.

Each tool server module fills a ``ToolRegistry``. ``RegistryServer`` puts
the registry behind the MCP SDK's FastMCP server, which speaks JSON-RPC
over stdio or streamable HTTP. ``create_http_app`` mounts the
streamable-HTTP endpoint next to a health check for running under uvicorn:

    GET  /health   Health check
    POST /mcp      MCP streamable-HTTP endpoint
"""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import anyio.to_thread
from fastapi import FastAPI
from mcp import types
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import BaseModel, ConfigDict, ValidationError

from abb_automation import __version__
from abb_automation.errors import AutomationError

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────
# Models
# ──────────────────────────────────────────────────
class ToolArgs(BaseModel):
    """Base for tool argument models; unknown keys are rejected."""
    model_config = ConfigDict(extra="forbid")


class NoArgs(ToolArgs):
    pass


def text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)],
                                isError=is_error)


def as_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


# ──────────────────────────────────────────────────
# Registry
# ──────────────────────────────────────────────────
@dataclass
class Tool:
    name: str
    description: str
    args_model: type[ToolArgs]
    handler: Callable[[Any], str]

    def definition(self) -> types.Tool:
        return types.Tool(name=self.name, description=self.description,
                          inputSchema=self.args_model.model_json_schema())


class ToolRegistry:
    """Named tools of one MCP server. Handlers take a validated args model and return text."""

    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description
        self.tools: dict[str, Tool] = {}

    def tool(self, name: str, description: str,
             args_model: type[ToolArgs] = NoArgs) -> Callable:
        def register(handler: Callable[[Any], str]) -> Callable[[Any], str]:
            self.tools[name] = Tool(name, description, args_model, handler)
            return handler
        return register

    def definitions(self) -> list[types.Tool]:
        return [t.definition() for t in self.tools.values()]

    def call(self, name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        """Run a tool. Bad arguments and every handler failure come back as ``isError``.

        Raises:
            KeyError: No tool called ``name``.
        """
        tool = self.tools[name]
        try:
            args = tool.args_model.model_validate(arguments)
        except ValidationError as exc:
            return text_result(f"Invalid arguments for {name}: {exc}", is_error=True)
        try:
            return text_result(tool.handler(args))
        except AutomationError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return text_result(str(exc), is_error=True)
        except Exception as exc:
            logger.exception("Unexpected error in tool %s", name)
            return text_result(f"{name} failed: {type(exc).__name__}: {exc}", is_error=True)


# ──────────────────────────────────────────────────
# MCP server
# ──────────────────────────────────────────────────
class RegistryServer(FastMCP):
    """FastMCP server whose tool list and tool calls come from a ``ToolRegistry``.

    Handlers make blocking HTTP calls, so each call runs in a worker thread.
    ``server_settings`` go to FastMCP (``host``, ``port``, ...).
    """

    def __init__(self, registry: ToolRegistry, **server_settings: Any) -> None:
        super().__init__(registry.name, instructions=registry.description or None,
                         **server_settings)
        self.registry = registry

    async def list_tools(self) -> list[types.Tool]:
        return self.registry.definitions()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        if name not in self.registry.tools:
            raise ToolError(f"Unknown tool: {name}")
        logger.info("MCP tool call: %s", name)
        result = await anyio.to_thread.run_sync(self.registry.call, name, arguments or {})
        if result.isError:
            raise ToolError(result.content[0].text)
        return list(result.content)


def create_http_app(server: RegistryServer) -> FastAPI:
    """FastAPI app serving ``server`` over streamable HTTP at ``/mcp``."""
    mcp_app = server.streamable_http_app()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        async with server.session_manager.run():
            yield

    app = FastAPI(title=server.name, description=server.registry.description,
                  version=__version__, lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": server.name}

    app.mount("/", mcp_app)
    return app
