"""Tool base class and registry for everything the model can call."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from parley.agent.types import ToolDefinition

logger = structlog.get_logger()

ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]


def error_payload(message: str) -> str:
    """Structured error returned to the model in place of a tool result."""
    return json.dumps({"error": message}, ensure_ascii=False)


class Tool(ABC):
    """Base class for all Parley tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str:
        """Execute the tool and return a string result."""
        ...

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )


class FunctionTool(Tool):
    """Adapts a bare definition + async handler (plugins, tests) to ``Tool``."""

    def __init__(self, definition: ToolDefinition, handler: ToolHandler) -> None:
        self._definition = definition
        self._handler = handler

    @property
    def name(self) -> str:
        return self._definition.name

    @property
    def description(self) -> str:
        return self._definition.description

    @property
    def parameters(self) -> dict[str, Any]:
        return self._definition.parameters

    @property
    def definition(self) -> ToolDefinition:
        return self._definition

    async def execute(self, **kwargs: Any) -> str:
        return await self._handler(kwargs)


class ToolRegistry:
    """Central registry for built-in and plugin tools."""

    def __init__(self) -> None:
        self.tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        if tool.name in self.tools:
            logger.warning("tool.duplicate", name=tool.name, action="replacing")
        self.tools[tool.name] = tool
        logger.info("tool.registered", name=tool.name)

    def register_function(self, definition: ToolDefinition, handler: ToolHandler) -> Tool:
        """Register a plain async handler under ``definition``."""
        tool = FunctionTool(definition, handler)
        self.register(tool)
        return tool

    def unregister(self, name: str) -> None:
        """Remove a tool."""
        if name in self.tools:
            del self.tools[name]
            logger.info("tool.unregistered", name=name)

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self.tools.get(name)

    async def execute(self, name: str, args: dict[str, Any]) -> str:
        """Execute a tool by name. Never raises; failures become error payloads."""
        tool = self.get(name)
        if not tool:
            logger.warning("tool.not_found", name=name)
            return error_payload(f"Tool '{name}' not found")

        try:
            result = await tool.execute(**args)
        except Exception as e:
            logger.error("tool.error", name=name, error=str(e), error_type=type(e).__name__)
            return error_payload(str(e) or type(e).__name__)

        if not isinstance(result, str):
            result = json.dumps(result, ensure_ascii=False, default=str)
        logger.info("tool.executed", name=name, result_length=len(result))
        return result

    def definitions(self) -> list[ToolDefinition]:
        """All tool schemas, in registration order, for a model request."""
        return [tool.definition for tool in self.tools.values()]

    def list_tools(self) -> list[dict[str, str]]:
        """List all tools with names and descriptions."""
        return [
            {"name": t.name, "description": t.description}
            for t in self.tools.values()
        ]
