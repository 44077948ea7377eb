"""
Base classes and registry for agent tools.

Tools are grouped under service names (e.g. "FileRead", "TaskManager").
Agent configurations refer to services; the registry resolves a service to
the tool names it contains and renders their schemas for a completion API.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..utils.logger import get_logger

logger = get_logger(__name__)


ToolFunction = Callable[..., Union[Any, Awaitable[Any]]]


class ToolExecutor(ABC):
    """Tool execution capability used by the tool-call loop."""

    @abstractmethod
    def tool_names_for_service(self, service: str) -> List[str]:
        """Names of the tools a service exposes."""

    @abstractmethod
    async def execute(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Execute a tool and return an opaque, text-convertible result."""


class BaseTool(ABC):
    """Base class for all tools."""

    name: str = ""
    description: str = ""

    @abstractmethod
    def get_schema(self) -> Dict[str, Any]:
        """Get the tool's input schema (JSON schema object)."""

    @abstractmethod
    async def execute(self, **kwargs) -> Any:
        """Execute the tool with given arguments."""

    def to_function_tool(self) -> Dict[str, Any]:
        """Chat-completions ("function") tool definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.get_schema(),
            },
        }

    def to_claude_tool(self) -> Dict[str, Any]:
        """Anthropic tool definition."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.get_schema(),
        }


class FunctionTool(BaseTool):
    """Wraps a plain (sync or async) callable as a tool."""

    def __init__(self, name: str, description: str, schema: Dict[str, Any], func: ToolFunction):
        self.name = name
        self.description = description
        self._schema = schema
        self._func = func

    def get_schema(self) -> Dict[str, Any]:
        return self._schema

    async def execute(self, **kwargs) -> Any:
        if inspect.iscoroutinefunction(self._func):
            return await self._func(**kwargs)
        result = await asyncio.to_thread(self._func, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result


class ToolRegistry(ToolExecutor):
    """
    Registry of tools grouped by service.

    Provides tool discovery, schema rendering and execution.
    """

    def __init__(self):
        self._tools: Dict[str, BaseTool] = {}
        self._services: Dict[str, List[str]] = {}

    def register_tool(self, tool: BaseTool, service: str) -> None:
        """Register a tool instance under a service."""
        self._tools[tool.name] = tool
        names = self._services.setdefault(service, [])
        if tool.name not in names:
            names.append(tool.name)
        logger.debug("Registered tool", tool_name=tool.name, service=service)

    def register_function(
        self,
        name: str,
        description: str,
        schema: Dict[str, Any],
        func: ToolFunction,
        service: str,
    ) -> None:
        """Register a standalone function as a tool."""
        self.register_tool(FunctionTool(name, description, schema, func), service)

    def get_tool(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def list_tools(self) -> List[str]:
        return list(self._tools.keys())

    def list_services(self) -> List[str]:
        return list(self._services.keys())

    def tool_names_for_service(self, service: str) -> List[str]:
        return list(self._services.get(service, []))

    def _tools_for_services(self, services: Sequence[str]) -> List[BaseTool]:
        seen = set()
        tools = []
        for service in services:
            for name in self._services.get(service, []):
                if name not in seen:
                    seen.add(name)
                    tools.append(self._tools[name])
        return tools

    def function_schemas(self, services: Sequence[str]) -> List[Dict[str, Any]]:
        """Chat-completions tool definitions for the given services."""
        return [tool.to_function_tool() for tool in self._tools_for_services(services)]

    def claude_schemas(self, services: Sequence[str]) -> List[Dict[str, Any]]:
        """Anthropic tool definitions for the given services."""
        return [tool.to_claude_tool() for tool in self._tools_for_services(services)]

    async def execute(self, name: str, arguments: Dict[str, Any]) -> Any:
        """Execute a tool by name with given arguments."""
        tool = self._tools.get(name)
        if not tool:
            raise ValueError(f"Unknown tool: {name}")
        return await tool.execute(**arguments)
