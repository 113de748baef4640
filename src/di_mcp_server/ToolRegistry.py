import logging
from typing import Any, Awaitable, Callable, Optional

import jsonschema
import mcp.types as types

from di_mcp_server.DiscoveryErrors import ToolAlreadyRegisteredError, ToolNotRegisteredError

ToolCallback = Callable[[dict], Awaitable[list[types.TextContent]]]

_UNSET = object()


class RegisteredTool:
    """
    Handle on one entry of a ToolRegistry, returned by ToolRegistry.register_tool.

    The handle becomes stale once removed: updating or removing it again raises
    ToolNotRegisteredError.
    """

    def __init__(self, registry: "ToolRegistry", name: str, title: Optional[str], description: Optional[str],
                 input_schema: dict, callback: ToolCallback):
        self._registry = registry
        self.name = name
        self.title = title
        self.description = description
        self.input_schema = input_schema
        self.callback = callback

    @property
    def registered(self) -> bool:
        return self._registry.get(self.name) is self

    def to_tool(self) -> types.Tool:
        return types.Tool(name=self.name, title=self.title, description=self.description,
                          inputSchema=self.input_schema)

    def update(self, title=_UNSET, description=_UNSET, input_schema=_UNSET, callback=_UNSET):
        """Replaces the given attributes in place, the tool keeps its name."""
        if not self.registered:
            raise ToolNotRegisteredError(self.name)
        if title is not _UNSET:
            self.title = title
        if description is not _UNSET:
            self.description = description
        if input_schema is not _UNSET:
            self.input_schema = input_schema
        if callback is not _UNSET:
            self.callback = callback

    def remove(self):
        self._registry._remove(self)


class ToolRegistry:
    """
    The live set of tools served to MCP clients, keyed by tool name.

    Tool names are unique: registering a name twice raises ToolAlreadyRegisteredError.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._tools: dict[str, RegisteredTool] = {}

    def __len__(self):
        return len(self._tools)

    def __contains__(self, name):
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def register_tool(self, name: str, input_schema: dict, callback: ToolCallback,
                      title: Optional[str] = None, description: Optional[str] = None) -> RegisteredTool:
        if name in self._tools:
            raise ToolAlreadyRegisteredError(name)
        registered_tool = RegisteredTool(self, name, title, description, input_schema, callback)
        self._tools[name] = registered_tool
        return registered_tool

    def _remove(self, registered_tool: RegisteredTool):
        if self._tools.get(registered_tool.name) is not registered_tool:
            raise ToolNotRegisteredError(registered_tool.name)
        del self._tools[registered_tool.name]

    def list_tools(self) -> list[types.Tool]:
        return [registered_tool.to_tool() for registered_tool in self._tools.values()]

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]]) -> list[types.TextContent]:
        registered_tool = self._tools.get(name)
        if registered_tool is None:
            self.logger.error("Tool not found: %s", name)
            raise ValueError(f"Unknown tool: {name}")

        arguments = arguments or {}
        try:
            jsonschema.validate(instance=arguments, schema=registered_tool.input_schema)
        except jsonschema.ValidationError as e:
            raise ValueError(f"Input validation error: {e.message}")

        # this call may throw an exception, reported to the client as a failed tool call
        return await registered_tool.callback(arguments)
