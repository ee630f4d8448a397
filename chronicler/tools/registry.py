"""Tools registry: the fixed catalog of tools offered to the model."""

from __future__ import annotations

from chronicler.tools.assignment_tools import ASSIGNMENT_TOOL_DEFINITIONS
from chronicler.tools.base import ToolDefinition, ToolName
from chronicler.tools.character_tools import CHARACTER_TOOL_DEFINITIONS
from chronicler.tools.content_tools import CONTENT_TOOL_DEFINITIONS


class ToolsRegistry:
    """Registry of tool definitions.

    The catalog is built once and shared read-only; every caller sees the same
    tools in the same order. Each definition's requires_confirmation flag is
    the one place a tool is marked as gated.
    """

    def __init__(self, definitions: list[ToolDefinition] | None = None):
        self._tools: dict[ToolName, ToolDefinition] = {}
        for tool in definitions if definitions is not None else _default_definitions():
            self._register_tool(tool)

    def _register_tool(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name} is already registered")
        self._tools[tool.name] = tool

    def list(self) -> list[ToolDefinition]:
        """Return the full catalog."""
        return [*self._tools.values()]

    def get(self, name: str) -> ToolDefinition | None:
        tool_name = ToolName.parse(name)
        return self._tools.get(tool_name) if tool_name else None

    def requires_confirmation(self, name: str) -> bool:
        """Whether the named tool must be approved by the user before it runs."""
        tool = self.get(name)
        return tool is not None and tool.requires_confirmation

    def select(self, names: list[str] | None) -> list[ToolDefinition]:
        """Narrow the catalog to the named tools, keeping catalog order. None means all tools."""
        if names is None:
            return self.list()
        wanted = set(names)
        return [tool for tool in self._tools.values() if tool.name.value in wanted]


def _default_definitions() -> list[ToolDefinition]:
    return [*CHARACTER_TOOL_DEFINITIONS, *CONTENT_TOOL_DEFINITIONS, *ASSIGNMENT_TOOL_DEFINITIONS]


_tools_registry: ToolsRegistry | None = None


def get_tools_registry() -> ToolsRegistry:
    """Get or create the shared tools registry."""
    global _tools_registry
    if _tools_registry is None:
        _tools_registry = ToolsRegistry()
    return _tools_registry
