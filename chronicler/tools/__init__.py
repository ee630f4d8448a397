"""Tools the Chronicler can call while building a character."""

from chronicler.tools.base import ToolDefinition, ToolName
from chronicler.tools.registry import ToolsRegistry, get_tools_registry

__all__ = ["ToolDefinition", "ToolName", "ToolsRegistry", "get_tools_registry"]
