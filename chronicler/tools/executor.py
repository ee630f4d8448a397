"""Tool execution: dispatch a model's tool call to its handler."""

import random
from typing import Any

from chronicler.clients.discord import Notifier
from chronicler.models.llm import ToolResult
from chronicler.models.user import User
from chronicler.services.characters import CharacterStore
from chronicler.services.content import ContentCatalog, SemanticSearch
from chronicler.tools.assignment_tools import create_assignment_handlers
from chronicler.tools.base import ToolHandler, ToolName
from chronicler.tools.character_tools import create_character_handlers
from chronicler.tools.content_tools import create_content_handlers
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class UnknownToolError(LookupError):
    """The model asked for a tool that is not in the catalog."""

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class ToolExecutor:
    """Runs tool handlers against the character store, search and notifier.

    Handlers report caller-correctable problems as failed ToolResults. Only an
    unknown tool name, or an infrastructure failure, raises.
    """

    def __init__(self, handlers: dict[ToolName, ToolHandler]):
        missing = [name.value for name in ToolName if name not in handlers]
        if missing:
            raise ValueError(f"No handler registered for tools: {', '.join(missing)}")
        self._handlers = dict(handlers)

    async def execute(
        self, tool_name: str, args: dict[str, Any], caller: User, tool_call_id: str | None = None
    ) -> ToolResult:
        name = ToolName.parse(tool_name)
        if name is None:
            logger.error(f"Model requested unknown tool {tool_name!r}")
            raise UnknownToolError(tool_name)

        logger.info(f"Executing tool {name} for user {caller.id} (call {tool_call_id})")
        result = await self._handlers[name](args if isinstance(args, dict) else {}, caller)

        if not result.success:
            logger.info(f"Tool {name} reported failure: {result.message}")
        return result.model_copy(update={"tool_call_id": tool_call_id})


def create_tool_executor(
    store: CharacterStore,
    search: SemanticSearch,
    catalog: ContentCatalog,
    notifier: Notifier,
    rng: random.Random | None = None,
) -> ToolExecutor:
    """Wire every tool handler to its collaborators."""
    return ToolExecutor(
        {
            **create_character_handlers(store, notifier),
            **create_content_handlers(search, catalog, rng),
            **create_assignment_handlers(store, catalog),
        }
    )
