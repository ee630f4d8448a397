"""Read-only game content tools: class/race search, play guide and stat rolls."""

import random
from typing import Any

from pydantic import BaseModel, Field

from chronicler.models.character import STAT_NAMES
from chronicler.models.llm import ToolResult
from chronicler.models.user import User
from chronicler.services.content import ContentCatalog, SearchKind, SemanticSearch
from chronicler.tools.base import ToolDefinition, ToolHandler, ToolName, get_text_arg

SEARCH_LIMIT = 10
STAT_DIE_SIDES = 8


class DescriptionSearchInput(BaseModel):
    """Input schema for description-based class and race searches."""

    description: str = Field(..., description="The description to match against")


class NoInput(BaseModel):
    """Tools that take no arguments."""


CONTENT_TOOL_DEFINITIONS = [
    ToolDefinition(
        name=ToolName.GET_CLOSEST_CLASSES_TO_DESCRIPTION,
        description="Retrieves the 10 closest matching classes based on a description provided.",
        input_schema_class=DescriptionSearchInput,
    ),
    ToolDefinition(
        name=ToolName.GET_CLOSEST_RACES_TO_DESCRIPTION,
        description="Retrieves the 10 closest matching races available in the Chronicles of the Omuns.",
        input_schema_class=DescriptionSearchInput,
    ),
    ToolDefinition(
        name=ToolName.GET_HOW_TO_PLAY_CLASSES,
        description="Retrieves information on how to play the classes available in the Chronicles of the Omuns.",
        input_schema_class=NoInput,
    ),
    ToolDefinition(
        name=ToolName.GET_STATS_TO_ASSIGN,
        description="Gets 6 random numbers to assign to the character stats. Call this before assigning stats.",
        input_schema_class=NoInput,
    ),
]


def roll_stats(rng: random.Random, sides: int = STAT_DIE_SIDES) -> list[int]:
    """Roll one die per stat."""
    return [rng.randint(1, sides) for _ in STAT_NAMES]


def create_content_handlers(
    search: SemanticSearch, catalog: ContentCatalog, rng: random.Random | None = None
) -> dict[ToolName, ToolHandler]:
    rng = rng or random.Random()

    async def get_closest_classes(args: dict[str, Any], caller: User) -> ToolResult:
        description = get_text_arg(args, "description")
        if not description:
            return ToolResult.fail("A description is required to search for classes")

        hits = await search.search(SearchKind.CLASS, description, SEARCH_LIMIT)
        return ToolResult.ok(
            "Closest classes retrieved successfully, call the tool how to play the classes for more details.",
            classes=[hit.as_dict() for hit in hits],
        )

    async def get_closest_races(args: dict[str, Any], caller: User) -> ToolResult:
        description = get_text_arg(args, "description")
        if not description:
            return ToolResult.fail("A description is required to search for races")

        hits = await search.search(SearchKind.RACE, description, SEARCH_LIMIT)
        return ToolResult.ok("Closest races retrieved successfully.", races=[hit.as_dict() for hit in hits])

    async def get_how_to_play_classes(args: dict[str, Any], caller: User) -> ToolResult:
        return ToolResult.ok(catalog.how_to_play())

    async def get_stats_to_assign(args: dict[str, Any], caller: User) -> ToolResult:
        return ToolResult.ok("Random stats generated successfully.", stats=roll_stats(rng))

    return {
        ToolName.GET_CLOSEST_CLASSES_TO_DESCRIPTION: get_closest_classes,
        ToolName.GET_CLOSEST_RACES_TO_DESCRIPTION: get_closest_races,
        ToolName.GET_HOW_TO_PLAY_CLASSES: get_how_to_play_classes,
        ToolName.GET_STATS_TO_ASSIGN: get_stats_to_assign,
    }
