"""Character assignment tools: class, race, stats and DM-feedback revisions."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chronicler.models.character import STAT_NAMES, ApprovalStatus, StatBlock
from chronicler.models.llm import ToolResult
from chronicler.models.user import User
from chronicler.services.characters import CharacterStore
from chronicler.services.content import ContentCatalog
from chronicler.tools.base import ToolDefinition, ToolHandler, ToolName, get_text_arg
from chronicler.tools.character_tools import load_owned_character
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class AssignClassInput(BaseModel):
    """Input schema for assign_character_class."""

    character_id: str = Field(..., description="The ID of the character to assign the class to.")
    class_name: str = Field(..., description="The name of the class to assign to the character.")


class AssignRaceInput(BaseModel):
    """Input schema for assign_character_race."""

    character_id: str = Field(..., description="The ID of the character to assign the race to.")
    race_name: str = Field(..., description="The name of the race to assign to the character.")


class AssignStatsInput(BaseModel):
    """Input schema for assign_character_stats."""

    character_id: str = Field(..., description="The ID of the character to assign the stats to.")
    stats: StatBlock = Field(..., description="An object containing the stats to assign to the character.")


class ReviseCharacterInput(BaseModel):
    """Input schema for revise_character_based_on_dm_feedback."""

    model_config = ConfigDict(populate_by_name=True)

    character_id: str = Field(..., description="The ID of the character to revise.")
    name: str = Field(..., description="The updated character name.")
    class_: str = Field(..., alias="class", description="The updated character class.")
    race: str = Field(..., description="The updated character race.")
    stats: StatBlock = Field(..., description="An object containing the updated stats for the character.")


ASSIGNMENT_TOOL_DEFINITIONS = [
    ToolDefinition(
        name=ToolName.ASSIGN_CHARACTER_CLASS,
        description=(
            "Assigns a class to a character. Must be called before assigning a race. "
            "User must approve of the character class assignment before calling this tool."
        ),
        input_schema_class=AssignClassInput,
        requires_confirmation=True,
    ),
    ToolDefinition(
        name=ToolName.ASSIGN_CHARACTER_RACE,
        description=(
            "Assigns a race to a character that already has a class. "
            "The user must approve of the character race assignment before calling this tool."
        ),
        input_schema_class=AssignRaceInput,
        requires_confirmation=True,
    ),
    ToolDefinition(
        name=ToolName.ASSIGN_CHARACTER_STATS,
        description=(
            "Assigns stats to a character that already has a class and race. "
            "Use the character's class as a guide to assign the rolled numbers optimally."
        ),
        input_schema_class=AssignStatsInput,
        requires_confirmation=True,
    ),
    ToolDefinition(
        name=ToolName.REVISE_CHARACTER_BASED_ON_DM_FEEDBACK,
        description="Revises a character based on DM feedback and updates the character.",
        input_schema_class=ReviseCharacterInput,
    ),
]


def parse_stats(raw: Any) -> StatBlock | str:
    """Validate a stats object, returning an error message when it is unusable."""
    if not isinstance(raw, dict):
        return "Stats object is required to assign stats to the character"

    missing = [name for name in STAT_NAMES if name not in raw]
    if missing:
        return f"Stats object is missing {', '.join(missing)}"

    try:
        return StatBlock.model_validate(raw)
    except ValidationError:
        return f"Stats must be whole numbers for {', '.join(STAT_NAMES)}"


def create_assignment_handlers(store: CharacterStore, catalog: ContentCatalog) -> dict[ToolName, ToolHandler]:
    async def assign_character_class(args: dict[str, Any], caller: User) -> ToolResult:
        loaded = await load_owned_character(store, args, caller, "assign a class")
        if isinstance(loaded, ToolResult):
            return loaded

        class_name = get_text_arg(args, "class_name")
        if not class_name:
            return ToolResult.fail("Class name is required to assign a class to the character")

        character_class = catalog.find_class(class_name)
        if character_class is None:
            return ToolResult.fail(
                f'Class "{class_name}" does not exist. '
                "Use get_closest_classes_to_description to find an available class."
            )

        updated = await store.update_character(loaded.id, caller.id, class_name=character_class.name)
        return ToolResult.ok(
            f'Assigned class {character_class.name} to "{updated.name}"',
            characterId=updated.id,
            className=character_class.name,
        )

    async def assign_character_race(args: dict[str, Any], caller: User) -> ToolResult:
        loaded = await load_owned_character(store, args, caller, "assign a race")
        if isinstance(loaded, ToolResult):
            return loaded

        race_name = get_text_arg(args, "race_name")
        if not race_name:
            return ToolResult.fail("Race name is required to assign a race to the character")

        if not loaded.class_name:
            return ToolResult.fail(
                f'Character "{loaded.name}" does not have a class assigned yet. '
                "Please assign a class before assigning a race."
            )

        race = catalog.find_race(race_name)
        if race is None:
            return ToolResult.fail(
                f'Race "{race_name}" does not exist. Use get_closest_races_to_description to find an available race.'
            )

        updated = await store.update_character(loaded.id, caller.id, race_name=race.name)
        return ToolResult.ok(
            f'Assigned race {race.name} to "{updated.name}"', characterId=updated.id, raceName=race.name
        )

    async def assign_character_stats(args: dict[str, Any], caller: User) -> ToolResult:
        loaded = await load_owned_character(store, args, caller, "assign stats")
        if isinstance(loaded, ToolResult):
            return loaded

        stats = parse_stats(args.get("stats"))
        if isinstance(stats, str):
            return ToolResult.fail(stats)

        if not loaded.class_name:
            return ToolResult.fail(
                f'Character "{loaded.name}" does not have a class assigned yet. '
                "Please assign a class before assigning stats."
            )
        if not loaded.race_name:
            return ToolResult.fail(
                f'Character "{loaded.name}" does not have a race assigned yet. '
                "Please assign a race before assigning stats."
            )

        updated = await store.update_character(loaded.id, caller.id, stats=stats)
        return ToolResult.ok(
            f'Assigned stats to "{updated.name}"', characterId=updated.id, stats=stats.as_dict()
        )

    async def revise_character(args: dict[str, Any], caller: User) -> ToolResult:
        loaded = await load_owned_character(store, args, caller, "revise a character")
        if isinstance(loaded, ToolResult):
            return loaded

        name = get_text_arg(args, "name")
        class_name = get_text_arg(args, "class")
        race_name = get_text_arg(args, "race")
        if not (name and class_name and race_name and args.get("stats")):
            return ToolResult.fail("Name, class, race, and stats are required to revise a character")

        stats = parse_stats(args["stats"])
        if isinstance(stats, str):
            return ToolResult.fail(stats)

        character_class = catalog.find_class(class_name)
        race = catalog.find_race(race_name)
        if character_class is None or race is None:
            unknown = class_name if character_class is None else race_name
            return ToolResult.fail(f'"{unknown}" is not an available class or race')

        updated = await store.update_character(
            loaded.id,
            caller.id,
            name=name,
            class_name=character_class.name,
            race_name=race.name,
            stats=stats,
            status=ApprovalStatus.REVISED,
        )
        logger.info(f"Revised character {updated.id} from DM feedback")
        return ToolResult.ok("Character revised successfully", character=updated.snapshot())

    return {
        ToolName.ASSIGN_CHARACTER_CLASS: assign_character_class,
        ToolName.ASSIGN_CHARACTER_RACE: assign_character_race,
        ToolName.ASSIGN_CHARACTER_STATS: assign_character_stats,
        ToolName.REVISE_CHARACTER_BASED_ON_DM_FEEDBACK: revise_character,
    }
