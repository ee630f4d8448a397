"""Character lifecycle tools: create, look up and submit for approval."""

from typing import Any

from pydantic import BaseModel, Field

from chronicler.clients.discord import Notifier
from chronicler.models.character import ApprovalStatus, Character
from chronicler.models.llm import ToolResult
from chronicler.models.user import User
from chronicler.services.characters import CharacterAccessError, CharacterNotFoundError, CharacterStore
from chronicler.tools.base import ToolDefinition, ToolHandler, ToolName, get_text_arg, parse_character_id
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class CreateNewCharacterInput(BaseModel):
    """Input schema for create_new_character."""

    character_name: str = Field(..., description="The name of the character to create")


class GetCharacterInput(BaseModel):
    """Input schema for get_character."""

    character_id: str | None = Field(
        None, description="The ID of the character to retrieve. Omit to list all of the user's characters."
    )


class SubmitCharacterInput(BaseModel):
    """Input schema for submit_character_for_approval."""

    character_id: str = Field(..., description="The ID of the character to submit for approval.")


CHARACTER_TOOL_DEFINITIONS = [
    ToolDefinition(
        name=ToolName.CREATE_NEW_CHARACTER,
        description="Creates a new character if the user has a name for the character.",
        input_schema_class=CreateNewCharacterInput,
    ),
    ToolDefinition(
        name=ToolName.GET_CHARACTER,
        description=(
            "Retrieves one of the user's characters by ID, or all of the user's characters when no ID is given. "
            "Use this to check what has already been assigned."
        ),
        input_schema_class=GetCharacterInput,
    ),
    ToolDefinition(
        name=ToolName.SUBMIT_CHARACTER_FOR_APPROVAL,
        description=(
            "Submits a character for approval via Discord. Must be called after all character details are complete."
        ),
        input_schema_class=SubmitCharacterInput,
        requires_confirmation=True,
    ),
]


async def load_owned_character(
    store: CharacterStore, args: dict[str, Any], caller: User, action: str
) -> Character | ToolResult:
    """Fetch the character named by args["character_id"], or a failed result explaining why not."""
    if args.get("character_id") in (None, ""):
        return ToolResult.fail(f"Character ID is required to {action}")

    character_id = parse_character_id(args)
    if character_id is None:
        return ToolResult.fail(f"Character ID must be a number, got {args['character_id']!r}")

    try:
        return await store.get_character(character_id, caller.id)
    except CharacterNotFoundError:
        return ToolResult.fail(f"Character with ID {character_id} not found")
    except CharacterAccessError:
        return ToolResult.fail(f"Character with ID {character_id} does not belong to you")


def create_character_handlers(store: CharacterStore, notifier: Notifier) -> dict[ToolName, ToolHandler]:
    async def create_new_character(args: dict[str, Any], caller: User) -> ToolResult:
        name = get_text_arg(args, "character_name")
        if not name:
            return ToolResult.fail("Character name is required to create a character")

        character = await store.create_character(caller.id, name)
        logger.info(f"User {caller.id} created character {character.id} ({name})")
        return ToolResult.ok(
            f'Character "{name}" created successfully with ID {character.id}',
            character=character.snapshot(),
        )

    async def get_character(args: dict[str, Any], caller: User) -> ToolResult:
        if args.get("character_id") in (None, ""):
            characters = await store.list_characters(caller.id)
            return ToolResult.ok(
                f"Retrieved {len(characters)} character(s)",
                characters=[c.snapshot() for c in characters],
                count=len(characters),
            )

        loaded = await load_owned_character(store, args, caller, "retrieve a character")
        if isinstance(loaded, ToolResult):
            return loaded
        return ToolResult.ok(f"Retrieved character: {loaded.name}", character=loaded.snapshot())

    async def submit_character_for_approval(args: dict[str, Any], caller: User) -> ToolResult:
        loaded = await load_owned_character(store, args, caller, "submit for approval")
        if isinstance(loaded, ToolResult):
            return loaded

        missing = [
            label
            for label, value in (("class", loaded.class_name), ("race", loaded.race_name), ("stats", loaded.stats))
            if not value
        ]
        if missing:
            return ToolResult.fail(
                f'Character "{loaded.name}" is missing {", ".join(missing)}. '
                "Complete the character before submitting it for approval."
            )

        result = await notifier.notify(loaded, caller.email)
        if not result.ok:
            return ToolResult.fail(f"Failed to submit character for approval: {result.reason}")

        updated = await store.update_character(loaded.id, caller.id, status=ApprovalStatus.SUBMITTED)
        return ToolResult.ok(
            "Character submitted for approval", characterId=updated.id, approvalStatus=updated.status.value
        )

    return {
        ToolName.CREATE_NEW_CHARACTER: create_new_character,
        ToolName.GET_CHARACTER: get_character,
        ToolName.SUBMIT_CHARACTER_FOR_APPROVAL: submit_character_for_approval,
    }
