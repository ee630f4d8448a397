"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from chronicler.models.llm import ToolResult
from chronicler.models.user import User


class ToolName(StrEnum):
    """Every tool the Chronicler can call. Adding a member requires adding a handler."""

    CREATE_NEW_CHARACTER = "create_new_character"
    GET_CHARACTER = "get_character"
    GET_CLOSEST_CLASSES_TO_DESCRIPTION = "get_closest_classes_to_description"
    GET_CLOSEST_RACES_TO_DESCRIPTION = "get_closest_races_to_description"
    GET_HOW_TO_PLAY_CLASSES = "get_how_to_play_classes"
    GET_STATS_TO_ASSIGN = "get_stats_to_assign"
    ASSIGN_CHARACTER_CLASS = "assign_character_class"
    ASSIGN_CHARACTER_RACE = "assign_character_race"
    ASSIGN_CHARACTER_STATS = "assign_character_stats"
    SUBMIT_CHARACTER_FOR_APPROVAL = "submit_character_for_approval"
    REVISE_CHARACTER_BASED_ON_DM_FEEDBACK = "revise_character_based_on_dm_feedback"

    @classmethod
    def parse(cls, name: str) -> "ToolName | None":
        try:
            return cls(name)
        except ValueError:
            return None


ToolHandler = Callable[[dict[str, Any], User], Awaitable[ToolResult]]


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool offered to the model.

    The input schema is advisory: it shapes what the model sends, while each
    handler validates its own arguments.
    """

    name: ToolName
    description: str
    input_schema_class: type[BaseModel]
    requires_confirmation: bool = False

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema(by_alias=True)

    def to_function_declaration(self) -> dict[str, Any]:
        """Render as an OpenAI-style function declaration."""
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.get_json_schema(),
            },
        }


def parse_character_id(args: dict[str, Any]) -> int | None:
    """Read character_id from tool arguments, accepting numeric strings."""
    raw = args.get("character_id")
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def get_text_arg(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
