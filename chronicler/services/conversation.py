"""Conversation service: session lifecycle, history, audit writes and turns."""

import json
from typing import Any

from chronicler.graphs.turn import TurnOrchestrator
from chronicler.models.conversation import Conversation, Message, TurnResult
from chronicler.models.llm import format_tool_result_body
from chronicler.models.user import User
from chronicler.services.conversation_store import ConversationStore
from chronicler.services.locks import ConversationLocks
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONVERSATION_NAME = "New Character"

SYSTEM_PROMPT = (
    "You are the Chronicler, or game master, for the game Chronicles of the Omuns. "
    "You are here to help players build characters for the game using different tool calls. "
    "Be mindful that this isn't Dungeons and Dragons, but it is a TTRPG. There is no multiclassing in this game. "
    "Suggest classes with get_closest_classes_to_description and races with get_closest_races_to_description. "
    "A character needs a class before a race, and both before stats. "
    "If you don't know the answer, say you don't know. Always refer to the information returned by tool calls. "
    "Your goal is to help players build fun and interesting characters for Chronicles of the Omuns."
)

INITIAL_GREETING = "Hello, I am the Chronicler AI Agent! How can I help you set up your new character?"


class ConversationAccessError(PermissionError):
    """The caller does not own the conversation."""


class ConversationService:
    """Entry point for everything the API does with conversations."""

    def __init__(
        self,
        store: ConversationStore,
        orchestrator: TurnOrchestrator,
        locks: ConversationLocks,
        admin_emails: frozenset[str] = frozenset(),
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.locks = locks
        self.admin_emails = admin_emails

    async def create_conversation(self, caller: User, name: str | None = None) -> tuple[Conversation, str]:
        """Create a conversation seeded with the system prompt and greeting."""
        conversation_name = (name or "").strip() or DEFAULT_CONVERSATION_NAME
        conversation = await self.store.create_conversation(caller.id, conversation_name)
        await self.store.append_message(conversation.id, "system", SYSTEM_PROMPT)
        await self.store.append_message(conversation.id, "assistant", INITIAL_GREETING)
        return conversation, INITIAL_GREETING

    async def get_owned_conversation(self, conversation_id: str, caller: User) -> Conversation:
        """Raises ConversationNotFoundError or ConversationAccessError."""
        conversation = await self.store.get_conversation(conversation_id)
        if conversation.owner_id != caller.id:
            logger.warning(f"User {caller.id} denied access to conversation {conversation_id}")
            raise ConversationAccessError(f"Conversation {conversation_id} does not belong to you")
        return conversation

    async def get_history(self, conversation_id: str, caller: User) -> tuple[Conversation, list[Message]]:
        """Return the ordered history. Admins may read any conversation."""
        if self.is_admin(caller):
            conversation = await self.store.get_conversation(conversation_id)
        else:
            conversation = await self.get_owned_conversation(conversation_id, caller)
        return conversation, await self.store.get_history(conversation_id)

    async def rename_conversation(self, conversation_id: str, caller: User, name: str) -> Conversation:
        await self.get_owned_conversation(conversation_id, caller)
        return await self.store.rename_conversation(conversation_id, name.strip())

    async def send_message(
        self,
        conversation_id: str,
        caller: User,
        message: str = "",
        tool_results: list[dict[str, Any]] | None = None,
        tool_names: list[str] | None = None,
    ) -> TurnResult:
        await self.get_owned_conversation(conversation_id, caller)
        return await self.orchestrator.run_turn(conversation_id, caller, message, tool_results, tool_names)

    async def save_user_message(self, conversation_id: str, caller: User, message: str) -> Message:
        await self.get_owned_conversation(conversation_id, caller)
        async with self.locks.hold(conversation_id):
            return await self.store.append_message(conversation_id, "user", message.strip())

    async def save_tool_call(
        self,
        conversation_id: str,
        caller: User,
        tool_name: str,
        arguments: dict[str, Any],
        tool_call_id: str | None = None,
    ) -> Message:
        """Record a tool call the client is driving itself."""
        await self.get_owned_conversation(conversation_id, caller)
        body = json.dumps({"tool": tool_name, "arguments": arguments}, default=str)
        async with self.locks.hold(conversation_id):
            return await self.store.append_message(conversation_id, "assistant", body, tool_call_id=tool_call_id)

    async def save_tool_result(self, conversation_id: str, caller: User, tool_call_id: str, result: Any) -> Message:
        """Record the result of a tool call the client drove itself."""
        await self.get_owned_conversation(conversation_id, caller)
        async with self.locks.hold(conversation_id):
            return await self.store.append_message(
                conversation_id,
                "user",
                format_tool_result_body(result),
                tool_call_id=tool_call_id,
                tool_result=json.dumps(result, default=str),
            )

    def is_admin(self, caller: User) -> bool:
        return caller.email.lower() in self.admin_emails
