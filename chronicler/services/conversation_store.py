"""Append-only conversation message log."""

import itertools
from datetime import UTC, datetime
from typing import Protocol

from cuid2 import cuid_wrapper

from chronicler.models.conversation import Conversation, Message, MessageRole
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class ConversationNotFoundError(LookupError):
    """Raised when a conversation id does not exist."""


class ConversationStore(Protocol):
    """Interface for conversation persistence.

    Messages are append-only; history is always returned in id order, which
    is the context order replayed to the model.
    """

    async def create_conversation(self, owner_id: int, name: str) -> Conversation: ...

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Raises ConversationNotFoundError if the conversation does not exist."""
        ...

    async def rename_conversation(self, conversation_id: str, name: str) -> Conversation: ...

    async def append_message(
        self,
        conversation_id: str,
        sender: MessageRole,
        body: str,
        tool_call_id: str | None = None,
        tool_result: str | None = None,
    ) -> Message:
        """Raises ValueError for an empty body."""
        ...

    async def get_history(self, conversation_id: str) -> list[Message]: ...


class InMemoryConversationStore:
    """In-memory conversation store."""

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, list[Message]] = {}
        self._message_ids = itertools.count(1)

    async def create_conversation(self, owner_id: int, name: str) -> Conversation:
        conversation = Conversation(id=cuid(), name=name, owner_id=owner_id)
        self.conversations[conversation.id] = conversation
        self.messages[conversation.id] = []
        logger.info(f"Created conversation {conversation.id} for user {owner_id}")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def rename_conversation(self, conversation_id: str, name: str) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        renamed = conversation.model_copy(update={"name": name})
        self.conversations[conversation_id] = renamed
        return renamed

    async def append_message(
        self,
        conversation_id: str,
        sender: MessageRole,
        body: str,
        tool_call_id: str | None = None,
        tool_result: str | None = None,
    ) -> Message:
        if not body or not body.strip():
            raise ValueError("Message body cannot be empty")
        await self.get_conversation(conversation_id)

        message = Message(
            id=next(self._message_ids),
            conversation_id=conversation_id,
            sender=sender,
            body=body,
            tool_call_id=tool_call_id,
            tool_result=tool_result,
            created_at=datetime.now(UTC),
        )
        self.messages[conversation_id].append(message)
        logger.debug(f"Appended {sender} message {message.id} to conversation {conversation_id}")
        return message

    async def get_history(self, conversation_id: str) -> list[Message]:
        await self.get_conversation(conversation_id)
        return sorted(self.messages[conversation_id], key=lambda m: m.id)
