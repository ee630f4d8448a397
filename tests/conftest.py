"""Shared fixtures and fakes for the test suite."""

import asyncio
import random
from collections.abc import Sequence
from typing import Any

import pytest

from chronicler.clients.discord import NotificationResult
from chronicler.clients.model_gateway import ModelGateway
from chronicler.graphs.nodes import TurnNodes
from chronicler.graphs.turn import TurnOrchestrator
from chronicler.models.character import Character
from chronicler.models.conversation import Message
from chronicler.models.llm import ModelReply, ToolInvocationRequest, ToolResult
from chronicler.models.user import User
from chronicler.services.characters import InMemoryCharacterStore
from chronicler.services.confirmation import ConfirmationGate
from chronicler.services.content import ContentCatalog, KeywordSearchService
from chronicler.services.conversation import ConversationService
from chronicler.services.conversation_store import InMemoryConversationStore
from chronicler.services.locks import ConversationLocks
from chronicler.tools.base import ToolDefinition
from chronicler.tools.executor import ToolExecutor, create_tool_executor
from chronicler.tools.registry import ToolsRegistry
from chronicler.utils.tokens import TokenCounter


def text_reply(text: str) -> ModelReply:
    return ModelReply(text=text)


def tool_reply(name: str, arguments: dict[str, Any] | None = None, call_id: str = "call_1") -> ModelReply:
    return ModelReply(
        text="", tool_call=ToolInvocationRequest(id=call_id, name=name, arguments=arguments or {}), structured=True
    )


async def wait_for_pending(gate: ConfirmationGate, conversation_id: str, timeout: float = 2.0):
    """Poll until a confirmation is pending for the conversation, failing after timeout seconds."""

    async def poll():
        while (pending := gate.get_pending(conversation_id)) is None:
            await asyncio.sleep(0.005)
        return pending

    try:
        return await asyncio.wait_for(poll(), timeout)
    except TimeoutError:
        raise AssertionError(f"No confirmation requested for {conversation_id} within {timeout}s") from None


class ScriptedGateway:
    """Model gateway stand-in that plays back queued replies.

    Records the exact history and tools of every call. Once the queue is empty
    the default reply repeats; a queued exception is raised instead of returned.
    """

    def __init__(self, replies: Sequence[ModelReply | Exception] = (), default: ModelReply | None = None):
        self.replies = list(replies)
        self.default = default
        self.calls: list[list[Message]] = []
        self.offered_tools: list[list[str]] = []

    async def send(self, messages: Sequence[Message], tools: Sequence[ToolDefinition]) -> ModelReply:
        self.calls.append(list(messages))
        self.offered_tools.append([tool.name.value for tool in tools])

        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("ScriptedGateway ran out of replies")

        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeNotifier:
    """Notifier that records submissions and returns a fixed result."""

    def __init__(self, result: NotificationResult | None = None):
        self.result = result or NotificationResult(ok=True)
        self.sent: list[tuple[Character, str]] = []

    async def notify(self, character: Character, submitter_email: str) -> NotificationResult:
        self.sent.append((character, submitter_email))
        return self.result


class RecordingExecutor:
    """Wraps a ToolExecutor and records every call it receives."""

    def __init__(self, inner: ToolExecutor):
        self.inner = inner
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute(self, tool_name: str, args: dict[str, Any], caller: User, tool_call_id: str | None = None):
        self.calls.append((tool_name, args))
        result: ToolResult = await self.inner.execute(tool_name, args, caller, tool_call_id)
        return result


@pytest.fixture
def user() -> User:
    return User(id=1, email="player@example.com")


@pytest.fixture
def other_user() -> User:
    return User(id=2, email="someone@example.com")


@pytest.fixture
def character_store() -> InMemoryCharacterStore:
    return InMemoryCharacterStore()


@pytest.fixture
def catalog() -> ContentCatalog:
    return ContentCatalog()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def tool_executor(character_store, catalog, notifier) -> ToolExecutor:
    return create_tool_executor(
        character_store, KeywordSearchService(catalog), catalog, notifier, rng=random.Random(42)
    )


@pytest.fixture
def recording_executor(tool_executor) -> RecordingExecutor:
    return RecordingExecutor(tool_executor)


@pytest.fixture
def conversation_store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def gate() -> ConfirmationGate:
    return ConfirmationGate(timeout_seconds=5.0)


@pytest.fixture
def make_service(conversation_store, recording_executor, gate):
    """Build a ConversationService around a scripted gateway."""

    def factory(
        gateway: ScriptedGateway | ModelGateway, max_tool_iterations: int = 10, registry: ToolsRegistry | None = None
    ) -> ConversationService:
        locks = ConversationLocks()
        nodes = TurnNodes(conversation_store, gateway, registry or ToolsRegistry(), recording_executor, gate)
        orchestrator = TurnOrchestrator(
            conversation_store,
            nodes,
            locks=locks,
            token_counter=TokenCounter(encoding_name=None),
            max_tool_iterations=max_tool_iterations,
        )
        return ConversationService(conversation_store, orchestrator, locks, frozenset({"dm@example.com"}))

    return factory
