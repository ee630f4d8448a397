"""Tests for the turn loop: replay, tool execution, confirmation and termination."""

import asyncio
import json
from dataclasses import replace

import httpx
import pytest
import pytest_asyncio

from chronicler.clients.model_gateway import (
    ModelGateway,
    ModelGatewayConfig,
    ModelRateLimiter,
    ModelTimeoutError,
    UpstreamError,
)
from chronicler.graphs.nodes import ITERATION_LIMIT_MESSAGE
from chronicler.models.conversation import TurnOutcome
from chronicler.models.llm import TOOL_RESULT_PREFIX
from chronicler.models.user import User
from chronicler.services.conversation import INITIAL_GREETING, SYSTEM_PROMPT, ConversationAccessError
from chronicler.services.conversation_store import ConversationNotFoundError
from chronicler.services.locks import ConversationBusyError
from chronicler.tools.base import ToolName
from chronicler.tools.executor import UnknownToolError
from chronicler.tools.registry import ToolsRegistry
from chronicler.utils.tokens import TokenCounter

from conftest import ScriptedGateway, text_reply, tool_reply, wait_for_pending

GATED_TOOLS = [tool.name.value for tool in ToolsRegistry().list() if tool.requires_confirmation]


def bodies(history):
    return [(m.sender, m.body) for m in history]


class TestConversationLifecycle:
    """Tests for creating and reading conversations."""

    @pytest.mark.asyncio
    async def test_create_seeds_prompt_and_greeting(self, make_service, conversation_store, user):
        """Test that a new conversation starts with the system prompt and the greeting."""
        service = make_service(ScriptedGateway())

        conversation, greeting = await service.create_conversation(user)

        assert greeting == INITIAL_GREETING
        assert conversation.name == "New Character"
        history = await conversation_store.get_history(conversation.id)
        assert bodies(history) == [("system", SYSTEM_PROMPT), ("assistant", INITIAL_GREETING)]

    @pytest.mark.asyncio
    async def test_history_access(self, make_service, user, other_user):
        """Test that only the owner, or an admin, can read history."""
        service = make_service(ScriptedGateway())
        conversation, _ = await service.create_conversation(user, "Thorga")

        _, history = await service.get_history(conversation.id, user)
        assert len(history) == 2

        with pytest.raises(ConversationAccessError):
            await service.get_history(conversation.id, other_user)

        _, admin_view = await service.get_history(conversation.id, User(id=99, email="DM@example.com"))
        assert admin_view == history

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, make_service, user):
        """Test that turns on a missing conversation fail before anything runs."""
        gateway = ScriptedGateway()
        service = make_service(gateway)

        with pytest.raises(ConversationNotFoundError):
            await service.send_message("missing", user, "Hello")
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_rename(self, make_service, user):
        """Test renaming a conversation."""
        service = make_service(ScriptedGateway())
        conversation, _ = await service.create_conversation(user)

        renamed = await service.rename_conversation(conversation.id, user, "  Thorga  ")

        assert renamed.name == "Thorga"


class TestTurnLoop:
    """Tests for a single turn through the model and tools."""

    @pytest.mark.asyncio
    async def test_plain_reply(self, make_service, conversation_store, user):
        """Test a turn without tools."""
        gateway = ScriptedGateway([text_reply("Welcome, traveler. What shall we call your hero?")])
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Hi there")

        assert result.outcome == TurnOutcome.COMPLETED
        assert result.user_message == "Hi there"
        assert result.ai_message == "Welcome, traveler. What shall we call your hero?"
        assert result.tool_call is None
        history = await conversation_store.get_history(conversation.id)
        assert bodies(history)[-2:] == [("user", "Hi there"), ("assistant", result.ai_message)]

    @pytest.mark.asyncio
    async def test_tool_then_reply(self, make_service, conversation_store, recording_executor, user):
        """Test the stat-roll scenario: one tool, one reply, five messages in total."""
        gateway = ScriptedGateway(
            [tool_reply("get_stats_to_assign", call_id="call_roll"), text_reply("Your rolls are in!")]
        )
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Roll my stats")

        assert result.outcome == TurnOutcome.COMPLETED
        assert result.ai_message == "Your rolls are in!"
        assert result.iterations == 1
        assert result.tool_call.name == "get_stats_to_assign"
        assert recording_executor.calls == [("get_stats_to_assign", {})]

        history = await conversation_store.get_history(conversation.id)
        assert [m.sender for m in history] == ["system", "assistant", "user", "user", "assistant"]

        tool_message = history[3]
        assert tool_message.body.startswith(TOOL_RESULT_PREFIX)
        assert tool_message.tool_call_id == "call_roll"
        recorded = json.loads(tool_message.body.removeprefix(TOOL_RESULT_PREFIX))
        assert recorded["tool"] == "get_stats_to_assign"
        assert recorded["result"]["success"] is True
        assert len(recorded["result"]["stats"]) == 6
        assert json.loads(tool_message.tool_result) == recorded["result"]

    @pytest.mark.asyncio
    async def test_only_first_of_several_calls_runs(self, make_service, conversation_store, recording_executor, user):
        """Test that a completion naming two tools runs only the first, through the real gateway."""
        calls = [
            {"id": "call_1", "function": {"name": "get_stats_to_assign", "arguments": "{}"}},
            {"id": "call_2", "function": {"name": "get_how_to_play_classes", "arguments": "{}"}},
        ]
        completions = [
            {"choices": [{"message": {"role": "assistant", "content": "", "tool_calls": calls}}]},
            {"choices": [{"message": {"role": "assistant", "content": "Your rolls are in!"}}]},
        ]
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=completions[len(requests) - 1])

        gateway = ModelGateway(
            ModelGatewayConfig(url="http://model.test/v1/chat/completions", timeout_seconds=1.0),
            token_counter=TokenCounter(encoding_name=None),
            rate_limiter=ModelRateLimiter(requests_per_minute=1000, tokens_per_minute=1_000_000),
            transport=httpx.MockTransport(handler),
        )
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Roll my stats")

        assert result.outcome == TurnOutcome.COMPLETED
        assert result.ai_message == "Your rolls are in!"
        assert recording_executor.calls == [("get_stats_to_assign", {})]
        assert len(requests) == 2

        history = await conversation_store.get_history(conversation.id)
        tool_messages = [m for m in history if m.tool_call_id]
        assert [m.tool_call_id for m in tool_messages] == ["call_1"]
        assert "get_how_to_play_classes" not in tool_messages[0].body

    @pytest.mark.asyncio
    async def test_every_call_replays_full_history(self, make_service, conversation_store, user):
        """Test that each model call sees exactly what was stored before it, in order."""
        gateway = ScriptedGateway([tool_reply("get_how_to_play_classes"), text_reply("Barbarians hit hard.")])
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        await service.send_message(conversation.id, user, "How do classes play?")

        history = await conversation_store.get_history(conversation.id)
        assert len(gateway.calls) == 2
        assert gateway.calls[0] == history[:3]
        assert gateway.calls[1] == history[:4]
        assert [m.id for m in history] == sorted(m.id for m in history)

    @pytest.mark.asyncio
    async def test_failed_tool_is_fed_back(self, make_service, conversation_store, user):
        """Test that a failed tool result goes back to the model instead of ending the turn."""
        gateway = ScriptedGateway(
            [
                tool_reply("get_character", {"character_id": "404"}),
                text_reply("I could not find that character."),
            ]
        )
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Show me character 404")

        assert result.outcome == TurnOutcome.COMPLETED
        assert "Character with ID 404 not found" in gateway.calls[1][-1].body

    @pytest.mark.asyncio
    async def test_iteration_limit(self, make_service, conversation_store, recording_executor, user):
        """Test that a model that never stops calling tools is cut off."""
        gateway = ScriptedGateway(default=tool_reply("get_stats_to_assign"))
        service = make_service(gateway, max_tool_iterations=3)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Roll forever")

        assert result.outcome == TurnOutcome.ITERATION_LIMIT
        assert result.ai_message == ITERATION_LIMIT_MESSAGE
        assert len(recording_executor.calls) == 3
        assert len(gateway.calls) == 4
        history = await conversation_store.get_history(conversation.id)
        assert bodies(history)[-1] == ("assistant", ITERATION_LIMIT_MESSAGE)

    @pytest.mark.asyncio
    async def test_empty_reply_is_not_persisted(self, make_service, conversation_store, user):
        """Test that an empty model reply completes the turn without a blank message."""
        service = make_service(ScriptedGateway([text_reply("   ")]))
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Hello?")

        assert result.ai_message == ""
        history = await conversation_store.get_history(conversation.id)
        assert bodies(history)[-1] == ("user", "Hello?")

    @pytest.mark.asyncio
    async def test_tool_narrowing(self, make_service, user):
        """Test that a turn can offer a subset of the catalog."""
        gateway = ScriptedGateway([text_reply("Ok")])
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        await service.send_message(conversation.id, user, "Hi", tool_names=["get_stats_to_assign", "nope"])

        assert gateway.offered_tools == [["get_stats_to_assign"]]

    @pytest.mark.asyncio
    async def test_duplicate_messages_are_kept(self, make_service, conversation_store, user):
        """Test that identical messages are stored twice."""
        service = make_service(ScriptedGateway(default=text_reply("Again?")))
        conversation, _ = await service.create_conversation(user)

        await service.send_message(conversation.id, user, "Hello")
        await service.send_message(conversation.id, user, "Hello")

        history = await conversation_store.get_history(conversation.id)
        assert [m.body for m in history].count("Hello") == 2


class TestContinuations:
    """Tests for turns that resume with client-supplied tool results."""

    @pytest.mark.asyncio
    async def test_tool_results_continue_the_turn(self, make_service, conversation_store, user):
        """Test that tool results are stored as tool-result messages and no user message is announced."""
        gateway = ScriptedGateway([text_reply("Thanks, noted.")])
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(
            conversation.id,
            user,
            message="ignored",
            tool_results=[{"toolCallId": "call_7", "result": {"success": True}}],
        )

        assert result.user_message == ""
        assert result.ai_message == "Thanks, noted."
        history = await conversation_store.get_history(conversation.id)
        stored = history[2]
        assert stored.sender == "user"
        assert stored.body.startswith(TOOL_RESULT_PREFIX)
        assert stored.tool_call_id == "call_7"
        assert all(m.body != "ignored" for m in history)

    @pytest.mark.asyncio
    async def test_empty_input_rejected(self, make_service, user):
        """Test that a turn needs a message or tool results."""
        gateway = ScriptedGateway()
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        with pytest.raises(ValueError, match="Either a message or toolResult"):
            await service.send_message(conversation.id, user, "   ")
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_overlong_message_rejected(self, make_service, conversation_store, user):
        """Test that oversized messages are refused before anything is stored."""
        service = make_service(ScriptedGateway())
        conversation, _ = await service.create_conversation(user)

        with pytest.raises(ValueError, match="exceeds token limit"):
            await service.send_message(conversation.id, user, "word " * 5000)
        assert len(await conversation_store.get_history(conversation.id)) == 2


class TestConfirmation:
    """Tests for gated tools."""

    @pytest_asyncio.fixture
    async def character(self, character_store, user):
        return await character_store.create_character(user.id, "Thorga")

    @pytest.mark.asyncio
    async def test_gated_tool_waits_for_approval(
        self, make_service, conversation_store, character_store, recording_executor, gate, character, user
    ):
        """Test that a gated tool does not run until the user approves it."""
        gateway = ScriptedGateway(
            [
                tool_reply("assign_character_class", {"character_id": str(character.id), "class_name": "Barbarian"}),
                text_reply("Thorga is now a Barbarian."),
            ]
        )
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        turn = asyncio.create_task(service.send_message(conversation.id, user, "Make Thorga a barbarian"))
        pending = await wait_for_pending(gate, conversation.id)

        assert pending.request.name == "assign_character_class"
        assert recording_executor.calls == []
        assert (await character_store.get_character(character.id, user.id)).class_name is None

        gate.resolve(conversation.id, True)
        result = await turn

        assert result.outcome == TurnOutcome.COMPLETED
        assert len(recording_executor.calls) == 1
        assert (await character_store.get_character(character.id, user.id)).class_name == "Barbarian"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool_name", GATED_TOOLS)
    async def test_every_gated_tool_suspends_before_running(
        self, make_service, recording_executor, gate, character, user, tool_name
    ):
        """Test that each tool marked as gated reaches the user before the executor sees it."""
        gateway = ScriptedGateway([tool_reply(tool_name, {"character_id": str(character.id)})])
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        turn = asyncio.create_task(service.send_message(conversation.id, user, "Go ahead"))
        pending = await wait_for_pending(gate, conversation.id)

        assert pending.request.name == tool_name
        assert recording_executor.calls == []

        gate.resolve(conversation.id, False)
        result = await turn

        assert result.outcome == TurnOutcome.DENIED
        assert recording_executor.calls == []

    @pytest.mark.asyncio
    async def test_injected_registry_decides_gating(
        self, make_service, character_store, recording_executor, gate, character, user
    ):
        """Test that a tool the turn's registry leaves ungated runs without asking."""
        ungated = ToolsRegistry(
            [
                replace(tool, requires_confirmation=False) if tool.name == ToolName.ASSIGN_CHARACTER_CLASS else tool
                for tool in ToolsRegistry().list()
            ]
        )
        gateway = ScriptedGateway(
            [
                tool_reply("assign_character_class", {"character_id": str(character.id), "class_name": "Barbarian"}),
                text_reply("Thorga is now a Barbarian."),
            ]
        )
        service = make_service(gateway, registry=ungated)
        conversation, _ = await service.create_conversation(user)

        result = await service.send_message(conversation.id, user, "Make Thorga a barbarian")

        assert result.outcome == TurnOutcome.COMPLETED
        assert gate.get_pending(conversation.id) is None
        assert [name for name, _ in recording_executor.calls] == ["assign_character_class"]
        assert (await character_store.get_character(character.id, user.id)).class_name == "Barbarian"

    @pytest.mark.asyncio
    async def test_denial_ends_turn(
        self, make_service, conversation_store, character_store, recording_executor, gate, character, user
    ):
        """Test that a denied tool never runs and the turn ends without another model call."""
        gateway = ScriptedGateway(
            [tool_reply("assign_character_race", {"character_id": str(character.id), "race_name": "Orc"})]
        )
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        turn = asyncio.create_task(service.send_message(conversation.id, user, "Make Thorga an orc"))
        await wait_for_pending(gate, conversation.id)
        gate.resolve(conversation.id, False)
        result = await turn

        assert result.outcome == TurnOutcome.DENIED
        assert result.tool_call.name == "assign_character_race"
        assert "denied" in result.ai_message
        assert recording_executor.calls == []
        assert len(gateway.calls) == 1

        history = await conversation_store.get_history(conversation.id)
        assert history[-1].sender == "system"
        assert "assign_character_race" in history[-1].body
        assert (await character_store.get_character(character.id, user.id)).race_name is None

    @pytest.mark.asyncio
    async def test_turn_is_exclusive_while_waiting(self, make_service, gate, character, user):
        """Test that a second turn on the same conversation is refused while one is suspended."""
        gateway = ScriptedGateway(
            [tool_reply("submit_character_for_approval", {"character_id": str(character.id)}), text_reply("Done")]
        )
        service = make_service(gateway)
        conversation, _ = await service.create_conversation(user)

        turn = asyncio.create_task(service.send_message(conversation.id, user, "Submit Thorga"))
        await wait_for_pending(gate, conversation.id)

        with pytest.raises(ConversationBusyError):
            await service.send_message(conversation.id, user, "Hello?")
        with pytest.raises(ConversationBusyError):
            await service.save_user_message(conversation.id, user, "Hello?")

        gate.resolve(conversation.id, False)
        await turn


class TestFailures:
    """Tests for turns that abort."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [UpstreamError("AI service returned status 500", 500), ModelTimeoutError("slow")])
    async def test_gateway_failure_leaves_no_partial_reply(self, make_service, conversation_store, user, error):
        """Test that a failed model call propagates and stores nothing after the user message."""
        service = make_service(ScriptedGateway([error]))
        conversation, _ = await service.create_conversation(user)

        with pytest.raises(type(error)):
            await service.send_message(conversation.id, user, "Hello")

        history = await conversation_store.get_history(conversation.id)
        assert bodies(history)[-1] == ("user", "Hello")

        assert not service.locks.is_locked(conversation.id)

    @pytest.mark.asyncio
    async def test_unknown_tool_aborts(self, make_service, conversation_store, user):
        """Test that a tool outside the catalog aborts the turn."""
        service = make_service(ScriptedGateway([tool_reply("log_message", {"message": "hi"})]))
        conversation, _ = await service.create_conversation(user)

        with pytest.raises(UnknownToolError):
            await service.send_message(conversation.id, user, "Log something")

        history = await conversation_store.get_history(conversation.id)
        assert len(history) == 3
