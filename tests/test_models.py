"""Tests for data models."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from chronicler.models.character import Character, StatBlock
from chronicler.models.conversation import (
    CreateConversationResponse,
    HealthResponse,
    Message,
    MessageView,
    SendMessageRequest,
    SendMessageResponse,
    TurnOutcome,
)
from chronicler.models.llm import ToolInvocationRequest, ToolResult, format_tool_result_body


class TestSendMessageRequest:
    """Tests for the main turn request body."""

    def test_message_only(self):
        """Test a plain user message."""
        request = SendMessageRequest.model_validate({"message": "I want a fierce warrior"})
        assert request.message == "I want a fierce warrior"
        assert request.tools is None
        assert request.tool_results == []

    def test_tool_result_from_camel_case(self):
        """Test that toolResult is accepted in camelCase and normalized to a list."""
        request = SendMessageRequest.model_validate({"toolResult": {"toolCallId": "call_1", "success": True}})
        assert request.message == ""
        assert request.tool_results == [{"toolCallId": "call_1", "success": True}]

    def test_tool_result_list(self):
        """Test a batch of tool results."""
        data = json.loads('{"message": "", "toolResult": [{"toolId": "a"}, {"toolId": "b"}]}')
        request = SendMessageRequest.model_validate(data)
        assert [item["toolId"] for item in request.tool_results] == ["a", "b"]

    def test_requires_message_or_tool_result(self):
        """Test that an empty request is rejected."""
        with pytest.raises(ValidationError, match="Either a message or toolResult must be provided"):
            SendMessageRequest.model_validate({"message": "   "})

    def test_tools_filter(self):
        """Test that the offered tool names are carried through."""
        request = SendMessageRequest.model_validate({"message": "hi", "tools": ["get_stats_to_assign"]})
        assert request.tools == ["get_stats_to_assign"]


class TestResponseModels:
    """Tests for camelCase response serialization."""

    def test_create_conversation_response_aliases(self):
        """Test the create response uses the client's field names."""
        response = CreateConversationResponse(
            conversation_id="abc", conversation_name="New Character", initial_ai_response="Hello"
        )
        data = response.model_dump(by_alias=True)
        assert data == {"conversationId": "abc", "conversationName": "New Character", "initialAIResponse": "Hello"}

    def test_send_message_response_aliases(self):
        """Test the turn response includes the tool call in camelCase."""
        response = SendMessageResponse(
            conversation_id="abc",
            user_message="hi",
            ai_response="hello",
            tool_call=ToolInvocationRequest(id="call_1", name="get_stats_to_assign"),
            outcome=TurnOutcome.COMPLETED,
            iterations=1,
        )
        data = response.model_dump(by_alias=True, mode="json")
        assert data["userMessage"] == "hi"
        assert data["aiResponse"] == "hello"
        assert data["toolCall"] == {"id": "call_1", "name": "get_stats_to_assign", "arguments": {}}
        assert data["outcome"] == "completed"

    def test_message_view_from_message(self):
        """Test converting a stored message for the history endpoint."""
        message = Message(id=3, conversation_id="abc", sender="user", body="hi", tool_call_id="call_1")
        view = MessageView.from_message(message).model_dump(by_alias=True)
        assert view["id"] == 3
        assert view["toolCallId"] == "call_1"
        assert "conversation_id" not in view

    def test_health_response_valid(self):
        """Test valid health response."""
        now = datetime.now(UTC)
        response = HealthResponse(status="healthy", timestamp=now, version="0.1.0")
        assert response.status == "healthy"
        assert response.timestamp == now


class TestMessage:
    """Tests for the stored message model."""

    def test_message_is_immutable(self):
        """Test that stored messages cannot be edited."""
        message = Message(id=1, conversation_id="abc", sender="system", body="prompt")
        with pytest.raises(ValidationError):
            message.body = "changed"

    def test_invalid_sender(self):
        """Test that only system, user and assistant senders are allowed."""
        with pytest.raises(ValidationError):
            Message(id=1, conversation_id="abc", sender="tool", body="x")


class TestToolModels:
    """Tests for tool call and result models."""

    def test_tool_result_payload_flattens_data(self):
        """Test that result data sits beside success and message."""
        result = ToolResult.ok("Random stats generated successfully.", stats=[1, 2, 3, 4, 5, 6])
        assert result.to_payload() == {
            "success": True,
            "message": "Random stats generated successfully.",
            "stats": [1, 2, 3, 4, 5, 6],
        }

    def test_tool_result_fail(self):
        """Test a failed result."""
        result = ToolResult.fail("Character ID is required to assign a race")
        assert result.success is False
        assert result.data == {}

    def test_format_tool_result_body(self):
        """Test the body format replayed to the model."""
        body = format_tool_result_body({"success": True})
        assert body == 'Tool result: {"success": true}'

    def test_call_record(self):
        """Test the serialized call record."""
        call = ToolInvocationRequest(id="c", name="create_new_character", arguments={"character_name": "Thorga"})
        assert call.as_call_record() == {"tool": "create_new_character", "arguments": {"character_name": "Thorga"}}


class TestCharacterModels:
    """Tests for character models."""

    def test_stat_block_accepts_display_names(self):
        """Test stats keyed by their display names."""
        stats = StatBlock.model_validate(
            {"Strength": 8, "Dexterity": 3, "Constitution": 7, "Intelligence": 2, "Wisdom": 4, "Charisma": 5}
        )
        assert stats.strength == 8
        assert stats.as_dict()["Charisma"] == 5

    def test_stat_block_missing_stat(self):
        """Test that every stat is required."""
        with pytest.raises(ValidationError):
            StatBlock.model_validate({"Strength": 8})

    def test_character_snapshot(self):
        """Test the snapshot reported back to the model."""
        character = Character(id=1, owner_id=1, name="Thorga", class_name="Barbarian")
        snapshot = character.snapshot()
        assert snapshot["class"] == "Barbarian"
        assert snapshot["race"] is None
        assert snapshot["stats"] is None
        assert snapshot["approvalStatus"] == "Draft"
