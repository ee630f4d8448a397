"""Conversation, message and API data models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from chronicler.models.llm import ToolInvocationRequest

MessageRole = Literal["system", "user", "assistant"]


class Conversation(BaseModel):
    """A chat session owned by one user."""

    id: str
    name: str
    owner_id: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Message(BaseModel):
    """An immutable entry in a conversation's ordered log."""

    model_config = ConfigDict(frozen=True)

    id: int
    conversation_id: str
    sender: MessageRole
    body: str
    tool_call_id: str | None = None
    tool_result: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class TurnOutcome(StrEnum):
    COMPLETED = "completed"
    DENIED = "denied"
    ITERATION_LIMIT = "iteration_limit"


class TurnResult(BaseModel):
    """What one orchestrated turn produced."""

    user_message: str
    ai_message: str
    tool_call: ToolInvocationRequest | None = None
    outcome: TurnOutcome = TurnOutcome.COMPLETED
    iterations: int = 0


class ApiModel(BaseModel):
    """Base for request/response bodies, serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateConversationRequest(ApiModel):
    conversation_name: str | None = None


class ConversationView(ApiModel):
    conversation_id: str
    conversation_name: str
    created_at: datetime


class CreateConversationResponse(ApiModel):
    conversation_id: str
    conversation_name: str
    initial_ai_response: str = Field(..., alias="initialAIResponse")


class SendMessageRequest(ApiModel):
    """Main turn input: a new user message, or tool results that continue a turn."""

    message: str = ""
    tools: list[str] | None = None
    tool_result: list[dict[str, Any]] | dict[str, Any] | None = None

    @model_validator(mode="after")
    def require_message_or_tool_result(self) -> "SendMessageRequest":
        if not self.message.strip() and not self.tool_result:
            raise ValueError("Either a message or toolResult must be provided")
        return self

    @property
    def tool_results(self) -> list[dict[str, Any]]:
        if self.tool_result is None:
            return []
        if isinstance(self.tool_result, dict):
            return [self.tool_result]
        return self.tool_result


class SendMessageResponse(ApiModel):
    conversation_id: str
    user_message: str
    ai_response: str
    tool_call: ToolInvocationRequest | None = None
    outcome: TurnOutcome
    iterations: int


class MessageView(ApiModel):
    id: int
    sender: MessageRole
    body: str
    tool_call_id: str | None = None
    tool_result: str | None = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageView":
        return cls.model_validate(message.model_dump())


class HistoryResponse(ApiModel):
    conversation_id: str
    conversation_name: str
    messages: list[MessageView]


class RenameConversationRequest(ApiModel):
    conversation_name: str = Field(..., min_length=1, max_length=200)


class SaveUserMessageRequest(ApiModel):
    message: str = Field(..., min_length=1)


class SaveToolCallRequest(ApiModel):
    tool_name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    tool_call_id: str | None = None


class SaveToolResultRequest(ApiModel):
    tool_call_id: str = Field(..., min_length=1)
    result: Any


class ConfirmationView(ApiModel):
    conversation_id: str
    tool_call: ToolInvocationRequest
    title: str
    prompt: str
    requested_at: datetime


class ConfirmationDecisionRequest(ApiModel):
    approved: bool


class ConfirmationDecisionResponse(ApiModel):
    conversation_id: str
    approved: bool


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
