"""Model-facing data types (provider-agnostic)."""

import json
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TOOL_RESULT_PREFIX = "Tool result: "


class ChatMessage(BaseModel):
    """A message in the wire format sent to the model endpoint."""

    role: Literal["system", "user", "assistant"]
    content: str


class ToolInvocationRequest(BaseModel):
    """A single tool call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    def as_call_record(self) -> dict[str, Any]:
        return {"tool": self.name, "arguments": self.arguments}


class ToolResult(BaseModel):
    """Outcome of executing a tool.

    A failed result is a normal conversational outcome the model reads and
    recovers from; it is not an error.
    """

    success: bool
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    tool_call_id: str | None = None

    @classmethod
    def ok(cls, message: str, **data: Any) -> "ToolResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, **data: Any) -> "ToolResult":
        return cls(success=False, message=message, data=data)

    def to_payload(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message, **self.data}


@dataclass
class ModelReply:
    """What the model returned: free text and at most one tool call."""

    text: str
    tool_call: ToolInvocationRequest | None = None
    structured: bool = False


def format_tool_result_body(payload: Any) -> str:
    """Render a tool outcome as the user-role message body replayed to the model."""
    return f"{TOOL_RESULT_PREFIX}{json.dumps(payload, default=str)}"
