"""State definitions for the turn graph."""

from pydantic import BaseModel

from chronicler.models.conversation import TurnOutcome
from chronicler.models.llm import ToolInvocationRequest
from chronicler.models.user import User


class TurnState(BaseModel):
    """State passed between nodes while one turn runs.

    Conversation context is not held here: every model call replays the
    persisted history, so the store stays the single source of truth.
    """

    conversation_id: str
    caller: User
    tool_names: list[str] | None = None

    # Tool call tracking
    pending_tool_call: ToolInvocationRequest | None = None
    confirmation_required: bool = False
    last_tool_call: ToolInvocationRequest | None = None

    # Control flow
    outcome: TurnOutcome | None = None
    iterations: int = 0
    max_iterations: int = 10

    ai_message: str = ""
