"""Human confirmation for state-changing tool calls.

A tool call whose definition sets requires_confirmation suspends the turn
on an asyncio future stored under the conversation id. The client discovers
the pending request and resolves it through a separate decide call, which
wakes the suspended turn.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime

from chronicler.models.character import STAT_NAMES
from chronicler.models.llm import ToolInvocationRequest
from chronicler.tools.base import ToolName
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class ConfirmationError(RuntimeError):
    """A confirmation was requested while another is still outstanding."""


class NoPendingConfirmationError(LookupError):
    """A decision arrived for a conversation with nothing awaiting confirmation."""


@dataclass
class PendingConfirmation:
    conversation_id: str
    request: ToolInvocationRequest
    decision: asyncio.Future[bool]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def describe_confirmation(request: ToolInvocationRequest) -> tuple[str, str]:
    """Return the (title, prompt) a client shows when asking for approval."""
    args = request.arguments
    match ToolName.parse(request.name):
        case ToolName.ASSIGN_CHARACTER_RACE:
            race = args.get("race_name") or "unknown"
            return "Assign Character Race?", f"The Chronicler wants to assign the race {race} to your character."
        case ToolName.ASSIGN_CHARACTER_CLASS:
            class_name = args.get("class_name") or "unknown"
            return (
                "Assign Character Class?",
                f"The Chronicler wants to assign the class {class_name} to your character.",
            )
        case ToolName.ASSIGN_CHARACTER_STATS:
            stats = args.get("stats") if isinstance(args.get("stats"), dict) else {}
            listing = ", ".join(f"{name} {stats.get(name, 'N/A')}" for name in STAT_NAMES)
            return "Assign Character Stats?", f"The Chronicler suggests these stats for your character: {listing}."
        case ToolName.SUBMIT_CHARACTER_FOR_APPROVAL:
            return (
                "Submit Character for Approval?",
                "The Chronicler is ready to submit your character for approval via Discord. "
                "Once submitted, the DM will review it and leave feedback.",
            )
        case _:
            return "Confirm Action?", f"The Chronicler wants to run {request.name}."


class ConfirmationGate:
    """Pending confirmation table keyed by conversation id."""

    def __init__(self, timeout_seconds: float | None = 300.0):
        self.timeout_seconds = timeout_seconds
        self._pending: dict[str, PendingConfirmation] = {}

    def get_pending(self, conversation_id: str) -> PendingConfirmation | None:
        return self._pending.get(conversation_id)

    async def request_confirmation(self, conversation_id: str, request: ToolInvocationRequest) -> bool:
        """Suspend until the user confirms or denies the tool call.

        A timeout is treated as a denial. The pending entry is cleared however
        the wait ends.
        """
        if conversation_id in self._pending:
            raise ConfirmationError(f"Conversation {conversation_id} already has a pending confirmation")

        decision: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        pending = PendingConfirmation(conversation_id=conversation_id, request=request, decision=decision)
        self._pending[conversation_id] = pending
        logger.info(f"Awaiting confirmation of {request.name} ({request.id}) in conversation {conversation_id}")

        try:
            approved = await asyncio.wait_for(decision, timeout=self.timeout_seconds)
        except TimeoutError:
            logger.warning(f"Confirmation of {request.name} timed out after {self.timeout_seconds}s, denying")
            approved = False
        finally:
            if self._pending.get(conversation_id) is pending:
                del self._pending[conversation_id]

        logger.info(f"Tool {request.name} {'approved' if approved else 'denied'} in conversation {conversation_id}")
        return approved

    def resolve(self, conversation_id: str, approved: bool) -> PendingConfirmation:
        """Deliver the user's decision to the suspended turn."""
        pending = self._pending.pop(conversation_id, None)
        if pending is None or pending.decision.done():
            raise NoPendingConfirmationError(f"No pending confirmation for conversation {conversation_id}")

        pending.decision.set_result(approved)
        return pending
