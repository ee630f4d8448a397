"""Edge logic and routing for the turn graph."""

from typing import Literal

from chronicler.graphs.state import TurnState
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


def route_model_output(state: TurnState) -> Literal["confirm", "tools", "limit", "end"]:
    """Route from the model node.

    A plain reply ends the turn. A tool call is executed, after confirmation
    for gated tools, unless the turn has used up its tool iterations.
    """
    if state.outcome is not None or state.pending_tool_call is None:
        return "end"

    if state.iterations >= state.max_iterations:
        logger.warning(
            f"Conversation {state.conversation_id} hit {state.max_iterations} tool iterations; "
            f"dropping {state.pending_tool_call.name}"
        )
        return "limit"

    if state.confirmation_required:
        logger.info(f"Tool {state.pending_tool_call.name} requires confirmation")
        return "confirm"

    return "tools"


def route_confirmation_output(state: TurnState) -> Literal["tools", "end"]:
    """Route from the confirm node: denial ends the turn."""
    if state.outcome is not None:
        return "end"
    return "tools"
