"""Node implementations for the turn graph."""

import json
from typing import Any

from chronicler.clients.model_gateway import ModelGateway
from chronicler.graphs.state import TurnState
from chronicler.models.conversation import TurnOutcome
from chronicler.models.llm import ToolInvocationRequest, format_tool_result_body
from chronicler.services.confirmation import ConfirmationGate
from chronicler.services.conversation_store import ConversationStore
from chronicler.tools.executor import ToolExecutor
from chronicler.tools.registry import ToolsRegistry
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

ITERATION_LIMIT_MESSAGE = (
    "I've made several tool calls in a row without reaching an answer, so I'm stopping here. "
    "Let me know how you'd like to continue."
)


def denial_message(call: ToolInvocationRequest) -> str:
    return (
        f"The user denied the {call.name} request with arguments {json.dumps(call.arguments, default=str)}. "
        "No changes were made. Ask the user how they would like to proceed instead."
    )


class TurnNodes:
    """Graph nodes bound to the collaborators of one orchestrator.

    Every node that produces a message persists it before returning, so the
    next model call always sees it in the replayed history.
    """

    def __init__(
        self,
        store: ConversationStore,
        gateway: ModelGateway,
        registry: ToolsRegistry,
        executor: ToolExecutor,
        gate: ConfirmationGate,
    ):
        self.store = store
        self.gateway = gateway
        self.registry = registry
        self.executor = executor
        self.gate = gate

    async def model_node(self, state: TurnState) -> dict[str, Any]:
        """Replay the conversation to the model and record what it asked for."""
        history = await self.store.get_history(state.conversation_id)
        tools = self.registry.select(state.tool_names)

        reply = await self.gateway.send(history, tools)

        if reply.tool_call is not None:
            logger.info(
                f"Model requested {reply.tool_call.name} ({'structured' if reply.structured else 'embedded'}) "
                f"in conversation {state.conversation_id}"
            )
            return {
                "pending_tool_call": reply.tool_call,
                "confirmation_required": self.registry.requires_confirmation(reply.tool_call.name),
                "ai_message": "",
            }

        text = reply.text.strip()
        if text:
            await self.store.append_message(state.conversation_id, "assistant", text)
        else:
            logger.warning(f"Model returned an empty reply in conversation {state.conversation_id}")

        return {
            "pending_tool_call": None,
            "confirmation_required": False,
            "ai_message": text,
            "outcome": TurnOutcome.COMPLETED,
        }

    async def confirm_node(self, state: TurnState) -> dict[str, Any]:
        """Wait for the user to approve a gated tool call."""
        call = state.pending_tool_call
        approved = await self.gate.request_confirmation(state.conversation_id, call)
        if approved:
            return {"ai_message": ""}

        body = denial_message(call)
        await self.store.append_message(state.conversation_id, "system", body)
        return {
            "pending_tool_call": None,
            "last_tool_call": call,
            "ai_message": body,
            "outcome": TurnOutcome.DENIED,
        }

    async def tools_node(self, state: TurnState) -> dict[str, Any]:
        """Execute the pending tool call and persist the exchange."""
        call = state.pending_tool_call
        result = await self.executor.execute(call.name, call.arguments, state.caller, call.id)

        payload = result.to_payload()
        await self.store.append_message(
            state.conversation_id,
            "user",
            format_tool_result_body({**call.as_call_record(), "result": payload}),
            tool_call_id=call.id,
            tool_result=json.dumps(payload, default=str),
        )

        return {
            "pending_tool_call": None,
            "confirmation_required": False,
            "last_tool_call": call,
            "iterations": state.iterations + 1,
            "ai_message": "",
        }

    async def limit_node(self, state: TurnState) -> dict[str, Any]:
        """End a turn that keeps requesting tools."""
        await self.store.append_message(state.conversation_id, "assistant", ITERATION_LIMIT_MESSAGE)
        return {
            "pending_tool_call": None,
            "ai_message": ITERATION_LIMIT_MESSAGE,
            "outcome": TurnOutcome.ITERATION_LIMIT,
        }
