"""Turn orchestration: one user turn through the model/tool loop."""

import json
from typing import Any

from langgraph.graph import END, StateGraph

from chronicler.graphs.edges import route_confirmation_output, route_model_output
from chronicler.graphs.nodes import TurnNodes
from chronicler.graphs.state import TurnState
from chronicler.models.conversation import TurnOutcome, TurnResult
from chronicler.models.llm import format_tool_result_body
from chronicler.models.user import User
from chronicler.services.conversation_store import ConversationStore
from chronicler.services.locks import ConversationLocks
from chronicler.utils.logging import get_logger
from chronicler.utils.tokens import TokenCounter

logger = get_logger(__name__)


def create_turn_graph(nodes: TurnNodes):
    """Create the turn graph.

    model -> (end | confirm | tools | limit); confirm -> (tools | end);
    tools -> model; limit -> end.

    Args:
        nodes: Node implementations bound to their collaborators

    Returns:
        Compiled LangGraph workflow
    """
    workflow = StateGraph(TurnState)

    workflow.add_node("model", nodes.model_node)
    workflow.add_node("confirm", nodes.confirm_node)
    workflow.add_node("tools", nodes.tools_node)
    workflow.add_node("limit", nodes.limit_node)

    workflow.set_entry_point("model")

    workflow.add_conditional_edges(
        "model",
        route_model_output,
        {
            "confirm": "confirm",
            "tools": "tools",
            "limit": "limit",
            "end": END,
        },
    )

    workflow.add_conditional_edges(
        "confirm",
        route_confirmation_output,
        {
            "tools": "tools",
            "end": END,
        },
    )

    workflow.add_edge("tools", "model")
    workflow.add_edge("limit", END)

    return workflow.compile()


class TurnOrchestrator:
    """Runs turns for any conversation, one at a time per conversation."""

    def __init__(
        self,
        store: ConversationStore,
        nodes: TurnNodes,
        locks: ConversationLocks | None = None,
        token_counter: TokenCounter | None = None,
        max_tool_iterations: int = 10,
        max_message_tokens: int = 2000,
    ):
        self.store = store
        self.graph = create_turn_graph(nodes)
        self.locks = locks or ConversationLocks()
        self.token_counter = token_counter or TokenCounter()
        self.max_tool_iterations = max_tool_iterations
        self.max_message_tokens = max_message_tokens

    @property
    def recursion_limit(self) -> int:
        # model, confirm and tools per iteration, plus the final model call and limit node
        return self.max_tool_iterations * 3 + 5

    async def run_turn(
        self,
        conversation_id: str,
        caller: User,
        message: str = "",
        tool_results: list[dict[str, Any]] | None = None,
        tool_names: list[str] | None = None,
    ) -> TurnResult:
        """Run one turn from new input to a plain reply, a denial, or the iteration limit.

        Tool results make this a continuation: they are persisted as tool-result
        messages and any message text is ignored.

        Raises:
            ValueError: Neither a message nor tool results, or the message is too long
            ConversationBusyError: Another turn is running for this conversation
            ModelGatewayError: The model call failed
            UnknownToolError: The model asked for a tool outside the catalog
        """
        message = (message or "").strip()
        if not tool_results and not message:
            raise ValueError("Either a message or toolResult must be provided")
        if not tool_results:
            self.token_counter.validate_message(message, self.max_message_tokens)

        async with self.locks.hold(conversation_id):
            if tool_results:
                await self._persist_tool_results(conversation_id, tool_results)
                user_message = ""
            else:
                await self.store.append_message(conversation_id, "user", message)
                user_message = message

            initial_state = TurnState(
                conversation_id=conversation_id,
                caller=caller,
                tool_names=tool_names,
                max_iterations=self.max_tool_iterations,
            )

            logger.info(f"Running turn for conversation {conversation_id}")
            result = await self.graph.ainvoke(initial_state.model_dump(), {"recursion_limit": self.recursion_limit})
            final = result if isinstance(result, TurnState) else TurnState.model_validate(result)

        logger.info(
            f"Turn for conversation {conversation_id} ended: {final.outcome} after {final.iterations} tool call(s)"
        )
        return TurnResult(
            user_message=user_message,
            ai_message=final.ai_message,
            tool_call=final.last_tool_call,
            outcome=final.outcome or TurnOutcome.COMPLETED,
            iterations=final.iterations,
        )

    async def _persist_tool_results(self, conversation_id: str, tool_results: list[dict[str, Any]]) -> None:
        for item in tool_results:
            tool_call_id = item.get("toolCallId") or item.get("toolId") or item.get("tool_call_id")
            await self.store.append_message(
                conversation_id,
                "user",
                format_tool_result_body(item),
                tool_call_id=str(tool_call_id) if tool_call_id else None,
                tool_result=json.dumps(item, default=str),
            )
