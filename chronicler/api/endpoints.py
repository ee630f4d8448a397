"""API endpoints for the Chronicler service."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, status

from chronicler import __version__
from chronicler.api.dependencies import CallerDep, ServicesDep
from chronicler.clients.model_gateway import ModelGatewayError, ModelTimeoutError
from chronicler.models.conversation import (
    ConfirmationDecisionRequest,
    ConfirmationDecisionResponse,
    ConfirmationView,
    ConversationView,
    CreateConversationRequest,
    CreateConversationResponse,
    HealthResponse,
    HistoryResponse,
    MessageView,
    RenameConversationRequest,
    SaveToolCallRequest,
    SaveToolResultRequest,
    SaveUserMessageRequest,
    SendMessageRequest,
    SendMessageResponse,
)
from chronicler.services.characters import StoreError
from chronicler.services.confirmation import NoPendingConfirmationError, describe_confirmation
from chronicler.services.conversation import ConversationAccessError
from chronicler.services.conversation_store import ConversationNotFoundError
from chronicler.services.locks import ConversationBusyError
from chronicler.tools.executor import UnknownToolError
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

RETRY_MESSAGE = "Something went wrong talking to the Chronicler. Please try again."


def to_http_exception(e: Exception, conversation_id: str | None = None) -> HTTPException:
    """Map a service exception to the HTTP error the client sees."""
    match e:
        case ConversationNotFoundError():
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        case ConversationAccessError():
            return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
        case ConversationBusyError():
            return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        case ModelTimeoutError():
            logger.warning(f"Model timeout in conversation {conversation_id}: {e}")
            return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=RETRY_MESSAGE)
        case ModelGatewayError():
            logger.warning(f"Model gateway error in conversation {conversation_id}: {e}")
            return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=RETRY_MESSAGE)
        case StoreError():
            logger.error(f"Store failure in conversation {conversation_id}: {e}")
            return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=RETRY_MESSAGE)
        case UnknownToolError():
            logger.error(f"Tool catalog mismatch in conversation {conversation_id}: {e}")
            return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=RETRY_MESSAGE)
        case ValueError():
            return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        case _:
            logger.error(f"Unexpected error in conversation {conversation_id}: {e}", exc_info=True)
            return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=RETRY_MESSAGE)


@router.post(
    "/conversations",
    response_model=CreateConversationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Conversation"],
)
async def create_conversation(
    services: ServicesDep, caller: CallerDep, request: CreateConversationRequest | None = None
) -> CreateConversationResponse:
    """Start a conversation seeded with the Chronicler's instructions and greeting."""
    name = request.conversation_name if request else None
    conversation, greeting = await services.conversations.create_conversation(caller, name)
    return CreateConversationResponse(
        conversation_id=conversation.id,
        conversation_name=conversation.name,
        initial_ai_response=greeting,
    )


@router.post("/conversations/{conversation_id}/messages", response_model=SendMessageResponse, tags=["Conversation"])
async def send_message(
    conversation_id: str, request: SendMessageRequest, services: ServicesDep, caller: CallerDep
) -> SendMessageResponse:
    """Run one turn: a new user message, or tool results continuing the previous turn.

    The call returns once the Chronicler replies in plain text, a gated tool is
    denied, or the tool iteration limit is reached. While a gated tool awaits a
    decision, the confirmation endpoints below report and resolve it.
    """
    try:
        result = await services.conversations.send_message(
            conversation_id,
            caller,
            message=request.message,
            tool_results=request.tool_results,
            tool_names=request.tools,
        )
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e

    return SendMessageResponse(
        conversation_id=conversation_id,
        user_message=result.user_message,
        ai_response=result.ai_message,
        tool_call=result.tool_call,
        outcome=result.outcome,
        iterations=result.iterations,
    )


@router.get(
    "/conversations/{conversation_id}/confirmation", response_model=ConfirmationView, tags=["Confirmation"]
)
async def get_pending_confirmation(conversation_id: str, services: ServicesDep, caller: CallerDep) -> ConfirmationView:
    """Describe the tool call currently waiting for the user's decision."""
    try:
        await services.conversations.get_owned_conversation(conversation_id, caller)
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e

    pending = services.confirmations.get_pending(conversation_id)
    if pending is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No pending confirmation")

    title, prompt = describe_confirmation(pending.request)
    return ConfirmationView(
        conversation_id=conversation_id,
        tool_call=pending.request,
        title=title,
        prompt=prompt,
        requested_at=pending.created_at,
    )


@router.post(
    "/conversations/{conversation_id}/confirmation",
    response_model=ConfirmationDecisionResponse,
    tags=["Confirmation"],
)
async def decide_confirmation(
    conversation_id: str, request: ConfirmationDecisionRequest, services: ServicesDep, caller: CallerDep
) -> ConfirmationDecisionResponse:
    """Approve or deny the pending tool call, resuming the suspended turn."""
    try:
        await services.conversations.get_owned_conversation(conversation_id, caller)
        services.confirmations.resolve(conversation_id, request.approved)
    except NoPendingConfirmationError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e

    return ConfirmationDecisionResponse(conversation_id=conversation_id, approved=request.approved)


@router.post(
    "/conversations/{conversation_id}/messages/save-user-message",
    response_model=MessageView,
    status_code=status.HTTP_201_CREATED,
    tags=["Audit"],
)
async def save_user_message(
    conversation_id: str, request: SaveUserMessageRequest, services: ServicesDep, caller: CallerDep
) -> MessageView:
    try:
        message = await services.conversations.save_user_message(conversation_id, caller, request.message)
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e
    return MessageView.from_message(message)


@router.post(
    "/conversations/{conversation_id}/messages/save-tool-call",
    response_model=MessageView,
    status_code=status.HTTP_201_CREATED,
    tags=["Audit"],
)
async def save_tool_call(
    conversation_id: str, request: SaveToolCallRequest, services: ServicesDep, caller: CallerDep
) -> MessageView:
    try:
        message = await services.conversations.save_tool_call(
            conversation_id, caller, request.tool_name, request.arguments, request.tool_call_id
        )
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e
    return MessageView.from_message(message)


@router.post(
    "/conversations/{conversation_id}/messages/save-tool-result",
    response_model=MessageView,
    status_code=status.HTTP_201_CREATED,
    tags=["Audit"],
)
async def save_tool_result(
    conversation_id: str, request: SaveToolResultRequest, services: ServicesDep, caller: CallerDep
) -> MessageView:
    try:
        message = await services.conversations.save_tool_result(
            conversation_id, caller, request.tool_call_id, request.result
        )
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e
    return MessageView.from_message(message)


@router.get("/conversations/{conversation_id}/history", response_model=HistoryResponse, tags=["Conversation"])
async def get_history(conversation_id: str, services: ServicesDep, caller: CallerDep) -> HistoryResponse:
    """Return the conversation's messages in order. Owners and admins only."""
    try:
        conversation, messages = await services.conversations.get_history(conversation_id, caller)
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e

    return HistoryResponse(
        conversation_id=conversation.id,
        conversation_name=conversation.name,
        messages=[MessageView.from_message(m) for m in messages],
    )


@router.patch(
    "/conversations/{conversation_id}", response_model=ConversationView, tags=["Conversation"]
)
async def rename_conversation(
    conversation_id: str, request: RenameConversationRequest, services: ServicesDep, caller: CallerDep
) -> ConversationView:
    try:
        conversation = await services.conversations.rename_conversation(
            conversation_id, caller, request.conversation_name
        )
    except Exception as e:
        raise to_http_exception(e, conversation_id) from e
    return ConversationView(
        conversation_id=conversation.id, conversation_name=conversation.name, created_at=conversation.created_at
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
