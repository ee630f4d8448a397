"""Service wiring and FastAPI dependencies."""

import random
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException

from chronicler.clients.discord import DiscordNotifier, Notifier
from chronicler.clients.model_gateway import ModelGateway, ModelGatewayConfig
from chronicler.config import Settings
from chronicler.graphs.nodes import TurnNodes
from chronicler.graphs.turn import TurnOrchestrator
from chronicler.models.user import User
from chronicler.services.characters import CharacterStore, InMemoryCharacterStore
from chronicler.services.confirmation import ConfirmationGate
from chronicler.services.content import ContentCatalog, KeywordSearchService
from chronicler.services.conversation import ConversationService
from chronicler.services.conversation_store import InMemoryConversationStore
from chronicler.services.locks import ConversationLocks
from chronicler.tools.executor import create_tool_executor
from chronicler.tools.registry import get_tools_registry
from chronicler.utils.logging import get_logger
from chronicler.utils.tokens import TokenCounter

logger = get_logger(__name__)


@dataclass
class Services:
    """Everything the API layer talks to."""

    settings: Settings
    characters: CharacterStore
    conversations: ConversationService
    confirmations: ConfirmationGate


def build_services(
    settings: Settings | None = None,
    gateway: ModelGateway | None = None,
    notifier: Notifier | None = None,
    rng: random.Random | None = None,
    token_counter: TokenCounter | None = None,
) -> Services:
    """Build the service graph with in-memory stores."""
    settings = settings or Settings.from_env()
    token_counter = token_counter or TokenCounter()

    gateway = gateway or ModelGateway(
        ModelGatewayConfig(
            url=settings.ai_server,
            model=settings.ai_model,
            api_token=settings.ai_token,
            timeout_seconds=settings.ai_timeout_seconds,
            requests_per_minute=settings.ai_requests_per_minute,
            tokens_per_minute=settings.ai_tokens_per_minute,
        ),
        token_counter=token_counter,
    )
    notifier = notifier or DiscordNotifier(settings.discord_webhook_url)

    characters = InMemoryCharacterStore()
    catalog = ContentCatalog()
    conversation_store = InMemoryConversationStore()
    locks = ConversationLocks()
    gate = ConfirmationGate(timeout_seconds=settings.confirmation_timeout_seconds)

    executor = create_tool_executor(characters, KeywordSearchService(catalog), catalog, notifier, rng)
    nodes = TurnNodes(conversation_store, gateway, get_tools_registry(), executor, gate)
    orchestrator = TurnOrchestrator(
        conversation_store,
        nodes,
        locks=locks,
        token_counter=token_counter,
        max_tool_iterations=settings.max_tool_iterations,
        max_message_tokens=settings.max_message_tokens,
    )

    logger.info(f"Services built for model {settings.ai_model} at {settings.ai_server}")
    return Services(
        settings=settings,
        characters=characters,
        conversations=ConversationService(conversation_store, orchestrator, locks, settings.admin_user_emails),
        confirmations=gate,
    )


_services: Services | None = None


def get_services() -> Services:
    """Get or create the process-wide services."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


ServicesDep = Annotated[Services, Depends(get_services)]


async def get_caller(
    services: ServicesDep,
    x_user_email: Annotated[str | None, Header()] = None,
) -> User:
    """Resolve the x-user-email header to a user, creating the user on first sight."""
    if not x_user_email or not x_user_email.strip():
        raise HTTPException(status_code=400, detail="User email not found in headers")
    return await services.characters.find_or_create_user(x_user_email)


CallerDep = Annotated[User, Depends(get_caller)]
