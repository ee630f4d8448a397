"""Language model gateway for OpenAI-compatible chat completion endpoints."""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from chronicler.clients.tool_call_parser import extract_embedded_tool_call, parse_structured_tool_call
from chronicler.models.conversation import Message
from chronicler.models.llm import ChatMessage, ModelReply
from chronicler.tools.base import ToolDefinition
from chronicler.utils.logging import get_logger
from chronicler.utils.tokens import TokenCounter

logger = get_logger(__name__)


class ModelGatewayError(Exception):
    """A model call failed. Terminal for the current turn."""


class ModelTimeoutError(ModelGatewayError, TimeoutError):
    """The model endpoint did not answer within the time budget."""


class UpstreamError(ModelGatewayError):
    """The model endpoint was unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ModelGatewayError):
    """The model endpoint answered, but not with a usable chat completion."""


@dataclass
class ModelGatewayConfig:
    """Configuration for the model gateway."""

    url: str = "http://localhost:8080/v1/chat/completions"
    model: str = "gpt-oss-120b"
    api_token: str | None = None
    timeout_seconds: float = 90.0
    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000


class ModelRateLimiter:
    """Client-side request and token rate limiting using the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "model") -> None:
        """Wait until the request fits within both limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        cost = max(1, min(estimated_tokens, self.token_limit.amount))
        if not self.limiter.hit(self.token_limit, token_identifier, cost=cost):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit: Any, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


class ModelGateway:
    """Sends the replayed conversation and tool catalog to the model in one request.

    The reply is either plain text or text plus at most one tool call. Failures
    raise a ModelGatewayError subclass and are never retried here.
    """

    def __init__(
        self,
        config: ModelGatewayConfig | None = None,
        token_counter: TokenCounter | None = None,
        rate_limiter: ModelRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or ModelGatewayConfig()
        self.token_counter = token_counter or TokenCounter()
        self.rate_limiter = rate_limiter or ModelRateLimiter(
            self.config.requests_per_minute, self.config.tokens_per_minute
        )
        self.transport = transport

    def build_request(self, messages: Sequence[Message], tools: Sequence[ToolDefinition]) -> dict[str, Any]:
        """Build the chat completion request body."""
        chat_messages = [ChatMessage(role=m.sender, content=m.body).model_dump() for m in messages]
        body: dict[str, Any] = {"model": self.config.model, "messages": chat_messages}
        if tools:
            body["tools"] = [tool.to_function_declaration() for tool in tools]
        return body

    async def send(self, messages: Sequence[Message], tools: Sequence[ToolDefinition]) -> ModelReply:
        body = self.build_request(messages, tools)

        estimated_tokens = self.token_counter.count_many([m.body for m in messages])
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        headers = {"Content-Type": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"

        logger.debug(f"Calling model {self.config.model} with {len(messages)} messages and {len(tools)} tools")
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self.transport) as client:
                response = await client.post(self.config.url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning(f"Model request timed out after {self.config.timeout_seconds}s")
            raise ModelTimeoutError(f"AI service timed out after {self.config.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            logger.warning(f"Model request failed: {e}")
            raise UpstreamError(f"AI service request failed: {e}") from e

        latency_ms = (time.monotonic() - started) * 1000
        logger.info(f"Model responded with {response.status_code} in {latency_ms:.0f}ms")

        if not response.is_success:
            logger.warning(f"Model endpoint error body: {response.text[:200]}")
            raise UpstreamError(f"AI service returned status {response.status_code}", response.status_code)

        return self.parse_reply(response, [tool.name.value for tool in tools])

    def parse_reply(self, response: httpx.Response, known_tools: Sequence[str]) -> ModelReply:
        """Turn a successful HTTP response into a ModelReply."""
        if not response.text.strip():
            raise MalformedResponseError("AI service returned an empty response")

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("AI service returned a non-JSON response") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            raise MalformedResponseError("AI service response is missing choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise MalformedResponseError("AI service response is missing a message")

        content = message.get("content")
        text = content if isinstance(content, str) else ""

        tool_call = parse_structured_tool_call(message.get("tool_calls"))
        if tool_call is not None:
            return ModelReply(text=text, tool_call=tool_call, structured=True)

        return ModelReply(text=text, tool_call=extract_embedded_tool_call(text, known_tools))
