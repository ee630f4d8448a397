"""Tool call extraction from model responses.

Two paths produce the same ToolInvocationRequest:

- structured: the backend's native ``tool_calls`` field
- embedded: a ``{"tool": "<name>", "arguments": {...}}`` object written into the
  reply text by models that do not use native function calling
"""

import json
import re
from collections.abc import Collection
from typing import Any

from cuid2 import cuid_wrapper

from chronicler.models.llm import ToolInvocationRequest
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

EMBEDDED_CALL_START_RE = re.compile(r'\{\s*"tool"\s*:')

_decoder = json.JSONDecoder()


def generate_tool_call_id() -> str:
    return f"call_{cuid()}"


def decode_arguments(raw: Any) -> dict[str, Any]:
    """Decode a tool call's arguments, which backends send as a JSON string or an object."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Could not decode tool arguments, using empty arguments: {raw[:200]!r}")
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def parse_structured_tool_call(tool_calls: Any) -> ToolInvocationRequest | None:
    """Take the first entry of a native ``tool_calls`` list.

    Only one tool call is acted on per model reply; the rest are dropped.
    """
    if not isinstance(tool_calls, list) or not tool_calls:
        return None

    if len(tool_calls) > 1:
        dropped = [_call_name(call) for call in tool_calls[1:]]
        logger.warning(f"Model requested {len(tool_calls)} tool calls; ignoring {dropped}")

    first = tool_calls[0]
    name = _call_name(first)
    if not name:
        logger.warning(f"Structured tool call has no function name: {first!r}")
        return None

    function = first.get("function") or {}
    return ToolInvocationRequest(
        id=first.get("id") or generate_tool_call_id(),
        name=name,
        arguments=decode_arguments(function.get("arguments")),
    )


def extract_embedded_tool_call(text: str, known_tools: Collection[str]) -> ToolInvocationRequest | None:
    """Find the first well-formed embedded tool call naming a known tool.

    Candidates must decode as a JSON object whose "tool" is a known tool name and
    whose "arguments" (if present) is an object. Anything else is ignored.
    """
    if not text:
        return None

    for match in EMBEDDED_CALL_START_RE.finditer(text):
        try:
            candidate, _ = _decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue

        name = candidate.get("tool")
        arguments = candidate.get("arguments", {})
        if name not in known_tools or not isinstance(arguments, dict):
            logger.debug(f"Ignoring embedded tool call candidate: {candidate!r}")
            continue

        logger.info(f"Extracted embedded tool call {name} from reply text")
        return ToolInvocationRequest(id=generate_tool_call_id(), name=name, arguments=arguments)

    return None


def _call_name(call: Any) -> str | None:
    if not isinstance(call, dict):
        return None
    function = call.get("function")
    if isinstance(function, dict):
        return function.get("name")
    return None
