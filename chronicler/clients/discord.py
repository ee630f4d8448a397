"""Discord webhook notifications for character approval."""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from chronicler.models.character import STAT_NAMES, Character
from chronicler.utils.logging import get_logger

logger = get_logger(__name__)

SUBMISSION_COLOR = 0x5865F2


@dataclass
class NotificationResult:
    ok: bool
    reason: str | None = None


class Notifier(Protocol):
    """Interface for sending a character to reviewers."""

    async def notify(self, character: Character, submitter_email: str) -> NotificationResult:
        """Deliver the character for review. Failures are returned, never raised."""
        ...


class DiscordNotifier:
    """Posts character submissions to a Discord webhook."""

    def __init__(
        self,
        webhook_url: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    async def notify(self, character: Character, submitter_email: str) -> NotificationResult:
        if not self.webhook_url:
            logger.warning("Discord webhook URL is not configured")
            return NotificationResult(ok=False, reason="Discord webhook not configured")

        payload = format_character_embed(character, submitter_email)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Discord webhook request failed for character {character.id}: {e}")
            return NotificationResult(ok=False, reason=f"Discord request failed: {e}")

        if response.status_code >= 400:
            logger.warning(f"Discord webhook returned {response.status_code}: {response.text[:200]}")
            return NotificationResult(ok=False, reason=f"Discord API error: {response.status_code}")

        logger.info(f"Submitted character {character.id} to Discord for {submitter_email}")
        return NotificationResult(ok=True)


def format_character_embed(character: Character, submitter_email: str) -> dict[str, Any]:
    """Build the webhook embed describing a character submission."""
    if character.stats:
        values = character.stats.as_dict()
        stats = "\n".join(f"{name}: {values[name]}" for name in STAT_NAMES)
    else:
        stats = "Not specified"

    return {
        "embeds": [
            {
                "title": f"New Character Submission: {character.name}",
                "description": f"Submitted for approval by {submitter_email}",
                "color": SUBMISSION_COLOR,
                "fields": [
                    {"name": "Class", "value": character.class_name or "Not specified", "inline": True},
                    {"name": "Race", "value": character.race_name or "Not specified", "inline": True},
                    {"name": "Stats", "value": stats, "inline": False},
                    {"name": "Submitted By", "value": submitter_email, "inline": True},
                    {"name": "Character ID", "value": str(character.id), "inline": True},
                    {"name": "Status", "value": "Awaiting Review", "inline": True},
                ],
                "timestamp": datetime.now(UTC).isoformat(),
            }
        ]
    }
