"""Application settings loaded from the environment."""

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass
class Settings:
    """Runtime configuration for the Chronicler service."""

    ai_server: str = "http://localhost:8080/v1/chat/completions"
    ai_model: str = "gpt-oss-120b"
    ai_token: str | None = None
    ai_timeout_seconds: float = 90.0
    ai_requests_per_minute: int = 50
    ai_tokens_per_minute: int = 40_000

    max_message_tokens: int = 2000
    max_tool_iterations: int = 10
    confirmation_timeout_seconds: float = 300.0

    discord_webhook_url: str | None = None
    admin_user_emails: frozenset[str] = field(default_factory=frozenset)

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        admins = os.getenv("ADMIN_USER_EMAILS", "")

        return cls(
            ai_server=os.getenv("AI_SERVER", cls.ai_server),
            ai_model=os.getenv("AI_MODEL", cls.ai_model),
            # AIToken is the variable name older deployments use
            ai_token=os.getenv("AI_TOKEN") or os.getenv("AIToken"),
            ai_timeout_seconds=_env_float("AI_TIMEOUT_SECONDS", cls.ai_timeout_seconds),
            ai_requests_per_minute=_env_int("AI_REQUESTS_PER_MINUTE", cls.ai_requests_per_minute),
            ai_tokens_per_minute=_env_int("AI_TOKENS_PER_MINUTE", cls.ai_tokens_per_minute),
            max_message_tokens=_env_int("MAX_MESSAGE_TOKENS", cls.max_message_tokens),
            max_tool_iterations=_env_int("MAX_TOOL_ITERATIONS", cls.max_tool_iterations),
            confirmation_timeout_seconds=_env_float("CONFIRMATION_TIMEOUT_SECONDS", cls.confirmation_timeout_seconds),
            discord_webhook_url=os.getenv("DISCORD_WEBHOOK_URL") or None,
            admin_user_emails=frozenset(email.strip().lower() for email in admins.split(",") if email.strip()),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )
