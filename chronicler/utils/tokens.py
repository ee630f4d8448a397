"""Token estimation for message validation and rate limiting."""

import tiktoken

from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class TokenCounter:
    """Estimates token counts with tiktoken, falling back to ~4 characters per token.

    The encoding is loaded on first use. Pass encoding_name=None to always use
    the character estimate.
    """

    tokenizer: tiktoken.Encoding | None

    def __init__(self, encoding_name: str | None = "cl100k_base"):
        self.encoding_name = encoding_name
        self.tokenizer = None
        self._load_attempted = encoding_name is None

    def _ensure_tokenizer(self) -> None:
        if self.tokenizer is not None or self._load_attempted:
            return
        self._load_attempted = True
        try:
            self.tokenizer = tiktoken.get_encoding(self.encoding_name)
        except Exception as e:
            logger.warning(f"Tokenizer {self.encoding_name} unavailable, using character estimate: {e}")

    def count(self, text: str) -> int:
        """Estimate token count for a piece of text."""
        self._ensure_tokenizer()
        try:
            return len(self.tokenizer.encode(text)) if self.tokenizer else len(text) // 4
        except Exception:
            return len(text) // 4

    def count_many(self, texts: list[str]) -> int:
        return sum(self.count(text) for text in texts)

    def validate_message(self, message: str, max_tokens: int) -> None:
        """Reject a user message that exceeds the per-message token limit.

        Raises:
            ValueError: If the message exceeds the limit
        """
        token_count = self.count(message)
        if token_count > max_tokens:
            raise ValueError(f"Message exceeds token limit: {token_count} tokens > {max_tokens} limit")
