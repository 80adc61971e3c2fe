"""
Text Completion Client: single-operation wrapper over Claude.

The analysis job only ever needs "prompt in, text out". complete() raises
CompletionError on any failure; try_complete() turns that into a
CompletionResult so callers can branch to their heuristic fallback
explicitly instead of catching exceptions.
"""

import asyncio
import logging
from typing import Optional

from anthropic import APIError, AsyncAnthropic
from pydantic import BaseModel

from feedback_health.core.config import (
    AI_TIMEOUT_SECONDS,
    ANTHROPIC_API_KEY,
    CLAUDE_MODEL,
)

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3  # low temperature for consistent, parseable replies


class CompletionError(Exception):
    """Raised when the AI service fails, times out or returns no text."""

    pass


class CompletionResult(BaseModel):
    """Outcome of one completion attempt."""

    ok: bool
    text: str = ""
    error: Optional[str] = None


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence (```json ... ```) if present."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.startswith("json"):
            text = text[4:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class TextCompletionClient:
    """
    Async client for one-shot text completions.

    Args:
        api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY.
        model: Claude model id. Defaults to CLAUDE_MODEL.
        timeout: Seconds before a call is abandoned and treated as failed.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = CLAUDE_MODEL,
        timeout: float = AI_TIMEOUT_SECONDS,
    ) -> None:
        self._api_key = api_key if api_key is not None else ANTHROPIC_API_KEY
        self._model = model
        self._timeout = timeout
        self._client: AsyncAnthropic | None = None

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self._api_key, timeout=self._timeout, max_retries=1,
            )
        return self._client

    async def complete(self, prompt: str, max_tokens: int) -> str:
        """Send a single user prompt and return the reply text."""
        if not self.configured:
            raise CompletionError("ANTHROPIC_API_KEY is not configured")

        try:
            response = await asyncio.wait_for(
                self._get_client().messages.create(
                    model=self._model,
                    max_tokens=max_tokens,
                    temperature=TEMPERATURE,
                    messages=[{"role": "user", "content": prompt}],
                ),
                self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise CompletionError(f"Completion timed out after {self._timeout}s") from exc
        except APIError as exc:
            raise CompletionError(f"Anthropic API error: {exc}") from exc

        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        ).strip()
        if not text:
            raise CompletionError("Completion returned no text")
        return text

    async def try_complete(self, prompt: str, max_tokens: int) -> CompletionResult:
        try:
            text = await self.complete(prompt, max_tokens)
        except CompletionError as exc:
            logger.warning("Text completion unavailable: %s", exc)
            return CompletionResult(ok=False, error=str(exc))
        return CompletionResult(ok=True, text=text)
