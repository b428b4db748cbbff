"""Anthropic Claude API client used by every text-generation step."""

import logging
from typing import Optional

from anthropic import AsyncAnthropic

from ezanim.config import ANTHROPIC_API_KEY

logger = logging.getLogger(__name__)


class AnthropicClient:
    """Client for Anthropic Claude API."""

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or ANTHROPIC_API_KEY
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not found in environment")
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 1.0,
    ) -> str:
        """Generate a completion using Claude.

        Args:
            prompt: The user prompt
            system_prompt: System instructions
            model: Model to use
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature

        Returns:
            The generated text response

        Raises:
            RuntimeError: If the API returns no text content. The call is
                          not repeated; the caller decides what a failure means.
        """
        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self.client.messages.create(**kwargs)

        text = self._extract_text(response)
        if not text:
            raise RuntimeError(f"Anthropic API returned empty content (model {model})")
        if getattr(response, "stop_reason", None) == "max_tokens":
            logger.warning("Response from %s hit max_tokens=%d and may be truncated", model, max_tokens)
        return text

    @staticmethod
    def _extract_text(response) -> str:
        """Join the text blocks of a response, skipping any non-text blocks."""
        if not response.content:
            return ""
        text_parts = []
        for block in response.content:
            if hasattr(block, "text"):
                text_parts.append(block.text)
        return "\n".join(text_parts)
