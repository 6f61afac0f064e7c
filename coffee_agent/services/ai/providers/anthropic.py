"""Anthropic (Claude) text provider implementation."""

import logging

from coffee_agent.services.ai.client import AIProvider, TextProvider

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("claude-sonnet-4-20250514", "claude-3-5-haiku-latest")


class AnthropicProvider(TextProvider):
    """Anthropic Claude messages client."""

    provider = AIProvider.ANTHROPIC
    default_models = DEFAULT_MODELS

    def __init__(self, api_key: str):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key.
        """
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package is required. Install with: pip install anthropic"
            )

        self.client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    async def generate(self, prompt: str, model: str) -> str:
        response = await self.client.messages.create(
            model=model,
            max_tokens=2048,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        logger.debug(f"Anthropic {model} returned {len(text)} chars")
        return text
