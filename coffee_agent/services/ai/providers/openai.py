"""OpenAI text provider implementation."""

import logging

from coffee_agent.services.ai.client import AIProvider, TextProvider

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("gpt-4o-mini", "gpt-4o")


class OpenAIProvider(TextProvider):
    """OpenAI chat completions client."""

    provider = AIProvider.OPENAI
    default_models = DEFAULT_MODELS

    def __init__(self, api_key: str):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
        """
        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai package is required. Install with: pip install openai"
            )

        # Retries are owned by ProviderClient
        self.client = openai.AsyncOpenAI(api_key=api_key, max_retries=0)

    async def generate(self, prompt: str, model: str) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            max_tokens=2048,
            messages=[{"role": "user", "content": prompt}],
        )
        text = response.choices[0].message.content or ""
        logger.debug(f"OpenAI {model} returned {len(text)} chars")
        return text
