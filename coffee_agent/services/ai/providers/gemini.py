"""Google Gemini text provider implementation."""

import logging

from coffee_agent.services.ai.client import AIProvider, TextProvider

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash")


class GeminiProvider(TextProvider):
    """Gemini client using the google-genai async API."""

    provider = AIProvider.GEMINI
    default_models = DEFAULT_MODELS

    def __init__(self, api_key: str, temperature: float = 0.2):
        """
        Initialize the Gemini client.

        Args:
            api_key: Gemini API key.
            temperature: Sampling temperature for all calls.
        """
        try:
            from google import genai
            from google.genai import types
        except ImportError:
            raise ImportError(
                "google-genai package is required. Install with: pip install google-genai"
            )

        self.client = genai.Client(api_key=api_key)
        self._config = types.GenerateContentConfig(
            response_mime_type="text/plain",
            temperature=temperature,
        )

    async def generate(self, prompt: str, model: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=self._config,
        )
        text = (getattr(response, "text", None) or "").strip()
        logger.debug(f"Gemini {model} returned {len(text)} chars")
        return text
