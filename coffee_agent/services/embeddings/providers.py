"""Embedding provider abstraction and the OpenAI implementation."""

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    model: str

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """
        Embed one text.

        Args:
            text: Text to embed.

        Returns:
            The embedding vector.
        """
        pass


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings client."""

    def __init__(self, api_key: str, model: str | None = None, max_retries: int = 3):
        """
        Initialize the OpenAI embeddings client.

        Args:
            api_key: OpenAI API key.
            model: Embedding model (defaults to text-embedding-3-small).
            max_retries: SDK-level retries for transient HTTP errors.
        """
        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai package is required. Install with: pip install openai"
            )

        self.client = openai.AsyncOpenAI(api_key=api_key, max_retries=max_retries)
        self.model = model or DEFAULT_EMBEDDING_MODEL

    async def embed(self, text: str) -> list[float]:
        response = await self.client.embeddings.create(input=text, model=self.model)
        return list(response.data[0].embedding)


def get_embedding_provider(
    provider: str = "openai", api_key: str | None = None, model: str | None = None
) -> EmbeddingProvider:
    """
    Factory function to get an embedding provider.

    Raises:
        ValueError: If the provider is not supported or no API key is available.
    """
    if provider.lower() != "openai":
        raise ValueError(f"Unsupported embedding provider: {provider}")
    if not api_key:
        raise ValueError("No API key configured for embedding provider 'openai'")
    return OpenAIEmbeddingProvider(api_key=api_key, model=model)
