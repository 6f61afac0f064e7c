"""Chunking and embedding services for semantic retrieval."""

from coffee_agent.services.embeddings.chunker import build_chunks, format_tasting_profile
from coffee_agent.services.embeddings.pipeline import (
    BulkEmbeddingResult,
    CleanupResult,
    EmbeddingPipeline,
    EmbeddingResult,
    EmbeddingStatus,
    embedding_status,
)
from coffee_agent.services.embeddings.providers import (
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    get_embedding_provider,
)

__all__ = [
    "BulkEmbeddingResult",
    "CleanupResult",
    "EmbeddingPipeline",
    "EmbeddingProvider",
    "EmbeddingResult",
    "EmbeddingStatus",
    "OpenAIEmbeddingProvider",
    "build_chunks",
    "embedding_status",
    "format_tasting_profile",
    "get_embedding_provider",
]
