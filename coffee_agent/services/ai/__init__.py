"""AI enrichment services for Coffee Agent."""

from coffee_agent.services.ai.client import (
    AIProvider,
    GenerationResult,
    TextProvider,
    classify_provider_error,
    get_text_provider,
)
from coffee_agent.services.ai.enrichment import EnrichmentResult, FieldEnricher
from coffee_agent.services.ai.provider_client import ProviderClient

__all__ = [
    "AIProvider",
    "EnrichmentResult",
    "FieldEnricher",
    "GenerationResult",
    "ProviderClient",
    "TextProvider",
    "classify_provider_error",
    "get_text_provider",
]
