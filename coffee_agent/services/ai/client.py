"""AI client interface, provider abstraction and error classification."""

import json
import os
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel

from coffee_agent.core.errors import (
    ProviderError,
    ProviderModelBlockedError,
    ProviderRateLimitedError,
)

# Message fragments used when a provider error carries no usable status
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "too many requests", "resource has been exhausted")
_BLOCKED_MARKERS = ("quota", "permission denied", "permission_denied", "forbidden")

_RATE_LIMIT_STATUSES = {"RESOURCE_EXHAUSTED", "RATE_LIMIT_EXCEEDED"}
_BLOCKED_STATUSES = {"PERMISSION_DENIED", "FORBIDDEN"}


class AIProvider(str, Enum):
    """Supported generative-text providers."""

    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class GenerationResult(BaseModel):
    """Result of one logical generation call, after retries and model fallback."""

    success: bool
    text: str = ""
    parsed_json: Any | None = None
    model: str | None = None
    error_message: str | None = None
    error_kind: str | None = None
    attempts: int = 0
    recoveries: int = 0


class TextProvider(ABC):
    """
    Abstract base class for generative-text providers.

    Implementations make exactly one network call per generate() and let
    SDK exceptions propagate; classification and retries happen in
    ProviderClient.
    """

    provider: AIProvider
    default_models: tuple[str, ...] = ()

    @abstractmethod
    async def generate(self, prompt: str, model: str) -> str:
        """
        Generate text for a prompt with the given model.

        Args:
            prompt: The full prompt.
            model: Provider model name.

        Returns:
            The response text.
        """
        pass


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the models like to wrap JSON in."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_response(text: str) -> Any:
    """
    Parse a model response as JSON.

    Raises:
        ValueError: If the response is not valid JSON.
    """
    return json.loads(strip_code_fences(text))


def _status_of(exc: BaseException) -> tuple[int | None, str | None]:
    """Extract (numeric status, status string) from an SDK exception."""
    code: int | None = None
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            code = value
            break

    status = getattr(exc, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        code = code if code is not None else status
        status = None
    elif not isinstance(status, str):
        status = None
    return code, status.upper() if status else None


def classify_provider_error(exc: BaseException, model: str | None = None) -> ProviderError:
    """
    Map a raw provider exception to the error taxonomy.

    Structured status information wins: HTTP 429 or RESOURCE_EXHAUSTED is a
    rate limit, HTTP 403 or PERMISSION_DENIED means the model is blocked.
    Message matching is only used when the exception carries no status.

    Args:
        exc: Exception raised by a provider SDK.
        model: Model in use when the error occurred.

    Returns:
        ProviderRateLimitedError, ProviderModelBlockedError or ProviderError.
    """
    if isinstance(exc, ProviderError):
        if exc.model is None:
            exc.model = model
        return exc

    code, status = _status_of(exc)
    message = str(exc) or exc.__class__.__name__
    label = code if code is not None else status

    if code == 429 or status in _RATE_LIMIT_STATUSES:
        return ProviderRateLimitedError(message, status=label, model=model)
    if code == 403 or status in _BLOCKED_STATUSES:
        return ProviderModelBlockedError(message, status=label, model=model)
    if code is not None or status is not None:
        return ProviderError(message, status=label, model=model)

    lowered = message.lower()
    if "429" in lowered or any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return ProviderRateLimitedError(message, model=model)
    if "403" in lowered or any(marker in lowered for marker in _BLOCKED_MARKERS):
        return ProviderModelBlockedError(message, model=model)
    return ProviderError(message, model=model)


def get_api_key(provider: AIProvider | str) -> str | None:
    """Read the API key for a provider from the environment."""
    provider = AIProvider(provider.lower()) if isinstance(provider, str) else provider
    if provider == AIProvider.GEMINI:
        return os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
    if provider == AIProvider.OPENAI:
        return os.environ.get("OPENAI_API_KEY")
    return os.environ.get("ANTHROPIC_API_KEY")


def get_text_provider(provider: AIProvider | str, api_key: str | None = None) -> TextProvider:
    """
    Factory function to get a text provider.

    Args:
        provider: The AI provider to use.
        api_key: API key; read from the environment when omitted.

    Returns:
        A TextProvider instance for the specified provider.

    Raises:
        ValueError: If the provider is not supported or no API key is available.
    """
    if isinstance(provider, str):
        try:
            provider = AIProvider(provider.lower())
        except ValueError:
            raise ValueError(f"Unsupported AI provider: {provider}")

    api_key = api_key or get_api_key(provider)
    if not api_key:
        raise ValueError(f"No API key configured for provider '{provider.value}'")

    if provider == AIProvider.GEMINI:
        from coffee_agent.services.ai.providers.gemini import GeminiProvider

        return GeminiProvider(api_key=api_key)
    elif provider == AIProvider.OPENAI:
        from coffee_agent.services.ai.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key)
    elif provider == AIProvider.ANTHROPIC:
        from coffee_agent.services.ai.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=api_key)
    else:
        raise ValueError(f"Unsupported AI provider: {provider}")
