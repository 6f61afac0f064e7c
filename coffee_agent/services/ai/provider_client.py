"""
Resilient wrapper around a generative-text provider.

One ProviderClient serves every enrichment call of a run. It owns the rate
limiter and the model fallback state, retries non-recoverable errors within a
small attempt budget, and always returns a GenerationResult instead of
raising.
"""

import asyncio
import logging
import time
from collections.abc import Sequence

from coffee_agent.core.errors import (
    ProviderExhaustedError,
    ProviderModelBlockedError,
    ProviderRateLimitedError,
)
from coffee_agent.ingestion.registry import EnrichmentConfig
from coffee_agent.services.ai.client import (
    GenerationResult,
    TextProvider,
    classify_provider_error,
    parse_json_response,
)
from coffee_agent.services.ai.fallback import ModelFallbackState
from coffee_agent.services.ai.rate_limiter import Clock, RateLimiter, Sleep

logger = logging.getLogger(__name__)


class ProviderClient:
    """Rate-limited, model-cascading, retrying client for one text provider."""

    def __init__(
        self,
        provider: TextProvider,
        models: Sequence[str] | None = None,
        rate_limiter: RateLimiter | None = None,
        fallback: ModelFallbackState | None = None,
        max_attempts: int = 2,
        retry_delay_seconds: float = 1.0,
        max_recoveries: int = 10,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        models = list(models or provider.default_models)
        self.provider = provider
        self.rate_limiter = rate_limiter or RateLimiter(sleep=sleep)
        self.fallback = fallback or ModelFallbackState(models, sleep=sleep)
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.max_recoveries = max_recoveries
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        provider: TextProvider,
        config: EnrichmentConfig,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> "ProviderClient":
        """Build a client from the enrichment block of the global config."""
        models = config.models or list(provider.default_models)
        return cls(
            provider,
            models=models,
            rate_limiter=RateLimiter(
                max_calls=config.max_calls,
                window_seconds=config.window_seconds,
                min_delay_seconds=config.min_delay_seconds,
                cooldown_seconds=config.rate_limit_cooldown_seconds,
                clock=clock,
                sleep=sleep,
            ),
            fallback=ModelFallbackState(
                models,
                failure_threshold=config.failure_threshold,
                primary_cooldown_seconds=config.primary_cooldown_seconds,
                clock=clock,
                sleep=sleep,
            ),
            max_attempts=config.max_attempts,
            retry_delay_seconds=config.retry_delay_seconds,
            max_recoveries=config.max_recoveries,
            sleep=sleep,
        )

    @property
    def current_model(self) -> str:
        return self.fallback.current_model

    async def generate(self, prompt: str) -> GenerationResult:
        """
        Run one logical generation call.

        Rate-limit and blocked-model errors switch models or wait without
        consuming an attempt; any other error consumes one attempt.

        Returns:
            GenerationResult; check `success` before using `text`.
        """
        attempt = 0
        recoveries = 0

        while True:
            model = self.fallback.current_model
            await self.rate_limiter.acquire()
            try:
                text = await self.provider.generate(prompt, model)
            except Exception as exc:
                error = classify_provider_error(exc, model)
            else:
                self.fallback.record_success()
                return GenerationResult(
                    success=True,
                    text=text,
                    model=model,
                    attempts=attempt + 1,
                    recoveries=recoveries,
                )

            if isinstance(error, (ProviderRateLimitedError, ProviderModelBlockedError)):
                recoveries += 1
                if recoveries > self.max_recoveries:
                    exhausted = ProviderExhaustedError(
                        f"Gave up after {self.max_recoveries} model recoveries: {error}",
                        status=error.status,
                        model=model,
                    )
                    logger.error(str(exhausted))
                    return self._failure(exhausted, attempt, recoveries)
                if isinstance(error, ProviderRateLimitedError):
                    self.rate_limiter.enter_cooldown()
                else:
                    logger.warning(f"Model {model} blocked: {error}")
                await self.fallback.record_blocked()
                continue

            attempt += 1
            logger.warning(f"Provider error on {model} (attempt {attempt}/{self.max_attempts}): {error}")
            if attempt >= self.max_attempts:
                return self._failure(error, attempt, recoveries)
            await self._sleep(self.retry_delay_seconds * attempt)

    async def generate_json(self, prompt: str) -> GenerationResult:
        """Generate and parse a JSON response; invalid JSON is a failed result."""
        result = await self.generate(prompt)
        if not result.success:
            return result
        try:
            parsed = parse_json_response(result.text)
        except ValueError as e:
            logger.warning(f"Invalid JSON from {result.model}: {e}")
            return result.model_copy(
                update={
                    "success": False,
                    "error_message": f"JSON parse error: {e}",
                    "error_kind": "invalid_json",
                }
            )
        return result.model_copy(update={"parsed_json": parsed})

    def _failure(self, error: Exception, attempts: int, recoveries: int) -> GenerationResult:
        model = getattr(error, "model", None) or self.fallback.current_model
        return GenerationResult(
            success=False,
            model=model,
            error_message=str(error),
            error_kind=type(error).__name__,
            attempts=attempts,
            recoveries=recoveries,
        )
