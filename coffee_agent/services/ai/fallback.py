"""
Model fallback state machine.

Tracks one current model in an ordered candidate list (primary first). A
model that keeps failing with blocked or rate-limit errors is swapped for the
next candidate under the failure threshold. The primary is only reconsidered
once its cooldown has elapsed since its last failure. When no candidate
qualifies, the caller waits out the primary's cooldown and the state resets.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from coffee_agent.services.ai.rate_limiter import Clock, Sleep

logger = logging.getLogger(__name__)


@dataclass
class ModelState:
    """Failure bookkeeping for one candidate model."""

    name: str
    failure_count: int = 0
    last_failure_time: float | None = None


class ModelFallbackState:
    """Current-model selection owned by a single ProviderClient."""

    def __init__(
        self,
        models: Sequence[str],
        failure_threshold: int = 2,
        primary_cooldown_seconds: float = 600.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not models:
            raise ValueError("At least one model is required")
        self.models = [ModelState(name) for name in models]
        self.failure_threshold = failure_threshold
        self.primary_cooldown_seconds = primary_cooldown_seconds
        self.current_index = 0
        self._clock = clock
        self._sleep = sleep

    @property
    def current(self) -> ModelState:
        return self.models[self.current_index]

    @property
    def current_model(self) -> str:
        return self.current.name

    @property
    def primary(self) -> ModelState:
        return self.models[0]

    def record_success(self) -> None:
        self.current.failure_count = 0

    def _primary_cooling_down(self, now: float) -> bool:
        last = self.primary.last_failure_time
        return last is not None and now - last < self.primary_cooldown_seconds

    def _qualifies(self, index: int, now: float) -> bool:
        state = self.models[index]
        if index == 0:
            if self._primary_cooling_down(now):
                return False
            if state.last_failure_time is not None:
                state.failure_count = 0
            return True
        return state.failure_count < self.failure_threshold

    def _next_candidate(self, now: float) -> int | None:
        count = len(self.models)
        for step in range(1, count + 1):
            index = (self.current_index + step) % count
            if self._qualifies(index, now):
                return index
        return None

    async def record_blocked(self) -> None:
        """
        Record a blocked or rate-limited failure on the current model.

        Switches models once the current model reaches the failure threshold.
        Waits for the primary's cooldown when no candidate qualifies.
        """
        now = self._clock()
        state = self.current
        state.failure_count += 1
        state.last_failure_time = now
        logger.warning(f"Model {state.name} failure {state.failure_count}/{self.failure_threshold}")

        if state.failure_count < self.failure_threshold:
            return

        index = self._next_candidate(now)
        if index is not None:
            if index != self.current_index:
                logger.warning(f"Switching model {state.name} -> {self.models[index].name}")
            self.current_index = index
            return

        last = self.primary.last_failure_time
        if last is None:
            last = now
        wait = max(0.0, last + self.primary_cooldown_seconds - now)
        logger.warning(f"All models blocked, waiting {wait:.0f}s for {self.primary.name} cooldown")
        if wait > 0:
            await self._sleep(wait)
        self.reset()

    def reset(self) -> None:
        """Return to the primary model with clean failure counts."""
        for state in self.models:
            state.failure_count = 0
        self.current_index = 0
        logger.info(f"Model fallback reset to {self.primary.name}")
