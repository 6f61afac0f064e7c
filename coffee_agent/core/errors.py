"""Exception taxonomy for Coffee Agent."""

from __future__ import annotations


class CoffeeAgentError(Exception):
    pass


class CollectionError(CoffeeAgentError):
    def __init__(self, source_name: str, reason: str):
        super().__init__(f"Collection failed for source '{source_name}': {reason}")
        self.source_name = source_name
        self.reason = reason


class EmptyCollectionError(CollectionError):
    """The collector returned no listings; treated as a broken run, not a sell-out."""

    def __init__(self, source_name: str):
        super().__init__(source_name, "no listings collected")


class ProviderError(CoffeeAgentError):
    """An error reported by a generative-text or embedding provider."""

    def __init__(self, message: str, status: int | str | None = None, model: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.model = model

    def __str__(self) -> str:
        if self.status is not None:
            return f"[{self.status}] {self.message}"
        return self.message


class ProviderRateLimitedError(ProviderError):
    pass


class ProviderModelBlockedError(ProviderError):
    pass


class ProviderExhaustedError(ProviderError):
    pass


class ValidationFailedError(CoffeeAgentError):
    def __init__(self, errors: list[str]):
        super().__init__(f"Validation failed: {'; '.join(errors)}")
        self.errors = errors


class StoreWriteError(CoffeeAgentError):
    def __init__(self, operation: str, reason: str):
        super().__init__(f"Store write failed during {operation}: {reason}")
        self.operation = operation
        self.reason = reason
