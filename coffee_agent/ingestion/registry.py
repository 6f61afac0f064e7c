"""
Source Registry Module
======================

Manages source and pipeline configuration loaded from YAML files. Sources
define which retailers are collected, with which collector, and which
product URLs are excluded from the catalog.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Product patterns that never belong in a green coffee catalog
DEFAULT_DENYLIST = [
    r"roasted",
    r"subscription",
    r"rstd-subs-",
    r"-set-",
    r"-set\.html",
    r"-blend",
    r"-sampler",
    r"steves-favorites",
    r"bag-ends",
    r"fruit-basket-combo-pack",
]


@dataclass
class RateLimitConfig:
    """HTTP rate limiting configuration for a source."""

    requests_per_second: float = 1.0
    burst_limit: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RateLimitConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            requests_per_second=float(data.get("requests_per_second", 1.0)),
            burst_limit=int(data.get("burst_limit", 5)),
        )


@dataclass
class EnrichmentConfig:
    """Generative-text provider settings: model cascade, rate budget, retries."""

    provider: str = "gemini"
    models: list[str] = field(
        default_factory=lambda: ["gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash"]
    )
    max_calls: int = 10
    window_seconds: float = 60.0
    min_delay_seconds: float = 6.0
    rate_limit_cooldown_seconds: float = 60.0
    failure_threshold: int = 2
    primary_cooldown_seconds: float = 600.0
    max_attempts: int = 2
    retry_delay_seconds: float = 1.0
    max_recoveries: int = 10
    summary_min_words: int = 20
    summary_max_words: int = 100

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EnrichmentConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        defaults = cls()
        return cls(
            provider=str(data.get("provider", defaults.provider)),
            models=list(data.get("models", defaults.models)),
            max_calls=int(data.get("max_calls", defaults.max_calls)),
            window_seconds=float(data.get("window_seconds", defaults.window_seconds)),
            min_delay_seconds=float(data.get("min_delay_seconds", defaults.min_delay_seconds)),
            rate_limit_cooldown_seconds=float(
                data.get("rate_limit_cooldown_seconds", defaults.rate_limit_cooldown_seconds)
            ),
            failure_threshold=int(data.get("failure_threshold", defaults.failure_threshold)),
            primary_cooldown_seconds=float(
                data.get("primary_cooldown_seconds", defaults.primary_cooldown_seconds)
            ),
            max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
            retry_delay_seconds=float(data.get("retry_delay_seconds", defaults.retry_delay_seconds)),
            max_recoveries=int(data.get("max_recoveries", defaults.max_recoveries)),
            summary_min_words=int(data.get("summary_min_words", defaults.summary_min_words)),
            summary_max_words=int(data.get("summary_max_words", defaults.summary_max_words)),
        )


@dataclass
class EmbeddingConfig:
    """Embedding provider settings."""

    provider: str = "openai"
    model: str = "text-embedding-3-small"
    delay_seconds: float = 0.5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EmbeddingConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            provider=str(data.get("provider", "openai")),
            model=str(data.get("model", "text-embedding-3-small")),
            delay_seconds=float(data.get("delay_seconds", 0.5)),
        )


@dataclass
class SourceConfig:
    """Configuration for a single retail source."""

    name: str
    collector: str
    enabled: bool = True
    description: str = ""
    base_url: str = ""
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    allowlist: list[str] = field(default_factory=list)
    denylist: list[str] = field(default_factory=lambda: list(DEFAULT_DENYLIST))
    custom_config: dict[str, Any] = field(default_factory=dict)

    # Compiled regex patterns (populated lazily)
    _allowlist_patterns: list[re.Pattern[str]] | None = field(
        default=None, repr=False, compare=False
    )
    _denylist_patterns: list[re.Pattern[str]] | None = field(
        default=None, repr=False, compare=False
    )

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        default_rate_limit: RateLimitConfig | None = None,
        default_denylist: list[str] | None = None,
    ) -> SourceConfig:
        """Create from dictionary."""
        rate_limit_data = data.get("rate_limit")
        if rate_limit_data:
            rate_limit = RateLimitConfig.from_dict(rate_limit_data)
        elif default_rate_limit:
            rate_limit = default_rate_limit
        else:
            rate_limit = RateLimitConfig()

        denylist = data.get("denylist")
        if denylist is None:
            denylist = list(default_denylist if default_denylist is not None else DEFAULT_DENYLIST)

        return cls(
            name=data["name"],
            collector=data["collector"],
            enabled=data.get("enabled", True),
            description=data.get("description", ""),
            base_url=data.get("base_url", ""),
            rate_limit=rate_limit,
            allowlist=data.get("allowlist", []),
            denylist=denylist,
            custom_config=data.get("custom_config", {}),
        )

    def _compile_patterns(self) -> None:
        """Compile regex patterns for URL filtering."""
        if self._allowlist_patterns is None:
            self._allowlist_patterns = [re.compile(p) for p in self.allowlist]
        if self._denylist_patterns is None:
            self._denylist_patterns = [re.compile(p) for p in self.denylist]

    def is_url_allowed(self, url: str) -> bool:
        """
        Check if a product URL belongs in the catalog for this source.

        Patterns match anywhere in the URL.

        Rules:
        1. If URL matches any denylist pattern, it's excluded
        2. If allowlist is empty, URL is allowed
        3. If allowlist is not empty, URL must match at least one pattern
        """
        self._compile_patterns()

        for pattern in self._denylist_patterns or []:
            if pattern.search(url):
                return False

        if not self._allowlist_patterns:
            return True

        return any(pattern.search(url) for pattern in self._allowlist_patterns)


@dataclass
class GlobalConfig:
    """Global configuration settings."""

    default_rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    default_denylist: list[str] = field(default_factory=lambda: list(DEFAULT_DENYLIST))
    user_agent: str = "CoffeeAgent/0.1"
    request_timeout: int = 30
    max_retries: int = 3
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            default_rate_limit=RateLimitConfig.from_dict(data.get("default_rate_limit")),
            default_denylist=list(data.get("default_denylist", DEFAULT_DENYLIST)),
            user_agent=data.get("user_agent", "CoffeeAgent/0.1"),
            request_timeout=int(data.get("request_timeout", 30)),
            max_retries=int(data.get("max_retries", 3)),
            enrichment=EnrichmentConfig.from_dict(data.get("enrichment")),
            embedding=EmbeddingConfig.from_dict(data.get("embedding")),
        )


class SourceRegistry:
    """
    Registry for managing source configurations.

    Loads source definitions from a YAML file and provides methods
    to query them.
    """

    def __init__(self) -> None:
        self._sources: dict[str, SourceConfig] = {}
        self._global_config: GlobalConfig = GlobalConfig()
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def config_path(self) -> Path | None:
        """Path of the loaded configuration file, if any."""
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the sources.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))

        self._sources.clear()
        for source_data in data.get("sources", []):
            self.add_source(
                SourceConfig.from_dict(
                    source_data,
                    self._global_config.default_rate_limit,
                    self._global_config.default_denylist,
                )
            )

    def add_source(self, source: SourceConfig) -> None:
        """Register a source configuration, replacing one with the same name."""
        self._sources[source.name] = source

    def get_source(self, name: str) -> SourceConfig | None:
        """
        Get a source configuration by name.

        Args:
            name: Source name

        Returns:
            SourceConfig if found, None otherwise
        """
        return self._sources.get(name)

    def list_sources(self) -> list[SourceConfig]:
        """Get all registered sources."""
        return list(self._sources.values())

    def list_enabled_sources(self) -> list[SourceConfig]:
        """Get all enabled sources."""
        return [s for s in self._sources.values() if s.enabled]


# Global registry instance
_default_registry: SourceRegistry | None = None


def get_default_registry() -> SourceRegistry:
    """
    Get the default source registry instance.

    Loads configuration from the path specified in SOURCES_CONFIG_PATH
    environment variable, or falls back to config/sources.yaml.

    Returns:
        The global SourceRegistry instance
    """
    global _default_registry

    if _default_registry is None:
        _default_registry = SourceRegistry()

        config_path = os.environ.get("SOURCES_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            # Default to config/sources.yaml relative to project root
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "sources.yaml"

        if path.exists():
            _default_registry.load_config(path)

    return _default_registry


def reset_default_registry() -> None:
    """Reset the default registry (useful for testing)."""
    global _default_registry
    _default_registry = None
