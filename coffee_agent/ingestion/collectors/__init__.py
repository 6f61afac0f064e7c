"""
Collector Registry Module
=========================

Central registry for source collectors.
Provides factory functions for creating collectors by name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from coffee_agent.ingestion.collectors.base import Listing, SourceCollector
from coffee_agent.ingestion.collectors.shopify import ShopifyCollector
from coffee_agent.ingestion.collectors.static import StaticCollector

if TYPE_CHECKING:
    from coffee_agent.ingestion.fetcher import Fetcher
    from coffee_agent.ingestion.registry import SourceConfig


# Registry mapping collector names to their classes
COLLECTOR_REGISTRY: dict[str, type[SourceCollector]] = {
    "static": StaticCollector,
    "shopify": ShopifyCollector,
}


def get_collector(source: SourceConfig, fetcher: Fetcher | None = None) -> SourceCollector | None:
    """
    Get a collector instance for a source.

    Args:
        source: Source configuration; its `collector` field selects the class
        fetcher: HTTP fetcher passed to network collectors

    Returns:
        Collector instance, or None if the type is not registered
    """
    collector_class = COLLECTOR_REGISTRY.get(source.collector)
    if collector_class is None:
        return None
    return collector_class(source, fetcher)


def register_collector(name: str, collector_class: type[SourceCollector]) -> None:
    """
    Register a new collector type.

    Args:
        name: Name to register the collector under
        collector_class: Collector class (must inherit from SourceCollector)
    """
    if not issubclass(collector_class, SourceCollector):
        raise TypeError(f"{collector_class} must inherit from SourceCollector")
    COLLECTOR_REGISTRY[name] = collector_class


def list_collectors() -> list[str]:
    """List all registered collector names."""
    return list(COLLECTOR_REGISTRY.keys())


__all__ = [
    "COLLECTOR_REGISTRY",
    "get_collector",
    "register_collector",
    "list_collectors",
    "Listing",
    "SourceCollector",
    "ShopifyCollector",
    "StaticCollector",
]
