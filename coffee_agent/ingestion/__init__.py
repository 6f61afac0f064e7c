"""Source configuration, HTTP collection and catalog reconciliation."""

from coffee_agent.ingestion.collectors import (
    Listing,
    SourceCollector,
    get_collector,
    list_collectors,
    register_collector,
)
from coffee_agent.ingestion.registry import (
    GlobalConfig,
    SourceConfig,
    SourceRegistry,
    get_default_registry,
    reset_default_registry,
)

__all__ = [
    "GlobalConfig",
    "Listing",
    "SourceCollector",
    "SourceConfig",
    "SourceRegistry",
    "get_collector",
    "get_default_registry",
    "list_collectors",
    "register_collector",
    "reset_default_registry",
]
