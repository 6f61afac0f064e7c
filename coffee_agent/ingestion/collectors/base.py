"""
Collector Base Module
=====================

Defines the abstract interface every retail source implements. A
collector does two things:
1. Lists the products currently offered, as (url, price) pairs
2. Fetches the detail fields for one product
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from coffee_agent.core.schema import ScrapedFields

if TYPE_CHECKING:
    from coffee_agent.ingestion.fetcher import Fetcher
    from coffee_agent.ingestion.registry import SourceConfig


@dataclass(frozen=True)
class Listing:
    """A product currently offered by a source."""

    url: str
    price: float | None = None


class SourceCollector(ABC):
    """
    Abstract base class for per-retailer collectors.

    Both operations may be slow and may fail; they raise CollectionError
    on failure and never retry on behalf of the pipeline.
    """

    # Collector identification (override in subclasses)
    COLLECTOR_NAME: str = "base"
    COLLECTOR_VERSION: str = "1.0.0"

    def __init__(self, source: SourceConfig, fetcher: Fetcher | None = None) -> None:
        """
        Initialize the collector.

        Args:
            source: Source configuration from sources.yaml
            fetcher: HTTP fetcher, required by collectors that go to the network
        """
        self.source = source
        self.fetcher = fetcher

    @property
    def config(self) -> dict[str, Any]:
        return self.source.custom_config

    @abstractmethod
    async def list_latest(self) -> list[Listing]:
        """
        List the products currently offered by the source.

        Returns:
            Listings in source order; may contain duplicates or excluded URLs,
            which the reconciler filters out
        """

    @abstractmethod
    async def fetch_detail(self, url: str, price: float | None) -> ScrapedFields:
        """
        Fetch the detail fields of one product.

        Args:
            url: Product URL from list_latest
            price: Listed price, used as the price per pound

        Returns:
            The scraped fields

        Raises:
            CollectionError: If the product cannot be fetched or parsed
        """
