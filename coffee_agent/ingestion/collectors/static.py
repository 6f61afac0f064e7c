"""
Static Collector
================

Serves listings and product details declared directly in the source's
custom_config. Used for dry runs, fixtures and sources maintained by hand.

Expected custom_config:

    listings:
      - url: https://example.com/products/ethiopia-guji
        price: 7.25
    details:
      https://example.com/products/ethiopia-guji:
        name: Ethiopia Guji
        region: Guji
        description_long: ...
"""

from __future__ import annotations

import logging

from coffee_agent.core.errors import CollectionError
from coffee_agent.core.schema import ScrapedFields
from coffee_agent.ingestion.collectors.base import Listing, SourceCollector

logger = logging.getLogger(__name__)


class StaticCollector(SourceCollector):
    """Collector backed by configuration instead of a live site."""

    COLLECTOR_NAME = "static"
    COLLECTOR_VERSION = "1.0.0"

    async def list_latest(self) -> list[Listing]:
        listings = []
        for entry in self.config.get("listings", []):
            price = entry.get("price")
            listings.append(
                Listing(url=entry["url"], price=float(price) if price is not None else None)
            )
        logger.debug(f"Static source '{self.source.name}' lists {len(listings)} products")
        return listings

    async def fetch_detail(self, url: str, price: float | None) -> ScrapedFields:
        details = self.config.get("details", {})
        if url not in details:
            raise CollectionError(self.source.name, f"no detail configured for {url}")
        data = dict(details[url] or {})
        data["url"] = url
        data.setdefault("cost_lb", price)
        return ScrapedFields(**data)
