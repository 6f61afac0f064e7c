"""
Shopify Collector
=================

Collects from storefronts that expose the standard Shopify JSON endpoints:
`/products.json` for the catalog listing and `/products/<handle>.json`
for a single product. No site-specific markup is parsed.

Supported custom_config keys:
    collection: optional collection handle to restrict the listing
    max_pages: listing pages to walk (default 10)
    page_size: products per page (default 250)
    price_variant_pattern: regex picking the per-pound variant (default "1 ?lb")
"""

from __future__ import annotations

import logging
import re
from typing import Any

from bs4 import BeautifulSoup

from coffee_agent.core.errors import CollectionError
from coffee_agent.core.schema import ScrapedFields
from coffee_agent.ingestion.collectors.base import Listing, SourceCollector

logger = logging.getLogger(__name__)

_BLOCK_TAGS = ["p", "li", "div", "h1", "h2", "h3", "h4", "h5", "h6", "tr"]
_WHITESPACE_RE = re.compile(r"\s+")


def strip_html(markup: str | None) -> str | None:
    """Reduce product body HTML to plain text, keeping paragraph breaks."""
    if not markup:
        return None
    soup = BeautifulSoup(markup, "html.parser")

    # Remove script and style elements
    for element in soup(["script", "style"]):
        element.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.insert_after("\n")

    lines = [_WHITESPACE_RE.sub(" ", line).strip() for line in soup.get_text().splitlines()]
    text = "\n".join(line for line in lines if line)
    return text or None


class ShopifyCollector(SourceCollector):
    """Collector for Shopify storefront JSON endpoints."""

    COLLECTOR_NAME = "shopify"
    COLLECTOR_VERSION = "1.0.0"

    @property
    def base_url(self) -> str:
        if not self.source.base_url:
            raise CollectionError(self.source.name, "base_url is required for shopify sources")
        return self.source.base_url.rstrip("/")

    def _require_fetcher(self):
        if self.fetcher is None:
            raise CollectionError(self.source.name, "no HTTP fetcher configured")
        return self.fetcher

    def product_url(self, handle: str) -> str:
        return f"{self.base_url}/products/{handle}"

    def _pick_price(self, variants: list[dict[str, Any]]) -> float | None:
        if not variants:
            return None
        pattern = re.compile(self.config.get("price_variant_pattern", r"1 ?lb"), re.IGNORECASE)
        chosen = next(
            (v for v in variants if pattern.search(str(v.get("title", "")))),
            variants[0],
        )
        try:
            return float(chosen.get("price"))
        except (TypeError, ValueError):
            return None

    async def list_latest(self) -> list[Listing]:
        fetcher = self._require_fetcher()
        collection = self.config.get("collection")
        prefix = f"{self.base_url}/collections/{collection}" if collection else self.base_url
        max_pages = int(self.config.get("max_pages", 10))
        page_size = int(self.config.get("page_size", 250))

        listings: list[Listing] = []
        for page in range(1, max_pages + 1):
            url = f"{prefix}/products.json?limit={page_size}&page={page}"
            data = await fetcher.fetch_json(url, self.source)
            products = data.get("products", []) if isinstance(data, dict) else []
            if not products:
                break
            for product in products:
                if not product.get("handle"):
                    continue
                if product.get("available") is False:
                    continue
                listings.append(
                    Listing(
                        url=self.product_url(product["handle"]),
                        price=self._pick_price(product.get("variants", [])),
                    )
                )
            if len(products) < page_size:
                break

        logger.info(f"Shopify source '{self.source.name}' lists {len(listings)} products")
        return listings

    async def fetch_detail(self, url: str, price: float | None) -> ScrapedFields:
        fetcher = self._require_fetcher()
        data = await fetcher.fetch_json(f"{url.rstrip('/')}.json", self.source)
        product = data.get("product") if isinstance(data, dict) else None
        if not product:
            raise CollectionError(self.source.name, f"{url}: no product in response")

        if price is None:
            price = self._pick_price(product.get("variants", []))

        return ScrapedFields(
            url=url,
            name=product.get("title"),
            cost_lb=price,
            description_long=strip_html(product.get("body_html")),
        )
