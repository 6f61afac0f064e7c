"""
Catalog Reconciliation Module
=============================

Diffs a freshly collected listing set against the persisted catalog for one
source: items no longer listed are marked unstocked, listed items get their
price refreshed, and URLs never seen before (for any source) are returned as
new work for detail fetch and enrichment.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from coffee_agent.core.errors import EmptyCollectionError
from coffee_agent.core.schema import CatalogItem, ScrapedFields, TastingProfile
from coffee_agent.db.repositories import CatalogRepository, commit
from coffee_agent.ingestion.collectors.base import Listing

if TYPE_CHECKING:
    from coffee_agent.ingestion.registry import SourceConfig

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class ReconciliationResult:
    """Outcome of reconciling one source's listings."""

    source: str
    listings: list[Listing] = field(default_factory=list)
    excluded: int = 0
    unstocked: list[str] = field(default_factory=list)
    refreshed: int = 0
    new_listings: list[Listing] = field(default_factory=list)


def filter_listings(source: SourceConfig, listings: Iterable[Listing]) -> tuple[list[Listing], int]:
    """
    Drop duplicate and excluded URLs, keeping the first occurrence of each URL.

    Returns:
        (kept listings in source order, number of excluded listings)
    """
    kept: list[Listing] = []
    seen: set[str] = set()
    excluded = 0
    for listing in listings:
        if listing.url in seen:
            continue
        seen.add(listing.url)
        if not source.is_url_allowed(listing.url):
            excluded += 1
            continue
        kept.append(listing)
    return kept, excluded


class ReconciliationEngine:
    """Applies stock transitions for a source and identifies new URLs."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = _utc_now) -> None:
        self.session = session
        self.repo = CatalogRepository(session)
        self._clock = clock

    def reconcile(self, source: SourceConfig, listings: Iterable[Listing]) -> ReconciliationResult:
        """
        Reconcile collected listings against persisted stocked state.

        Args:
            source: Source configuration (name and exclusion patterns)
            listings: Freshly collected (url, price) pairs

        Returns:
            ReconciliationResult with the unstocked URLs and the new listings

        Raises:
            EmptyCollectionError: If no usable listing was collected; nothing
                is written in that case
            StoreWriteError: If a reconciliation write fails
        """
        kept, excluded = filter_listings(source, listings)
        if not kept:
            logger.error(f"No listings collected for '{source.name}', leaving stock flags untouched")
            raise EmptyCollectionError(source.name)

        result = ReconciliationResult(source=source.name, listings=kept, excluded=excluded)
        now = self._clock()
        listed_urls = {listing.url for listing in kept}

        previously_stocked = self.repo.list_stocked_links(source.name)
        result.unstocked = sorted(previously_stocked - listed_urls)
        if result.unstocked:
            self.repo.mark_unstocked(source.name, result.unstocked, now)
            logger.info(f"[{source.name}] Marked {len(result.unstocked)} products unstocked")

        for listing in kept:
            if self.repo.refresh_listing(source.name, listing.url, listing.price):
                result.refreshed += 1

        known = self.repo.existing_links(listed_urls)
        result.new_listings = [listing for listing in kept if listing.url not in known]

        commit(self.session, "reconcile")
        logger.info(
            f"[{source.name}] {len(kept)} listed, {result.refreshed} refreshed, "
            f"{len(result.new_listings)} new, {excluded} excluded"
        )
        return result

    def insert_new(
        self,
        source_name: str,
        scraped: ScrapedFields,
        ai_description: str | None = None,
        ai_tasting_notes: TastingProfile | None = None,
    ) -> CatalogItem:
        """
        Persist a newly discovered product as stocked.

        Raises:
            StoreWriteError: If the insert fails
        """
        now = self._clock()
        item = CatalogItem.from_scraped(
            scraped,
            source_name,
            ai_description=ai_description,
            ai_tasting_notes=ai_tasting_notes,
            stocked=True,
            stocked_date=now,
            unstocked_date=None,
            last_updated=now,
        )
        saved = self.repo.upsert(item)
        commit(self.session, "insert_new")
        return saved
