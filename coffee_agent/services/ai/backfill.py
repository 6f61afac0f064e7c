"""Backfill of missing AI descriptions for stocked catalog items."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from coffee_agent.core.errors import StoreWriteError
from coffee_agent.db.repositories import CatalogRepository, commit
from coffee_agent.services.ai.enrichment import FieldEnricher, count_words

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    """Counters for one backfill run."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    model: str | None = None
    errors: list[str] = field(default_factory=list)


class DescriptionBackfill:
    """Generates ai_description for stocked items that have none."""

    def __init__(self, session: Session, enricher: FieldEnricher) -> None:
        self.session = session
        self.repo = CatalogRepository(session)
        self.enricher = enricher

    async def run(self, source: str | None = None, limit: int | None = None) -> BackfillResult:
        """
        Backfill descriptions, one item at a time.

        Args:
            source: Restrict to one source.
            limit: Maximum number of items to process.

        Returns:
            BackfillResult with per-run counters.
        """
        result = BackfillResult()
        items = self.repo.list_items(
            source=source, stocked=True, missing_ai_description=True, limit=limit
        )
        logger.info(f"Found {len(items)} items needing AI descriptions")

        for item in items:
            result.processed += 1
            label = f"{item.display_name} ({item.source})"
            if not item.has_free_text():
                logger.info(f"Skipping {label}: no description text")
                result.skipped += 1
                continue

            description, error = await self.enricher.generate_summary(item)
            result.model = self.enricher.client.current_model
            if description is None and error is None:
                logger.info(f"Skipping {label}: no description text")
                result.skipped += 1
                continue
            if description is None:
                logger.warning(f"Failed to generate description for {label}: {error}")
                result.failed += 1
                result.errors.append(f"{label}: {error}")
                continue

            try:
                self.repo.update_ai_description(item.id, description)
                commit(self.session, "update_ai_description")
            except StoreWriteError as e:
                logger.error(f"Failed to save description for {label}: {e}")
                result.failed += 1
                result.errors.append(f"{label}: {e}")
                continue

            logger.info(f"Generated {count_words(description)} word description for {label}")
            result.succeeded += 1

        return result
