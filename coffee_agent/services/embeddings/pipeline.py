"""
Embedding pipeline: chunk stocked catalog items, embed each chunk and store it.

Embedding calls are serialized with a fixed delay between them. A chunk whose
embedding call fails is dropped without blocking its siblings. Items that
already have chunks are skipped unless regeneration is forced.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from coffee_agent.core.errors import StoreWriteError
from coffee_agent.core.schema import CatalogItem, Chunk
from coffee_agent.db.repositories import CatalogRepository, ChunkRepository, commit
from coffee_agent.services.ai.rate_limiter import Sleep
from coffee_agent.services.embeddings.chunker import build_chunks
from coffee_agent.services.embeddings.providers import EmbeddingProvider

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingResult:
    """Outcome of embedding one item."""

    coffee_id: int
    skipped: bool = False
    chunks_created: int = 0
    chunks_failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def embedded(self) -> bool:
        return self.chunks_created > 0


@dataclass
class BulkEmbeddingResult:
    """Counters for a bulk embedding run."""

    processed: int = 0
    embedded: int = 0
    skipped: int = 0
    failed: int = 0
    chunks_created: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class CleanupResult:
    """Chunks removed for items that are no longer stocked."""

    coffees: int = 0
    chunks: int = 0


@dataclass
class EmbeddingStatus:
    """Coverage of the chunk store."""

    total_items: int = 0
    stocked_items: int = 0
    embedded_items: int = 0
    total_chunks: int = 0
    by_source: dict[str, dict[str, int]] = field(default_factory=dict)

    @property
    def coverage(self) -> float:
        if not self.stocked_items:
            return 0.0
        return round(100.0 * self.embedded_items / self.stocked_items, 1)


class EmbeddingPipeline:
    """Builds, embeds and stores retrieval chunks for catalog items."""

    def __init__(
        self,
        session: Session,
        provider: EmbeddingProvider,
        delay_seconds: float = 0.5,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.session = session
        self.provider = provider
        self.delay_seconds = delay_seconds
        self.catalog = CatalogRepository(session)
        self.chunks = ChunkRepository(session)
        self._sleep = sleep

    async def embed_chunks(self, chunks: list[Chunk]) -> tuple[list[Chunk], list[str]]:
        """
        Embed chunks one at a time.

        Returns:
            (chunks that received an embedding, error messages for dropped chunks)
        """
        embedded: list[Chunk] = []
        errors: list[str] = []
        for index, chunk in enumerate(chunks):
            try:
                vector = await self.provider.embed(chunk.content)
            except Exception as e:
                logger.error(f"Failed to generate embedding for chunk {chunk.id}: {e}")
                errors.append(f"{chunk.id}: {e}")
            else:
                embedded.append(chunk.model_copy(update={"embedding": vector}))

            if index < len(chunks) - 1:
                await self._sleep(self.delay_seconds)
        return embedded, errors

    async def process_item(self, item: CatalogItem, force: bool = False) -> EmbeddingResult:
        """
        Generate chunks for one stocked item.

        Args:
            item: Persisted catalog item.
            force: Delete and regenerate existing chunks.

        Raises:
            StoreWriteError: If deleting or inserting chunks fails.
        """
        result = EmbeddingResult(coffee_id=item.id)
        if not item.stocked:
            result.skipped = True
            return result

        if self.chunks.has_chunks(item.id):
            if not force:
                logger.debug(f"Chunks already exist for {item.display_name}, skipping")
                result.skipped = True
                return result
            removed = self.chunks.delete_for_coffee(item.id)
            commit(self.session, "delete_chunks")
            logger.info(f"Removed {removed} existing chunks for {item.display_name}")

        chunks = build_chunks(item)
        if not chunks:
            logger.info(f"No chunk content for {item.display_name}")
            result.skipped = True
            return result

        embedded, errors = await self.embed_chunks(chunks)
        result.chunks_failed = len(errors)
        result.errors.extend(errors)
        if embedded:
            result.chunks_created = self.chunks.insert_many(embedded)
            commit(self.session, "insert_chunks")
        logger.info(
            f"Embedded {result.chunks_created}/{len(chunks)} chunks for {item.display_name}"
        )
        return result

    async def process_bulk(
        self,
        source: str | None = None,
        force: bool = False,
        limit: int | None = None,
        coffee_id: int | None = None,
    ) -> BulkEmbeddingResult:
        """
        Generate chunks for every matching stocked item.

        Per-item store failures are recorded and the run continues.
        """
        bulk = BulkEmbeddingResult()
        items = self.catalog.list_items(source=source, stocked=True, coffee_id=coffee_id, limit=limit)
        logger.info(f"Processing embeddings for {len(items)} items")

        for item in items:
            bulk.processed += 1
            try:
                result = await self.process_item(item, force=force)
            except StoreWriteError as e:
                logger.error(f"Failed to store chunks for {item.display_name}: {e}")
                bulk.failed += 1
                bulk.errors.append(f"{item.display_name}: {e}")
                continue

            bulk.chunks_created += result.chunks_created
            bulk.errors.extend(f"{item.display_name}: {error}" for error in result.errors)
            if result.skipped:
                bulk.skipped += 1
            elif result.embedded:
                bulk.embedded += 1
            else:
                bulk.failed += 1
        return bulk

    def cleanup_unstocked(self) -> CleanupResult:
        """Remove every chunk whose item is no longer stocked."""
        coffees, chunks = self.chunks.delete_for_unstocked()
        if chunks:
            commit(self.session, "cleanup_unstocked")
            logger.info(f"Removed {chunks} chunks for {coffees} unstocked items")
        return CleanupResult(coffees=coffees, chunks=chunks)

    def status(self) -> EmbeddingStatus:
        """Summarize chunk coverage overall and per source."""
        return embedding_status(self.session)


def embedding_status(session: Session) -> EmbeddingStatus:
    """Summarize chunk coverage overall and per source."""
    counts = CatalogRepository(session).count_by_source()
    chunks = ChunkRepository(session)
    embedded = chunks.count_embedded_by_source()
    status = EmbeddingStatus(total_chunks=chunks.count())
    for source, (total, stocked) in sorted(counts.items()):
        status.total_items += total
        status.stocked_items += stocked
        status.embedded_items += embedded.get(source, 0)
        status.by_source[source] = {
            "total": total,
            "stocked": stocked,
            "embedded": embedded.get(source, 0),
        }
    return status
