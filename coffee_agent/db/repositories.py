"""Repository classes for catalog and chunk database operations."""

import json
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coffee_agent.core.errors import StoreWriteError
from coffee_agent.core.schema import CatalogItem, Chunk, TastingProfile
from coffee_agent.db.models import CoffeeChunkDB, CoffeeDB


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


# Columns copied verbatim between CatalogItem and CoffeeDB
_ITEM_COLUMNS = (
    "name",
    "score_value",
    "cost_lb",
    "arrival_date",
    "region",
    "processing",
    "drying_method",
    "lot_size",
    "bag_size",
    "packaging",
    "cultivar_detail",
    "grade",
    "appearance",
    "roast_recs",
    "type",
    "description_short",
    "description_long",
    "farm_notes",
    "cupping_notes",
    "ai_description",
    "stocked",
    "stocked_date",
    "unstocked_date",
    "last_updated",
)


@contextmanager
def store_write(session: Session, operation: str) -> Iterator[None]:
    """Wrap a write in StoreWriteError, rolling the session back on failure."""
    try:
        yield
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreWriteError(operation, str(e)) from e


def commit(session: Session, operation: str) -> None:
    """Commit the session, raising StoreWriteError on failure."""
    with store_write(session, operation):
        session.commit()


class CatalogRepository:
    """Repository for catalog item operations, keyed by (source, link)."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, coffee_id: int) -> CatalogItem | None:
        """Get a catalog item by ID."""
        db_item = self.session.get(CoffeeDB, coffee_id)
        return self._to_domain(db_item) if db_item else None

    def get_by_link(self, source: str, link: str) -> CatalogItem | None:
        """Get a catalog item by its source-scoped link."""
        db_item = self._get_db(source, link)
        return self._to_domain(db_item) if db_item else None

    def list_stocked_links(self, source: str) -> set[str]:
        """Get the links currently marked stocked for a source."""
        stmt = select(CoffeeDB.link).where(CoffeeDB.source == source, CoffeeDB.stocked.is_(True))
        return set(self.session.execute(stmt).scalars().all())

    def existing_links(self, links: Iterable[str]) -> set[str]:
        """Return which of the given links are already persisted, for any source."""
        links = list(links)
        if not links:
            return set()
        stmt = select(CoffeeDB.link).where(CoffeeDB.link.in_(links))
        return set(self.session.execute(stmt).scalars().all())

    def list_items(
        self,
        source: str | None = None,
        stocked: bool | None = None,
        coffee_id: int | None = None,
        missing_ai_description: bool = False,
        limit: int | None = None,
    ) -> list[CatalogItem]:
        """List catalog items matching the given filters, ordered by ID."""
        stmt = select(CoffeeDB).order_by(CoffeeDB.id)
        if source is not None:
            stmt = stmt.where(CoffeeDB.source == source)
        if stocked is not None:
            stmt = stmt.where(CoffeeDB.stocked.is_(stocked))
        if coffee_id is not None:
            stmt = stmt.where(CoffeeDB.id == coffee_id)
        if missing_ai_description:
            stmt = stmt.where(CoffeeDB.ai_description.is_(None))
        if limit:
            stmt = stmt.limit(limit)
        result = self.session.execute(stmt).scalars().all()
        return [self._to_domain(item) for item in result]

    def mark_unstocked(self, source: str, links: Iterable[str], when: datetime | None = None) -> int:
        """Bulk-mark links of a source as no longer stocked."""
        links = list(links)
        if not links:
            return 0
        when = when or _utc_now()
        stmt = (
            update(CoffeeDB)
            .where(CoffeeDB.source == source, CoffeeDB.link.in_(links))
            .values(stocked=False, unstocked_date=when, last_updated=when)
        )
        with store_write(self.session, "mark_unstocked"):
            result = self.session.execute(stmt)
            self.session.flush()
        return result.rowcount or 0

    def refresh_listing(self, source: str, link: str, price: float | None) -> bool:
        """Mark an existing row stocked and refresh its price. Returns False if no row exists."""
        stmt = (
            update(CoffeeDB)
            .where(CoffeeDB.source == source, CoffeeDB.link == link)
            .values(stocked=True, cost_lb=price)
        )
        with store_write(self.session, "refresh_listing"):
            result = self.session.execute(stmt)
            self.session.flush()
        return bool(result.rowcount)

    def upsert(self, item: CatalogItem) -> CatalogItem:
        """Insert a catalog item, or update the existing row with the same (source, link)."""
        with store_write(self.session, "upsert"):
            db_item = self._get_db(item.source, item.url)
            if db_item is None:
                db_item = CoffeeDB(source=item.source, link=item.url)
                self.session.add(db_item)
            for column in _ITEM_COLUMNS:
                setattr(db_item, column, getattr(item, column))
            db_item.ai_tasting_notes_json = (
                item.ai_tasting_notes.model_dump_json() if item.ai_tasting_notes else None
            )
            self.session.flush()
        return self._to_domain(db_item)

    def update_ai_description(self, coffee_id: int, description: str) -> None:
        """Set the AI description of an item and bump last_updated."""
        stmt = (
            update(CoffeeDB)
            .where(CoffeeDB.id == coffee_id)
            .values(ai_description=description, last_updated=_utc_now())
        )
        with store_write(self.session, "update_ai_description"):
            self.session.execute(stmt)
            self.session.flush()

    def count_by_source(self) -> dict[str, tuple[int, int]]:
        """Return {source: (total items, stocked items)}."""
        stmt = select(
            CoffeeDB.source,
            func.count(CoffeeDB.id),
            func.sum(case((CoffeeDB.stocked.is_(True), 1), else_=0)),
        ).group_by(CoffeeDB.source)
        return {
            source: (total, int(stocked or 0))
            for source, total, stocked in self.session.execute(stmt).all()
        }

    def _get_db(self, source: str, link: str) -> CoffeeDB | None:
        stmt = select(CoffeeDB).where(CoffeeDB.source == source, CoffeeDB.link == link)
        return self.session.execute(stmt).scalar_one_or_none()

    def _to_domain(self, db_item: CoffeeDB) -> CatalogItem:
        """Convert database model to domain model."""
        data = {column: getattr(db_item, column) for column in _ITEM_COLUMNS}
        if db_item.ai_tasting_notes_json:
            data["ai_tasting_notes"] = TastingProfile.model_validate_json(db_item.ai_tasting_notes_json)
        return CatalogItem(id=db_item.id, source=db_item.source, url=db_item.link, **data)


class ChunkRepository:
    """Repository for retrieval chunk operations."""

    def __init__(self, session: Session):
        self.session = session

    def has_chunks(self, coffee_id: int) -> bool:
        """Check whether any chunk exists for an item."""
        stmt = select(CoffeeChunkDB.id).where(CoffeeChunkDB.coffee_id == coffee_id).limit(1)
        return self.session.execute(stmt).first() is not None

    def list_for_coffee(self, coffee_id: int) -> list[Chunk]:
        """Get all chunks of an item."""
        stmt = (
            select(CoffeeChunkDB)
            .where(CoffeeChunkDB.coffee_id == coffee_id)
            .order_by(CoffeeChunkDB.id)
        )
        return [self._to_domain(c) for c in self.session.execute(stmt).scalars().all()]

    def insert_many(self, chunks: Iterable[Chunk]) -> int:
        """Insert chunks; returns the number inserted."""
        count = 0
        with store_write(self.session, "insert_chunks"):
            for chunk in chunks:
                self.session.add(
                    CoffeeChunkDB(
                        id=chunk.id,
                        coffee_id=chunk.coffee_id,
                        chunk_type=chunk.chunk_type.value,
                        content=chunk.content,
                        metadata_json=json.dumps(chunk.metadata, default=str),
                        embedding_json=json.dumps(chunk.embedding or []),
                    )
                )
                count += 1
            self.session.flush()
        return count

    def delete_for_coffee(self, coffee_id: int) -> int:
        """Delete all chunks of an item; returns the number removed."""
        stmt = delete(CoffeeChunkDB).where(CoffeeChunkDB.coffee_id == coffee_id)
        with store_write(self.session, "delete_chunks"):
            result = self.session.execute(stmt)
            self.session.flush()
        return result.rowcount or 0

    def delete_for_unstocked(self) -> tuple[int, int]:
        """
        Delete every chunk whose parent item is no longer stocked.

        Returns:
            (number of items cleaned, number of chunks removed)
        """
        unstocked_ids = select(CoffeeDB.id).where(CoffeeDB.stocked.is_(False))
        count_stmt = select(
            func.count(func.distinct(CoffeeChunkDB.coffee_id)), func.count(CoffeeChunkDB.id)
        ).where(CoffeeChunkDB.coffee_id.in_(unstocked_ids))
        coffees, chunks = self.session.execute(count_stmt).one()
        if not chunks:
            return 0, 0

        stmt = (
            delete(CoffeeChunkDB)
            .where(CoffeeChunkDB.coffee_id.in_(unstocked_ids))
            .execution_options(synchronize_session=False)
        )
        with store_write(self.session, "delete_unstocked_chunks"):
            self.session.execute(stmt)
            self.session.flush()
        return coffees, chunks

    def coffee_ids_with_chunks(self) -> set[int]:
        """Return the IDs of all items that have at least one chunk."""
        stmt = select(CoffeeChunkDB.coffee_id).distinct()
        return set(self.session.execute(stmt).scalars().all())

    def count_embedded_by_source(self) -> dict[str, int]:
        """Return {source: number of items with at least one chunk}."""
        stmt = (
            select(CoffeeDB.source, func.count(func.distinct(CoffeeChunkDB.coffee_id)))
            .join(CoffeeDB, CoffeeDB.id == CoffeeChunkDB.coffee_id)
            .group_by(CoffeeDB.source)
        )
        return {source: count for source, count in self.session.execute(stmt).all()}

    def count(self) -> int:
        """Get total count of chunks."""
        stmt = select(func.count()).select_from(CoffeeChunkDB)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: CoffeeChunkDB) -> Chunk:
        """Convert database model to domain model."""
        return Chunk(
            id=db_item.id,
            coffee_id=db_item.coffee_id,
            chunk_type=db_item.chunk_type,
            content=db_item.content,
            metadata=json.loads(db_item.metadata_json or "{}"),
            embedding=json.loads(db_item.embedding_json or "[]"),
        )
