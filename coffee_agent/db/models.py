"""SQLAlchemy ORM models for the coffee catalog.

Two tables:
- coffee_catalog: one row per (source, link), never deleted on unstock
- coffee_chunks: retrieval chunks with their embeddings, owned by a catalog row
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CoffeeDB(Base):
    """
    Database model for catalog items.

    Identity is the source-scoped product link. Provenance and free-text
    columns are nullable; the tasting profile is stored as JSON.
    """

    __tablename__ = "coffee_catalog"
    __table_args__ = (UniqueConstraint("source", "link", name="uq_coffee_source_link"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    link: Mapped[str] = mapped_column(String(1000), nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    score_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    cost_lb: Mapped[float | None] = mapped_column(Float, nullable=True)
    arrival_date: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Provenance
    region: Mapped[str | None] = mapped_column(String(255), nullable=True)
    processing: Mapped[str | None] = mapped_column(String(255), nullable=True)
    drying_method: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lot_size: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bag_size: Mapped[str | None] = mapped_column(String(255), nullable=True)
    packaging: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cultivar_detail: Mapped[str | None] = mapped_column(String(255), nullable=True)
    grade: Mapped[str | None] = mapped_column(String(255), nullable=True)
    appearance: Mapped[str | None] = mapped_column(String(255), nullable=True)
    roast_recs: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Free text
    description_short: Mapped[str | None] = mapped_column(Text, nullable=True)
    description_long: Mapped[str | None] = mapped_column(Text, nullable=True)
    farm_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cupping_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # AI-derived
    ai_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    ai_tasting_notes_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Stock tracking
    stocked: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    stocked_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    unstocked_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    chunks: Mapped[list["CoffeeChunkDB"]] = relationship(
        "CoffeeChunkDB", back_populates="coffee", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<CoffeeDB(id={self.id}, source='{self.source}', name='{self.name}')>"


class CoffeeChunkDB(Base):
    """
    Database model for retrieval chunks.

    The id is "<coffee id>_<chunk type>"; metadata and embedding are JSON.
    """

    __tablename__ = "coffee_chunks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    coffee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("coffee_catalog.id"), nullable=False, index=True
    )
    chunk_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[str] = mapped_column(Text, default="{}")
    embedding_json: Mapped[str] = mapped_column(Text, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)

    coffee: Mapped["CoffeeDB"] = relationship("CoffeeDB", back_populates="chunks")

    def __repr__(self) -> str:
        return f"<CoffeeChunkDB(id={self.id}, type='{self.chunk_type}')>"
