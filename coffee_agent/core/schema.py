"""Canonical Pydantic v2 models for the coffee catalog."""

import re
from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, Field, StrictInt, field_validator

from coffee_agent.core.enums import ChunkType, TastingAttributeName


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


# 1-3 lowercase words joined by spaces or hyphens
TAG_PATTERN = re.compile(r"^[a-z][a-z\s-]*[a-z]$|^[a-z]$")
HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-f]{6}$", re.IGNORECASE)
MAX_TAG_WORDS = 3


class TastingAttribute(BaseModel):
    """One rated attribute of a tasting profile."""

    score: Annotated[StrictInt, Field(ge=1, le=5)]
    tag: str
    color: str

    @field_validator("tag")
    @classmethod
    def _check_tag(cls, value: str) -> str:
        if not TAG_PATTERN.fullmatch(value):
            raise ValueError("Tag must be 1-3 lowercase words, may contain spaces or hyphens")
        if len(value.split()) > MAX_TAG_WORDS:
            raise ValueError(f"Tag must have at most {MAX_TAG_WORDS} words")
        return value

    @field_validator("color")
    @classmethod
    def _check_color(cls, value: str) -> str:
        if not HEX_COLOR_PATTERN.fullmatch(value):
            raise ValueError("Color must be valid hex format #RRGGBB")
        return value


class TastingProfile(BaseModel):
    """Five-attribute structured sensory rating produced by enrichment."""

    fragrance_aroma: TastingAttribute
    flavor: TastingAttribute
    acidity: TastingAttribute
    body: TastingAttribute
    sweetness: TastingAttribute

    def attributes(self) -> dict[TastingAttributeName, TastingAttribute]:
        """Return the attributes keyed by name, in canonical order."""
        return {name: getattr(self, name.value) for name in TastingAttributeName}


class ScrapedFields(BaseModel):
    """Fields a collector extracts from a product detail page."""

    FREE_TEXT_FIELDS: ClassVar[tuple[str, ...]] = (
        "description_long",
        "description_short",
        "farm_notes",
        "cupping_notes",
    )

    url: str
    name: str | None = None
    score_value: float | None = None
    cost_lb: float | None = None
    arrival_date: str | None = None

    # Provenance
    region: str | None = None
    processing: str | None = None
    drying_method: str | None = None
    lot_size: str | None = None
    bag_size: str | None = None
    packaging: str | None = None
    cultivar_detail: str | None = None
    grade: str | None = None
    appearance: str | None = None
    roast_recs: str | None = None
    type: str | None = None

    # Free text
    description_short: str | None = None
    description_long: str | None = None
    farm_notes: str | None = None
    cupping_notes: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.url

    def has_free_text(self) -> bool:
        """Check whether any free-text source is available for enrichment."""
        return any(_has_text(getattr(self, f)) for f in self.FREE_TEXT_FIELDS)


class CatalogItem(ScrapedFields):
    """A persisted catalog entry, keyed by (source, url)."""

    id: int | None = None
    source: str

    # AI-derived
    ai_description: str | None = None
    ai_tasting_notes: TastingProfile | None = None

    # Stock tracking
    stocked: bool = True
    stocked_date: datetime | None = None
    unstocked_date: datetime | None = None
    last_updated: datetime = Field(default_factory=_utc_now)

    @classmethod
    def from_scraped(cls, scraped: ScrapedFields, source: str, **extra: Any) -> "CatalogItem":
        """Build a catalog item from scraped fields."""
        data = scraped.model_dump()
        data.update(extra)
        data["source"] = source
        return cls(**data)


class Chunk(BaseModel):
    """A retrieval fragment derived from one catalog item."""

    id: str
    coffee_id: int
    chunk_type: ChunkType
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: list[float] | None = None


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""
