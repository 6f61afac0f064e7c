"""Tests for semantic chunking of catalog items."""

from datetime import UTC, datetime

import pytest

from coffee_agent.core.enums import ChunkType
from coffee_agent.core.schema import CatalogItem, TastingProfile
from coffee_agent.services.embeddings.chunker import build_chunks, format_tasting_profile
from fakes import VALID_PROFILE

URL = "https://example.com/products/kenya-nyeri"


def make_item(**fields) -> CatalogItem:
    data = {"id": 7, "source": "demo", "url": URL, "name": "Kenya Nyeri"}
    data.update(fields)
    return CatalogItem(**data)


class TestBuildChunks:
    """Tests for build_chunks."""

    def test_processing_and_region_only(self) -> None:
        """Only origin and processing chunks come out of a sparse item."""
        item = make_item(
            processing="Washed",
            region="Nyeri",
            stocked_date=datetime(2025, 3, 1, tzinfo=UTC),
        )

        chunks = build_chunks(item)

        assert [c.chunk_type for c in chunks] == [ChunkType.ORIGIN, ChunkType.PROCESSING]
        assert chunks[0].content == "demo - Kenya Nyeri - Region: Nyeri. Source: demo"
        assert chunks[1].content == "demo - Kenya Nyeri - Processing: Washed"

    def test_name_alone_produces_nothing(self) -> None:
        assert build_chunks(make_item()) == []

    def test_blank_strings_are_ignored(self) -> None:
        chunks = build_chunks(make_item(region="   ", cupping_notes=""))
        assert chunks == []

    def test_full_item_produces_all_chunks_in_order(self) -> None:
        item = make_item(
            score_value=88.0,
            grade="AA",
            cost_lb=7.25,
            lot_size="20 bags",
            arrival_date="Feb 2025",
            region="Nyeri",
            cultivar_detail="SL28, SL34",
            processing="Washed",
            drying_method="Raised beds",
            cupping_notes="Blackcurrant, grapefruit",
            ai_description="A bright, juicy Kenyan lot.",
            ai_tasting_notes=TastingProfile.model_validate(VALID_PROFILE),
            stocked_date=datetime(2025, 3, 1, 12, tzinfo=UTC),
        )

        chunks = build_chunks(item)

        assert [c.chunk_type for c in chunks] == [
            ChunkType.PROFILE,
            ChunkType.TASTING,
            ChunkType.ORIGIN,
            ChunkType.PROCESSING,
            ChunkType.COMMERCIAL,
        ]
        assert [c.id for c in chunks] == [
            "7_profile",
            "7_tasting",
            "7_origin",
            "7_processing",
            "7_commercial",
        ]
        by_type = {c.chunk_type: c for c in chunks}

        profile = by_type[ChunkType.PROFILE].content
        assert profile.startswith("demo - Coffee: Kenya Nyeri. Quality Score: 88. Grade: AA")
        assert profile.endswith("Supplier: demo")

        tasting = by_type[ChunkType.TASTING].content
        assert "Cupping Notes: Blackcurrant, grapefruit" in tasting
        assert "AI Tasting Notes: Fragrance/Aroma: floral, Flavor: stone fruit" in tasting

        commercial = by_type[ChunkType.COMMERCIAL].content
        assert "Cost per lb: $7.25" in commercial
        assert "Lot Size: 20 bags" in commercial
        assert commercial.endswith("Stocked Date: 2025-03-01")

    def test_stocked_date_alone_is_not_commercial(self) -> None:
        item = make_item(region="Nyeri", stocked_date=datetime(2025, 3, 1, tzinfo=UTC))
        types = [c.chunk_type for c in build_chunks(item)]
        assert ChunkType.COMMERCIAL not in types

    def test_metadata_snapshot(self) -> None:
        item = make_item(region="Nyeri", cultivar_detail="SL28", score_value=87.5, grade="AB")
        by_type = {c.chunk_type: c for c in build_chunks(item)}

        origin = by_type[ChunkType.ORIGIN].metadata
        assert origin["name"] == "Kenya Nyeri"
        assert origin["source"] == "demo"
        assert origin["stocked"] is True
        assert origin["region"] == "Nyeri"
        assert origin["cultivar"] == "SL28"

        profile = by_type[ChunkType.PROFILE].metadata
        assert profile["score"] == 87.5
        assert profile["has_ai_description"] is False

    def test_requires_persisted_item(self) -> None:
        with pytest.raises(ValueError):
            build_chunks(make_item(id=None, region="Nyeri"))


class TestFormatTastingProfile:
    """Tests for format_tasting_profile."""

    def test_none(self) -> None:
        assert format_tasting_profile(None) == ""

    def test_all_attributes_in_order(self) -> None:
        text = format_tasting_profile(TastingProfile.model_validate(VALID_PROFILE))
        assert text == (
            "Fragrance/Aroma: floral, Flavor: stone fruit, Acidity: bright citrus, "
            "Body: silky, Sweetness: honey"
        )
