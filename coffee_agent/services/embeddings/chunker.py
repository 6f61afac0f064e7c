"""
Semantic chunking of catalog items for retrieval.

Each item yields up to five typed chunks. A chunk's text joins the item's
non-empty fields for that topic and is prefixed with the source and name so
that retrieved fragments stay attributable. A chunk is emitted only when at
least one of its item-specific fields is present; the prefix and supplier
name alone never produce a chunk.
"""

from datetime import datetime
from typing import Any

from coffee_agent.core.enums import ChunkType
from coffee_agent.core.schema import CatalogItem, Chunk, TastingProfile

TASTING_LABELS = {
    "fragrance_aroma": "Fragrance/Aroma",
    "flavor": "Flavor",
    "acidity": "Acidity",
    "body": "Body",
    "sweetness": "Sweetness",
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _fmt(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _join(parts: list[tuple[str, Any]]) -> str:
    return ". ".join(f"{label}: {_fmt(value)}" for label, value in parts if _present(value))


def format_tasting_profile(profile: TastingProfile | None) -> str:
    """Render a profile as 'Fragrance/Aroma: tag, Flavor: tag, ...'."""
    if profile is None:
        return ""
    return ", ".join(
        f"{TASTING_LABELS[name.value]}: {attribute.tag}"
        for name, attribute in profile.attributes().items()
    )


def chunk_id(coffee_id: int, chunk_type: ChunkType) -> str:
    return f"{coffee_id}_{chunk_type.value}"


def build_chunks(item: CatalogItem) -> list[Chunk]:
    """
    Split a persisted catalog item into retrieval chunks.

    Args:
        item: Catalog item with an assigned id.

    Returns:
        Chunks in profile, tasting, origin, processing, commercial order,
        omitting those with no content.
    """
    if item.id is None:
        raise ValueError("Catalog item must be persisted before chunking")

    name = item.display_name
    prefix = f"{item.source} - {name}"
    chunks: list[Chunk] = []

    def add(chunk_type: ChunkType, body: str, content: str, metadata: dict[str, Any]) -> None:
        if not body:
            return
        chunks.append(
            Chunk(
                id=chunk_id(item.id, chunk_type),
                coffee_id=item.id,
                chunk_type=chunk_type,
                content=content,
                metadata={"name": name, "source": item.source, "stocked": item.stocked, **metadata},
            )
        )

    profile_body = _join(
        [
            ("Quality Score", item.score_value),
            ("Grade", item.grade),
            ("Appearance", item.appearance),
            ("Type", item.type),
            ("AI Description", item.ai_description),
        ]
    )
    add(
        ChunkType.PROFILE,
        profile_body,
        f"{item.source} - Coffee: {name}. {profile_body}. Supplier: {item.source}",
        {
            "score": item.score_value,
            "grade": item.grade,
            "arrival_date": item.arrival_date,
            "has_ai_description": _present(item.ai_description),
        },
    )

    tasting_body = _join(
        [
            ("Cupping Notes", item.cupping_notes),
            ("Description", item.description_short),
            ("Detailed Description", item.description_long),
            ("Roast Recommendations", item.roast_recs),
            ("AI Tasting Notes", format_tasting_profile(item.ai_tasting_notes)),
        ]
    )
    add(
        ChunkType.TASTING,
        tasting_body,
        f"{prefix} - {tasting_body}",
        {
            "score": item.score_value,
            "has_cupping_notes": _present(item.cupping_notes),
            "has_roast_recs": _present(item.roast_recs),
            "has_ai_tasting_notes": item.ai_tasting_notes is not None,
        },
    )

    origin_body = _join(
        [
            ("Region", item.region),
            ("Variety", item.cultivar_detail),
            ("Farm Notes", item.farm_notes),
        ]
    )
    add(
        ChunkType.ORIGIN,
        origin_body,
        f"{prefix} - {origin_body}. Source: {item.source}",
        {"region": item.region, "cultivar": item.cultivar_detail},
    )

    processing_body = _join(
        [
            ("Processing", item.processing),
            ("Drying Method", item.drying_method),
            ("Packaging", item.packaging),
        ]
    )
    add(
        ChunkType.PROCESSING,
        processing_body,
        f"{prefix} - {processing_body}",
        {"processing": item.processing, "drying_method": item.drying_method},
    )

    commercial_body = _join(
        [
            ("Cost per lb", f"${item.cost_lb:.2f}" if item.cost_lb is not None else None),
            ("Lot Size", item.lot_size),
            ("Bag Size", item.bag_size),
            ("Arrival Date", item.arrival_date),
        ]
    )
    # Stocked date alone does not make a commercial chunk
    if commercial_body and item.stocked_date is not None:
        commercial_body = f"{commercial_body}. Stocked Date: {_fmt(item.stocked_date)}"
    add(
        ChunkType.COMMERCIAL,
        commercial_body,
        f"{prefix} - Supplier: {item.source} - {commercial_body}",
        {
            "cost_lb": item.cost_lb,
            "lot_size": item.lot_size,
            "arrival_date": item.arrival_date,
        },
    )

    return chunks
