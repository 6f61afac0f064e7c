"""Enums for catalog, enrichment and run reporting."""

from enum import Enum


class ChunkType(str, Enum):
    """Semantic chunk categories produced for each catalog item."""

    PROFILE = "profile"
    TASTING = "tasting"
    ORIGIN = "origin"
    PROCESSING = "processing"
    COMMERCIAL = "commercial"


class TastingAttributeName(str, Enum):
    """The five attributes of a tasting profile."""

    FRAGRANCE_AROMA = "fragrance_aroma"
    FLAVOR = "flavor"
    ACIDITY = "acidity"
    BODY = "body"
    SWEETNESS = "sweetness"


class SourceRunStatus(str, Enum):
    """Outcome of one source run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"  # collection came back empty, catalog left untouched
    FAILED = "failed"
