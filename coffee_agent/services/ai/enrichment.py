"""
Per-item AI enrichment.

Three independent, best-effort steps run for every new catalog item:
1. Batched extraction of null catalog fields from the free-text sources
2. A short factual description (ai_description)
3. A validated five-attribute tasting profile (ai_tasting_notes)

Failures are collected on the EnrichmentResult; nothing is raised.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from coffee_agent.core.schema import ScrapedFields, TastingProfile
from coffee_agent.ingestion.registry import EnrichmentConfig
from coffee_agent.services.ai.client import TextProvider
from coffee_agent.services.ai.profile_validator import validate_profile
from coffee_agent.services.ai.prompts import (
    FIELD_INSTRUCTIONS,
    build_extraction_prompt,
    build_source_text,
    build_summary_prompt,
    build_tasting_profile_prompt,
)
from coffee_agent.services.ai.provider_client import ProviderClient

logger = logging.getLogger(__name__)


def non_empty_string(value: Any) -> str | None:
    """Accept trimmed non-empty strings only."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value or value.lower() in {"null", "none", "n/a", "unknown"}:
        return None
    return value


@dataclass(frozen=True)
class ExtractionRule:
    """How to extract and validate one catalog field."""

    field: str
    instruction: str
    validator: Callable[[Any], str | None] = non_empty_string


EXTRACTION_RULES: dict[str, ExtractionRule] = {
    name: ExtractionRule(name, instruction) for name, instruction in FIELD_INSTRUCTIONS.items()
}


def count_words(text: str) -> int:
    return len(text.split())


@dataclass
class EnrichmentResult:
    """Outcome of enriching one item."""

    skipped: bool = False
    fields: dict[str, str] = field(default_factory=dict)
    ai_description: str | None = None
    ai_tasting_notes: TastingProfile | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.skipped and not self.errors

    def apply(self, scraped: ScrapedFields) -> ScrapedFields:
        """Return a copy of the scraped fields with accepted extractions filled in."""
        return scraped.model_copy(update=self.fields)


class FieldEnricher:
    """Fills missing fields and generates AI-derived fields for catalog items."""

    def __init__(
        self,
        client: ProviderClient,
        rules: Mapping[str, ExtractionRule] | None = None,
        summary_min_words: int = 20,
        summary_max_words: int = 100,
    ) -> None:
        self.client = client
        self.rules = dict(rules if rules is not None else EXTRACTION_RULES)
        self.summary_min_words = summary_min_words
        self.summary_max_words = summary_max_words

    @classmethod
    def from_config(cls, provider: TextProvider, config: EnrichmentConfig) -> "FieldEnricher":
        """Build an enricher with its own ProviderClient from the enrichment config."""
        return cls(
            ProviderClient.from_config(provider, config),
            summary_min_words=config.summary_min_words,
            summary_max_words=config.summary_max_words,
        )

    async def enrich(self, item: ScrapedFields) -> EnrichmentResult:
        """
        Run all enrichment steps for one item.

        Args:
            item: Scraped fields of a newly discovered product.

        Returns:
            EnrichmentResult; `skipped` is set when the item has no free text.
        """
        result = EnrichmentResult()
        if not item.has_free_text():
            logger.info(f"Skipping enrichment for {item.display_name}: no description text")
            result.skipped = True
            return result

        fields, error = await self.extract_fields(item)
        result.fields = fields
        if error:
            result.errors.append(f"extraction: {error}")

        description, error = await self.generate_summary(item)
        result.ai_description = description
        if error:
            result.errors.append(f"ai_description: {error}")

        profile, error = await self.generate_tasting_profile(item)
        result.ai_tasting_notes = profile
        if error:
            result.errors.append(f"ai_tasting_notes: {error}")

        logger.info(
            f"Enriched {item.display_name}: {len(result.fields)} fields, "
            f"description={'yes' if result.ai_description else 'no'}, "
            f"profile={'yes' if result.ai_tasting_notes else 'no'}"
        )
        return result

    def missing_fields(self, item: ScrapedFields) -> list[str]:
        """Null catalog fields that have an extraction rule, in rule order."""
        missing = []
        for name in self.rules:
            value = getattr(item, name, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    async def extract_fields(self, item: ScrapedFields) -> tuple[dict[str, str], str | None]:
        """
        Extract every missing field in a single provider call.

        Returns:
            (accepted field values, error message or None)
        """
        missing = self.missing_fields(item)
        source_text = build_source_text(item.description_long, item.description_short, item.farm_notes)
        if not missing or not source_text:
            return {}, None

        result = await self.client.generate_json(build_extraction_prompt(missing, source_text))
        if not result.success:
            return {}, result.error_message
        if not isinstance(result.parsed_json, dict):
            return {}, "expected a JSON object"

        accepted: dict[str, str] = {}
        for name in missing:
            value = self.rules[name].validator(result.parsed_json.get(name))
            if value is not None:
                accepted[name] = value
        logger.debug(f"Extracted {sorted(accepted)} for {item.display_name}")
        return accepted, None

    async def generate_summary(self, item: ScrapedFields) -> tuple[str | None, str | None]:
        """
        Generate the description, accepting it only inside the word band.

        Returns:
            (description or None, error message or None)
        """
        source_text = build_source_text(item.description_long, item.description_short, item.farm_notes)
        if not source_text:
            return None, None

        prompt = build_summary_prompt(source_text, self.summary_min_words, self.summary_max_words)
        result = await self.client.generate(prompt)
        if not result.success:
            return None, result.error_message

        text = result.text.strip()
        words = count_words(text)
        if not self.summary_min_words <= words <= self.summary_max_words:
            return None, (
                f"description has {words} words, expected "
                f"{self.summary_min_words}-{self.summary_max_words}"
            )
        return text, None

    async def generate_tasting_profile(
        self, item: ScrapedFields
    ) -> tuple[TastingProfile | None, str | None]:
        """
        Generate and validate the tasting profile.

        Cupping notes stand in for farm notes when the latter are missing.

        Returns:
            (profile or None, error message or None)
        """
        if item.farm_notes and item.farm_notes.strip():
            notes, label = item.farm_notes, "Farm Notes"
        else:
            notes, label = item.cupping_notes, "Cupping Notes"
        source_text = build_source_text(item.description_long, item.description_short, notes, label)
        if not source_text:
            return None, None

        result = await self.client.generate_json(build_tasting_profile_prompt(source_text))
        if not result.success:
            return None, result.error_message

        validation = validate_profile(result.parsed_json)
        if not validation.success:
            return None, f"invalid tasting profile: {'; '.join(validation.errors)}"
        return validation.profile, None
