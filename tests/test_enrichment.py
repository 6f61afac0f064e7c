"""Tests for per-item field enrichment."""

import copy

import pytest

from coffee_agent.core.schema import ScrapedFields
from coffee_agent.ingestion.registry import EnrichmentConfig
from coffee_agent.services.ai.enrichment import (
    EXTRACTION_RULES,
    FieldEnricher,
    count_words,
    non_empty_string,
)
from coffee_agent.services.ai.provider_client import ProviderClient
from fakes import (
    EXTRACTION_MARKER,
    PROFILE_MARKER,
    VALID_PROFILE,
    VALID_SUMMARY,
    FakeClock,
    FakeTextProvider,
    enrichment_responder,
)

URL = "https://example.com/products/ethiopia-yirgacheffe"


def make_enricher(provider: FakeTextProvider, clock: FakeClock) -> FieldEnricher:
    config = EnrichmentConfig(models=["model-a", "model-b"])
    client = ProviderClient.from_config(provider, config, clock=clock, sleep=clock.sleep)
    return FieldEnricher(client)


def prompts_starting_with(provider: FakeTextProvider, marker: str) -> list[str]:
    return [prompt for prompt, _ in provider.calls if prompt.startswith(marker)]


class TestNonEmptyString:
    """Tests for the default extraction validator."""

    def test_trims(self) -> None:
        assert non_empty_string("  Washed ") == "Washed"

    def test_rejects_empty_and_placeholders(self) -> None:
        assert non_empty_string("") is None
        assert non_empty_string("   ") is None
        assert non_empty_string("null") is None
        assert non_empty_string("N/A") is None

    def test_rejects_non_strings(self) -> None:
        assert non_empty_string(None) is None
        assert non_empty_string(1500) is None
        assert non_empty_string(["Bourbon"]) is None


class TestFieldEnricher:
    """Tests for FieldEnricher."""

    @pytest.mark.asyncio
    async def test_skips_without_free_text(self, clock: FakeClock) -> None:
        """Items with no description text are skipped without provider calls."""
        provider = FakeTextProvider()
        enricher = make_enricher(provider, clock)

        result = await enricher.enrich(ScrapedFields(url=URL, name="Bare Lot", region="Huila"))

        assert result.skipped
        assert not result.success
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_full_enrichment(self, clock: FakeClock) -> None:
        """Extraction, description and profile all succeed in three calls."""
        provider = FakeTextProvider(
            responder=enrichment_responder(
                extraction={
                    "processing": "Washed",
                    "cultivar_detail": "  Heirloom ",
                    "grade": "",
                    "lot_size": None,
                    "region": "Somewhere Else",
                }
            )
        )
        enricher = make_enricher(provider, clock)
        item = ScrapedFields(
            url=URL,
            name="Ethiopia Yirgacheffe",
            region="Yirgacheffe, Ethiopia",
            description_long="Washed heirloom lots from Gedeo zone smallholders.",
        )

        result = await enricher.enrich(item)

        assert result.success
        assert result.fields == {"processing": "Washed", "cultivar_detail": "Heirloom"}
        assert result.ai_description == VALID_SUMMARY
        assert result.ai_tasting_notes is not None
        assert result.ai_tasting_notes.flavor.tag == "stone fruit"
        assert len(provider.calls) == 3

        enriched = result.apply(item)
        assert enriched.processing == "Washed"
        assert enriched.region == "Yirgacheffe, Ethiopia"
        assert item.processing is None

    @pytest.mark.asyncio
    async def test_extraction_is_one_batched_call(self, clock: FakeClock) -> None:
        """Every missing field is requested in a single prompt; present fields are not."""
        provider = FakeTextProvider(responder=enrichment_responder())
        enricher = make_enricher(provider, clock)
        item = ScrapedFields(url=URL, region="Huila", description_short="Caramel and apple.")

        await enricher.enrich(item)

        extraction_prompts = prompts_starting_with(provider, EXTRACTION_MARKER)
        assert len(extraction_prompts) == 1
        assert "- processing:" in extraction_prompts[0]
        assert "- bag_size:" in extraction_prompts[0]
        assert "- region:" not in extraction_prompts[0]

    @pytest.mark.asyncio
    async def test_no_missing_fields_skips_extraction(self, clock: FakeClock) -> None:
        provider = FakeTextProvider(responder=enrichment_responder())
        enricher = make_enricher(provider, clock)
        filled = {name: "known" for name in EXTRACTION_RULES}
        item = ScrapedFields(url=URL, description_long="Some text.", **filled)

        result = await enricher.enrich(item)

        assert result.fields == {}
        assert prompts_starting_with(provider, EXTRACTION_MARKER) == []
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_extraction_failure_does_not_block_other_steps(self, clock: FakeClock) -> None:
        provider = FakeTextProvider(
            responses=[RuntimeError("boom"), RuntimeError("boom")],
            responder=enrichment_responder(),
        )
        enricher = make_enricher(provider, clock)
        item = ScrapedFields(url=URL, description_long="Washed lot.")

        result = await enricher.enrich(item)

        assert not result.success
        assert result.fields == {}
        assert result.errors[0].startswith("extraction:")
        assert result.ai_description == VALID_SUMMARY
        assert result.ai_tasting_notes is not None

    @pytest.mark.asyncio
    async def test_extraction_rejects_non_object(self, clock: FakeClock) -> None:
        provider = FakeTextProvider(responses=["[1, 2]"], responder=enrichment_responder())
        enricher = make_enricher(provider, clock)

        fields, error = await enricher.extract_fields(
            ScrapedFields(url=URL, description_long="Washed lot.")
        )

        assert fields == {}
        assert error == "expected a JSON object"

    @pytest.mark.asyncio
    async def test_summary_outside_word_band(self, clock: FakeClock) -> None:
        """A description outside 20-100 words is discarded and reported."""
        provider = FakeTextProvider(responder=enrichment_responder(summary="Too short."))
        enricher = make_enricher(provider, clock)

        result = await enricher.enrich(ScrapedFields(url=URL, description_long="Washed lot."))

        assert result.ai_description is None
        assert "ai_description: description has 2 words, expected 20-100" in result.errors
        assert result.ai_tasting_notes is not None

    @pytest.mark.asyncio
    async def test_summary_too_long(self, clock: FakeClock) -> None:
        provider = FakeTextProvider(responder=enrichment_responder(summary="word " * 101))
        enricher = make_enricher(provider, clock)

        description, error = await enricher.generate_summary(
            ScrapedFields(url=URL, description_long="Washed lot.")
        )

        assert description is None
        assert "101 words" in error

    @pytest.mark.asyncio
    async def test_invalid_profile_rejected(self, clock: FakeClock) -> None:
        """A partial profile is never returned."""
        partial = copy.deepcopy(VALID_PROFILE)
        del partial["body"]
        provider = FakeTextProvider(responder=enrichment_responder(profile=partial))
        enricher = make_enricher(provider, clock)

        result = await enricher.enrich(ScrapedFields(url=URL, description_long="Washed lot."))

        assert result.ai_tasting_notes is None
        assert any(e.startswith("ai_tasting_notes: invalid tasting profile") for e in result.errors)
        assert result.ai_description == VALID_SUMMARY

    @pytest.mark.asyncio
    async def test_profile_uses_cupping_notes_without_farm_notes(self, clock: FakeClock) -> None:
        provider = FakeTextProvider(responder=enrichment_responder())
        enricher = make_enricher(provider, clock)
        item = ScrapedFields(url=URL, cupping_notes="Blueberry, cocoa, winey finish")

        result = await enricher.enrich(item)

        profile_prompts = prompts_starting_with(provider, PROFILE_MARKER)
        assert len(provider.calls) == 1
        assert "Cupping Notes: Blueberry, cocoa, winey finish" in profile_prompts[0]
        assert result.ai_tasting_notes is not None
        assert result.ai_description is None
        assert result.success

    def test_count_words(self) -> None:
        assert count_words("  one two\nthree ") == 3
