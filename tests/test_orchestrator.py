"""Tests for run orchestration across sources."""

from datetime import datetime

import pytest
from sqlalchemy.orm import Session

from coffee_agent.core.enums import SourceRunStatus
from coffee_agent.core.schema import CatalogItem
from coffee_agent.db.repositories import CatalogRepository, ChunkRepository
from coffee_agent.ingestion.collectors import StaticCollector, get_collector
from coffee_agent.ingestion.pipeline import (
    Orchestrator,
    RunOptions,
    create_enricher,
    create_orchestrator,
)
from coffee_agent.ingestion.registry import EnrichmentConfig, GlobalConfig, SourceConfig, SourceRegistry
from coffee_agent.services.ai.client import AIProvider
from coffee_agent.services.ai.enrichment import FieldEnricher
from coffee_agent.services.ai.provider_client import ProviderClient
from fakes import (
    VALID_SUMMARY,
    FakeClock,
    FakeEmbeddingProvider,
    FakeTextProvider,
    enrichment_responder,
)

BASE = "https://demo.example.com/products"

GUJI_DETAIL = {
    "name": "Ethiopia Guji Natural",
    "description_long": "A natural process lot from smallholders around Shakiso with peach and jasmine.",
    "farm_notes": "Dried on raised beds for three weeks.",
}

AI_KEY_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY")


def static_source(
    name: str = "demo",
    listings: dict[str, float | None] | None = None,
    details: dict[str, dict] | None = None,
    enabled: bool = True,
) -> SourceConfig:
    return SourceConfig(
        name=name,
        collector="static",
        enabled=enabled,
        custom_config={
            "listings": [{"url": url, "price": price} for url, price in (listings or {}).items()],
            "details": details or {},
        },
    )


def seed(session: Session, url: str, source: str = "demo", **fields) -> CatalogItem:
    data = {"name": url.rsplit("/", 1)[-1], "cost_lb": 5.0, "region": "Huila"}
    data.update(fields)
    item = CatalogRepository(session).upsert(CatalogItem(source=source, url=url, **data))
    session.commit()
    return item


def make_enricher(provider: FakeTextProvider, clock: FakeClock) -> FieldEnricher:
    config = EnrichmentConfig(models=["model-a", "model-b"])
    return FieldEnricher(ProviderClient.from_config(provider, config, clock=clock, sleep=clock.sleep))


class BrokenCollector(StaticCollector):
    """Collector whose storefront is down."""

    async def list_latest(self):
        raise RuntimeError("storefront down")


@pytest.fixture
def registry() -> SourceRegistry:
    return SourceRegistry()


@pytest.fixture
def text_provider() -> FakeTextProvider:
    return FakeTextProvider(
        responder=enrichment_responder(extraction={"processing": "Natural", "region": "Guji, Ethiopia"})
    )


@pytest.fixture
def orchestrator(
    registry: SourceRegistry,
    session_factory,
    text_provider: FakeTextProvider,
    clock: FakeClock,
    fixed_now: datetime,
) -> Orchestrator:
    return Orchestrator(
        registry,
        session_factory,
        enricher=make_enricher(text_provider, clock),
        embedding_provider=FakeEmbeddingProvider(),
        clock=lambda: fixed_now,
        sleep=clock.sleep,
    )


class TestRunSource:
    """Tests for Orchestrator.run_source."""

    @pytest.mark.asyncio
    async def test_full_run(
        self,
        orchestrator: Orchestrator,
        registry: SourceRegistry,
        session: Session,
        text_provider: FakeTextProvider,
    ) -> None:
        """Existing lots are refreshed or unstocked, new lots are enriched, stocked lots are embedded."""
        seed(session, f"{BASE}/kept")
        seed(session, f"{BASE}/sold-out")
        registry.add_source(
            static_source(
                listings={f"{BASE}/kept": 6.5, f"{BASE}/guji": 7.25},
                details={f"{BASE}/guji": GUJI_DETAIL},
            )
        )

        result = await orchestrator.run_source("demo")

        assert result.status == SourceRunStatus.COMPLETED
        assert result.errors == []
        assert result.products_found == 2
        assert result.prices_updated == 1
        assert result.unstocked == 1
        assert result.new_products == 1
        assert result.fields_backfilled == 2
        assert result.ai_descriptions == 1
        assert result.ai_tasting_notes == 1
        assert result.items_embedded == 2
        assert result.chunks_created > 2
        assert result.duration_seconds == 0.0
        assert len(text_provider.calls) == 3

        repo = CatalogRepository(session)
        guji = repo.get_by_link("demo", f"{BASE}/guji")
        assert guji.stocked is True
        assert guji.cost_lb == 7.25
        assert guji.processing == "Natural"
        assert guji.region == "Guji, Ethiopia"
        assert guji.ai_description == VALID_SUMMARY
        assert guji.ai_tasting_notes is not None
        assert repo.get_by_link("demo", f"{BASE}/kept").cost_lb == 6.5
        assert repo.get_by_link("demo", f"{BASE}/sold-out").stocked is False
        assert ChunkRepository(session).has_chunks(guji.id)

    @pytest.mark.asyncio
    async def test_second_run_is_quiet(
        self,
        orchestrator: Orchestrator,
        registry: SourceRegistry,
        text_provider: FakeTextProvider,
    ) -> None:
        registry.add_source(
            static_source(listings={f"{BASE}/guji": 7.25}, details={f"{BASE}/guji": GUJI_DETAIL})
        )

        await orchestrator.run_source("demo")
        calls_after_first = len(text_provider.calls)
        result = await orchestrator.run_source("demo")

        assert result.status == SourceRunStatus.COMPLETED
        assert result.new_products == 0
        assert result.prices_updated == 1
        assert result.items_embedded == 0
        assert len(text_provider.calls) == calls_after_first

    @pytest.mark.asyncio
    async def test_empty_collection_aborts_without_changes(
        self, orchestrator: Orchestrator, registry: SourceRegistry, session: Session
    ) -> None:
        seed(session, f"{BASE}/kept")
        registry.add_source(static_source())

        result = await orchestrator.run_source("demo")

        assert result.status == SourceRunStatus.ABORTED
        assert "no listings collected" in result.errors[0]
        assert CatalogRepository(session).list_stocked_links("demo") == {f"{BASE}/kept"}

    @pytest.mark.asyncio
    async def test_unknown_and_disabled_sources_fail(
        self, orchestrator: Orchestrator, registry: SourceRegistry
    ) -> None:
        registry.add_source(static_source(name="paused", enabled=False))

        missing = await orchestrator.run_source("nowhere")
        disabled = await orchestrator.run_source("paused")

        assert missing.status == SourceRunStatus.FAILED
        assert missing.errors == ["Source 'nowhere' not found"]
        assert disabled.status == SourceRunStatus.FAILED
        assert disabled.errors == ["Source 'paused' is disabled"]

    @pytest.mark.asyncio
    async def test_unknown_collector_fails(
        self, orchestrator: Orchestrator, registry: SourceRegistry
    ) -> None:
        registry.add_source(SourceConfig(name="odd", collector="carrier-pigeon"))

        result = await orchestrator.run_source("odd")

        assert result.status == SourceRunStatus.FAILED
        assert result.errors == ["Collector 'carrier-pigeon' not found"]

    @pytest.mark.asyncio
    async def test_detail_failure_skips_only_that_product(
        self, orchestrator: Orchestrator, registry: SourceRegistry, session: Session
    ) -> None:
        registry.add_source(
            static_source(
                listings={f"{BASE}/ghost": 6.0, f"{BASE}/guji": 7.25},
                details={f"{BASE}/guji": GUJI_DETAIL},
            )
        )

        result = await orchestrator.run_source("demo")

        assert result.status == SourceRunStatus.COMPLETED
        assert result.new_products == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith(f"{BASE}/ghost")
        assert CatalogRepository(session).get_by_link("demo", f"{BASE}/ghost") is None

    @pytest.mark.asyncio
    async def test_limit_caps_new_products(
        self, orchestrator: Orchestrator, registry: SourceRegistry
    ) -> None:
        details = {f"{BASE}/lot-{n}": {"name": f"Lot {n}"} for n in range(3)}
        registry.add_source(static_source(listings={url: 6.0 for url in details}, details=details))

        result = await orchestrator.run_source("demo", RunOptions(limit=1))

        assert result.new_products == 1
        assert any("--limit" in warning for warning in result.warnings)

    @pytest.mark.asyncio
    async def test_item_without_free_text_is_not_enriched(
        self,
        orchestrator: Orchestrator,
        registry: SourceRegistry,
        session: Session,
        text_provider: FakeTextProvider,
    ) -> None:
        registry.add_source(
            static_source(
                listings={f"{BASE}/bare": 6.0},
                details={f"{BASE}/bare": {"name": "Bare Lot", "region": "Cauca"}},
            )
        )

        result = await orchestrator.run_source("demo")

        assert result.new_products == 1
        assert result.ai_descriptions == 0
        assert any("enrichment skipped" in warning for warning in result.warnings)
        assert text_provider.calls == []
        assert CatalogRepository(session).get_by_link("demo", f"{BASE}/bare").ai_description is None

    @pytest.mark.asyncio
    async def test_runs_without_ai_collaborators(
        self, registry: SourceRegistry, session_factory, session: Session
    ) -> None:
        registry.add_source(
            static_source(listings={f"{BASE}/guji": 7.25}, details={f"{BASE}/guji": GUJI_DETAIL})
        )
        orchestrator = Orchestrator(registry, session_factory)

        result = await orchestrator.run_source("demo")

        assert result.status == SourceRunStatus.COMPLETED
        assert result.new_products == 1
        assert result.ai_descriptions == 0
        assert "Embedding provider not configured, embeddings skipped" in result.warnings
        assert ChunkRepository(session).count() == 0


class TestRunSources:
    """Tests for concurrent runs and the run report."""

    @pytest.mark.asyncio
    async def test_failing_source_does_not_stop_siblings(
        self, registry: SourceRegistry, session_factory, clock: FakeClock
    ) -> None:
        registry.add_source(static_source(name="broken"))
        registry.add_source(
            static_source(listings={f"{BASE}/guji": 7.25}, details={f"{BASE}/guji": GUJI_DETAIL})
        )

        def collector_factory(source, fetcher):
            if source.name == "broken":
                return BrokenCollector(source)
            return get_collector(source, fetcher)

        orchestrator = Orchestrator(
            registry,
            session_factory,
            embedding_provider=FakeEmbeddingProvider(),
            collector_factory=collector_factory,
            sleep=clock.sleep,
        )

        report = await orchestrator.run_sources(["broken", "demo"])

        assert [r.source_name for r in report.results] == ["broken", "demo"]
        assert report.results[0].status == SourceRunStatus.FAILED
        assert report.results[0].errors == ["storefront down"]
        assert report.results[1].status == SourceRunStatus.COMPLETED
        assert report.sources_processed == 2
        assert report.sources_successful == 1
        assert report.errors == ["[broken] storefront down"]

    @pytest.mark.asyncio
    async def test_report_totals(self, orchestrator: Orchestrator, registry: SourceRegistry) -> None:
        registry.add_source(
            static_source(
                name="shop-a",
                listings={f"{BASE}/a": 6.0},
                details={f"{BASE}/a": {"name": "Lot A"}},
            )
        )
        registry.add_source(
            static_source(
                name="shop-b",
                listings={f"{BASE}/b": 6.0, f"{BASE}/c": 6.5},
                details={f"{BASE}/b": {"name": "Lot B"}, f"{BASE}/c": {"name": "Lot C"}},
            )
        )

        report = await orchestrator.run_sources(["shop-a", "shop-b"])
        data = report.to_dict()

        assert data["sources_processed"] == 2
        assert data["sources_successful"] == 2
        assert data["totals"]["products_found"] == 3
        assert data["totals"]["new_products"] == 3
        assert [r["status"] for r in data["results"]] == ["completed", "completed"]
        assert data["results"][0]["started_at"] is not None


class TestFactories:
    """Tests for building collaborators from config and environment."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for var in (*AI_KEY_VARS, "AI_PROVIDER", "AI_MODELS"):
            monkeypatch.delenv(var, raising=False)

    def test_env_overrides_provider_and_models(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        monkeypatch.setenv("AI_PROVIDER", "openai")
        monkeypatch.setenv("AI_MODELS", "gpt-a, gpt-b,")

        enricher = create_enricher(GlobalConfig())

        assert enricher.client.provider.provider == AIProvider.OPENAI
        assert [m.name for m in enricher.client.fallback.models] == ["gpt-a", "gpt-b"]

    def test_provider_override_uses_provider_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "test-key")
        monkeypatch.setenv("AI_PROVIDER", "openai")

        enricher = create_enricher(GlobalConfig())

        assert [m.name for m in enricher.client.fallback.models] == ["gpt-4o-mini", "gpt-4o"]

    def test_missing_key_raises(self) -> None:
        with pytest.raises(ValueError, match="No API key"):
            create_enricher(GlobalConfig())

    def test_unknown_provider_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AI_PROVIDER", "mystery")
        with pytest.raises(ValueError, match="Unsupported AI provider"):
            create_enricher(GlobalConfig())

    @pytest.mark.asyncio
    async def test_orchestrator_degrades_without_keys(
        self, registry: SourceRegistry, session_factory
    ) -> None:
        async with create_orchestrator(registry, session_factory) as orchestrator:
            assert orchestrator.enricher is None
            assert orchestrator.embedding_provider is None
            assert orchestrator.fetcher is not None
