"""
Run Orchestration Module
========================

Drives each source end to end:
1. Collect the current listings
2. Reconcile them against the catalog
3. Detail-fetch, enrich and insert new products, one at a time
4. Remove chunks of unstocked items and embed stocked ones

Sources run concurrently as independent tasks; a failing source never
cancels its siblings. Each source uses its own database session and commits
every write before its next suspension point.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from coffee_agent.core.enums import SourceRunStatus
from coffee_agent.core.errors import CollectionError, EmptyCollectionError, StoreWriteError
from coffee_agent.ingestion.collectors import get_collector
from coffee_agent.ingestion.collectors.base import Listing, SourceCollector
from coffee_agent.ingestion.fetcher import Fetcher
from coffee_agent.ingestion.reconciler import ReconciliationEngine
from coffee_agent.ingestion.registry import GlobalConfig, SourceConfig, SourceRegistry
from coffee_agent.services.ai.client import get_text_provider
from coffee_agent.services.ai.enrichment import EnrichmentResult, FieldEnricher
from coffee_agent.services.ai.rate_limiter import Sleep
from coffee_agent.services.embeddings.pipeline import EmbeddingPipeline
from coffee_agent.services.embeddings.providers import EmbeddingProvider, get_embedding_provider

logger = logging.getLogger(__name__)

CollectorFactory = Callable[[SourceConfig, Fetcher | None], SourceCollector | None]


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class RunOptions:
    """Options of a `run` invocation."""

    force: bool = False
    limit: int | None = None
    coffee_id: int | None = None


@dataclass
class SourceRunResult:
    """Result of running one source."""

    source_name: str
    status: SourceRunStatus = SourceRunStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    products_found: int = 0
    new_products: int = 0
    prices_updated: int = 0
    unstocked: int = 0
    fields_backfilled: int = 0
    ai_descriptions: int = 0
    ai_tasting_notes: int = 0
    items_embedded: int = 0
    chunks_created: int = 0
    chunks_removed: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_seconds: float | None = None

    @property
    def success(self) -> bool:
        return self.status == SourceRunStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source_name": self.source_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "products_found": self.products_found,
            "new_products": self.new_products,
            "prices_updated": self.prices_updated,
            "unstocked": self.unstocked,
            "fields_backfilled": self.fields_backfilled,
            "ai_descriptions": self.ai_descriptions,
            "ai_tasting_notes": self.ai_tasting_notes,
            "items_embedded": self.items_embedded,
            "chunks_created": self.chunks_created,
            "chunks_removed": self.chunks_removed,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "duration_seconds": self.duration_seconds,
        }


# Counters summed across sources in the run report
TOTAL_FIELDS = (
    "products_found",
    "new_products",
    "prices_updated",
    "unstocked",
    "fields_backfilled",
    "ai_descriptions",
    "ai_tasting_notes",
    "items_embedded",
    "chunks_created",
    "chunks_removed",
)


@dataclass
class RunReport:
    """Consolidated result of a run over one or more sources."""

    results: list[SourceRunResult] = field(default_factory=list)

    @property
    def sources_processed(self) -> int:
        return len(self.results)

    @property
    def sources_successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    def totals(self) -> dict[str, int]:
        return {name: sum(getattr(r, name) for r in self.results) for name in TOTAL_FIELDS}

    @property
    def errors(self) -> list[str]:
        return [f"[{r.source_name}] {e}" for r in self.results for e in r.errors]

    @property
    def warnings(self) -> list[str]:
        return [f"[{r.source_name}] {w}" for r in self.results for w in r.warnings]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources_processed": self.sources_processed,
            "sources_successful": self.sources_successful,
            "totals": self.totals(),
            "results": [r.to_dict() for r in self.results],
        }


class Orchestrator:
    """Runs sources through collection, reconciliation, enrichment and embedding."""

    def __init__(
        self,
        registry: SourceRegistry,
        session_factory: Callable[[], Session],
        enricher: FieldEnricher | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        fetcher: Fetcher | None = None,
        collector_factory: CollectorFactory = get_collector,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.enricher = enricher
        self.embedding_provider = embedding_provider
        self.fetcher = fetcher
        self.collector_factory = collector_factory
        self._clock = clock
        self._sleep = sleep

    async def close(self) -> None:
        if self.fetcher is not None:
            await self.fetcher.close()

    async def __aenter__(self) -> Orchestrator:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def run_sources(
        self, source_names: Sequence[str], options: RunOptions | None = None
    ) -> RunReport:
        """
        Run several sources concurrently and join their results.

        Args:
            source_names: Sources to run.
            options: Run options applied to every source.

        Returns:
            RunReport with one result per source, in the given order.
        """
        options = options or RunOptions()
        outcomes = await asyncio.gather(
            *(self.run_source(name, options) for name in source_names),
            return_exceptions=True,
        )

        report = RunReport()
        for name, outcome in zip(source_names, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Source '{name}' crashed: {outcome!r}")
                outcome = SourceRunResult(
                    source_name=name,
                    status=SourceRunStatus.FAILED,
                    errors=[f"Unhandled error: {outcome!r}"],
                )
            report.results.append(outcome)
        return report

    async def run_source(self, source_name: str, options: RunOptions | None = None) -> SourceRunResult:
        """
        Run one source end to end.

        Never raises: fatal problems are reported through the result status.
        """
        options = options or RunOptions()
        result = SourceRunResult(
            source_name=source_name,
            status=SourceRunStatus.RUNNING,
            started_at=self._clock(),
        )
        logger.info(f"Starting run for source '{source_name}'")

        try:
            source = self.registry.get_source(source_name)
            if source is None:
                result.status = SourceRunStatus.FAILED
                result.errors.append(f"Source '{source_name}' not found")
                return result
            if not source.enabled:
                result.status = SourceRunStatus.FAILED
                result.errors.append(f"Source '{source_name}' is disabled")
                return result

            collector = self.collector_factory(source, self.fetcher)
            if collector is None:
                result.status = SourceRunStatus.FAILED
                result.errors.append(f"Collector '{source.collector}' not found")
                return result

            with self.session_factory() as session:
                await self._run(source, collector, session, options, result)
            result.status = SourceRunStatus.COMPLETED

        except EmptyCollectionError as e:
            result.status = SourceRunStatus.ABORTED
            result.errors.append(str(e))
        except Exception as e:
            logger.exception(f"Run failed for source '{source_name}': {e}")
            result.status = SourceRunStatus.FAILED
            result.errors.append(str(e))

        finally:
            result.completed_at = self._clock()
            if result.started_at and result.completed_at:
                result.duration_seconds = (result.completed_at - result.started_at).total_seconds()
            logger.info(f"Finished source '{source_name}': {result.status.value}")

        return result

    async def _run(
        self,
        source: SourceConfig,
        collector: SourceCollector,
        session: Session,
        options: RunOptions,
        result: SourceRunResult,
    ) -> None:
        listings = await collector.list_latest()
        result.products_found = len(listings)
        logger.info(f"[{source.name}] Collected {len(listings)} listings")

        engine = ReconciliationEngine(session, clock=self._clock)
        reconciliation = engine.reconcile(source, listings)
        result.unstocked = len(reconciliation.unstocked)
        result.prices_updated = reconciliation.refreshed
        if reconciliation.excluded:
            result.warnings.append(f"{reconciliation.excluded} listings excluded by source filters")

        new_listings = reconciliation.new_listings
        if options.limit is not None and len(new_listings) > options.limit:
            result.warnings.append(
                f"Processing {options.limit} of {len(new_listings)} new products (--limit)"
            )
            new_listings = new_listings[: options.limit]

        for listing in new_listings:
            try:
                await self._add_new_product(source, collector, engine, listing, result)
            except (CollectionError, StoreWriteError) as e:
                logger.warning(f"[{source.name}] Skipping {listing.url}: {e}")
                result.errors.append(f"{listing.url}: {e}")
            except Exception as e:
                logger.exception(f"[{source.name}] Error processing {listing.url}")
                result.errors.append(f"{listing.url}: {e}")

        await self._embed(source, session, options, result)

    async def _add_new_product(
        self,
        source: SourceConfig,
        collector: SourceCollector,
        engine: ReconciliationEngine,
        listing: Listing,
        result: SourceRunResult,
    ) -> None:
        scraped = await collector.fetch_detail(listing.url, listing.price)
        if scraped.url != listing.url:
            scraped = scraped.model_copy(update={"url": listing.url})

        if self.enricher is None:
            enrichment = EnrichmentResult(skipped=True)
        else:
            enrichment = await self.enricher.enrich(scraped)
            if enrichment.skipped:
                result.warnings.append(f"{listing.url}: no description text, enrichment skipped")
        result.errors.extend(f"{scraped.display_name}: {error}" for error in enrichment.errors)

        engine.insert_new(
            source.name,
            enrichment.apply(scraped),
            ai_description=enrichment.ai_description,
            ai_tasting_notes=enrichment.ai_tasting_notes,
        )
        result.new_products += 1
        result.fields_backfilled += len(enrichment.fields)
        result.ai_descriptions += int(enrichment.ai_description is not None)
        result.ai_tasting_notes += int(enrichment.ai_tasting_notes is not None)
        logger.info(f"[{source.name}] Added {scraped.display_name}")

    async def _embed(
        self,
        source: SourceConfig,
        session: Session,
        options: RunOptions,
        result: SourceRunResult,
    ) -> None:
        if self.embedding_provider is None:
            result.warnings.append("Embedding provider not configured, embeddings skipped")
            return

        embedder = EmbeddingPipeline(
            session,
            self.embedding_provider,
            delay_seconds=self.registry.global_config.embedding.delay_seconds,
            sleep=self._sleep,
        )
        try:
            cleanup = embedder.cleanup_unstocked()
            result.chunks_removed = cleanup.chunks
        except StoreWriteError as e:
            logger.error(f"[{source.name}] Chunk cleanup failed: {e}")
            result.errors.append(f"chunk cleanup: {e}")

        bulk = await embedder.process_bulk(
            source=source.name, force=options.force, coffee_id=options.coffee_id
        )
        result.items_embedded = bulk.embedded
        result.chunks_created = bulk.chunks_created
        result.errors.extend(bulk.errors)


def create_enricher(config: GlobalConfig) -> FieldEnricher:
    """
    Build the field enricher from config and environment.

    AI_PROVIDER and AI_MODELS (comma separated) override the configured
    provider and model cascade.

    Raises:
        ValueError: If the provider is unknown or has no API key.
    """
    enrichment = config.enrichment
    provider_name = os.environ.get("AI_PROVIDER") or enrichment.provider
    models_env = os.environ.get("AI_MODELS")
    if models_env:
        models = [m.strip() for m in models_env.split(",") if m.strip()]
        enrichment = replace(enrichment, provider=provider_name, models=models)
    elif provider_name != enrichment.provider:
        # Configured models belong to the configured provider
        enrichment = replace(enrichment, provider=provider_name, models=[])

    provider = get_text_provider(provider_name)
    return FieldEnricher.from_config(provider, enrichment)


def create_embedding_provider(config: GlobalConfig) -> EmbeddingProvider:
    """
    Build the embedding provider from config and environment.

    Raises:
        ValueError: If the provider is unknown or has no API key.
    """
    return get_embedding_provider(
        config.embedding.provider,
        api_key=os.environ.get("OPENAI_API_KEY"),
        model=config.embedding.model,
    )


def create_orchestrator(registry: SourceRegistry, session_factory: Callable[[], Session]) -> Orchestrator:
    """
    Build an orchestrator with every collaborator available in this environment.

    Missing AI credentials disable the matching stage with a warning instead of
    failing the run.
    """
    config = registry.global_config

    enricher: FieldEnricher | None
    try:
        enricher = create_enricher(config)
    except ValueError as e:
        logger.warning(f"AI enrichment disabled: {e}")
        enricher = None

    embedding_provider: EmbeddingProvider | None
    try:
        embedding_provider = create_embedding_provider(config)
    except ValueError as e:
        logger.warning(f"Embeddings disabled: {e}")
        embedding_provider = None

    fetcher = Fetcher(
        user_agent=config.user_agent,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
    )
    return Orchestrator(
        registry,
        session_factory,
        enricher=enricher,
        embedding_provider=embedding_provider,
        fetcher=fetcher,
    )
