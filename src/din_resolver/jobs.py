"""Named entry-point operations: start-matching, start-enrichment,
stop-enrichment and clear-cache.

Each operation takes its collaborators as arguments. The ``run_*_job``
functions wire the production ones (MongoDB stores, registry clients) from
Settings for the scripts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import pandas as pd

from din_resolver.clients.drug_product import DrugProductClient
from din_resolver.clients.secondary_codes import SecondaryCodeClient
from din_resolver.config import Settings
from din_resolver.enrichment import CURSOR_KEY, CheckpointedEnricher, EnrichmentOutcome, LookupFn
from din_resolver.errors import ConfigurationError
from din_resolver.matching import MatchEngine
from din_resolver.registry import REGISTRY_CACHE_NAME, RegistryAssembler
from din_resolver.scheduler import ENRICH_JOB, FollowUpScheduler
from din_resolver.store.chunked_cache import ChunkedCache
from din_resolver.store.kv import KeyValueStore, MongoKeyValueStore
from din_resolver.tabular import ColumnLayout, TableSource, apply_column, enrichment_rows, target_records

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100

# Country cells that refer to the registry's own market; blank means unspecified
REGISTRY_COUNTRY_CODES = frozenset({"ca", "can", "canada"})


@dataclass
class MatchSummary:
    """Counts reported at the end of a matching run."""

    total_rows: int = 0
    matched: int = 0
    unmatched: int = 0
    skipped_kind: int = 0
    skipped_existing: int = 0
    skipped_country: int = 0

    def __str__(self) -> str:
        return (
            f"rows={self.total_rows}, matched={self.matched}, unmatched={self.unmatched}, "
            f"skipped(kind)={self.skipped_kind}, skipped(existing)={self.skipped_existing}, "
            f"skipped(country)={self.skipped_country}"
        )


@dataclass
class Services:
    """Production collaborators built from Settings."""

    cache: ChunkedCache
    properties: KeyValueStore
    scheduler: FollowUpScheduler


def open_services(settings: Settings) -> Services:
    """Build the MongoDB-backed cache, property store and scheduler."""
    cache_store = MongoKeyValueStore(settings.mongodb_uri, settings.database_name, collection_name="cache")
    properties = MongoKeyValueStore(settings.mongodb_uri, settings.database_name, collection_name="properties")
    return Services(
        cache=ChunkedCache(cache_store),
        properties=properties,
        scheduler=FollowUpScheduler(properties),
    )


def is_registry_country(country_code: str) -> bool:
    return not country_code.strip() or country_code.strip().lower() in REGISTRY_COUNTRY_CODES


def start_matching(
    df: pd.DataFrame,
    layout: ColumnLayout,
    assembler: RegistryAssembler,
    engine: MatchEngine | None = None,
    overwrite: bool = False,
) -> MatchSummary:
    """Resolve every eligible row of ``df`` and write identifiers into the result column.

    Rows that already hold an identifier are left alone unless ``overwrite``
    is set. Rows for another country are skipped. Unresolved rows get an
    empty result.

    Raises:
        ConfigurationError: If a required column is missing
        RegistryUnavailable: If the registry cannot be loaded
    """
    engine = engine or MatchEngine()
    records = target_records(df, layout)
    summary = MatchSummary(total_rows=len(df), skipped_kind=len(df) - len(records))

    registry = assembler.load()
    results: dict[int, str] = {}

    for position, record in enumerate(records, start=1):
        if record.identifier and not overwrite:
            summary.skipped_existing += 1
            continue
        if not is_registry_country(record.country_code):
            summary.skipped_country += 1
            continue

        identifier = engine.resolve(record, registry)
        results[record.row_index] = identifier or ""
        if identifier:
            summary.matched += 1
        else:
            summary.unmatched += 1
        logger.debug(f"Row {record.row_index}: {record.kind.value} '{record.name}' -> {identifier or 'no match'}")

        if position % PROGRESS_EVERY == 0:
            logger.info(f"Matching progress: {position}/{len(records)} rows")

    apply_column(df, layout.result, results)
    logger.info(f"Matching finished: {summary}")
    return summary


def start_enrichment(
    df: pd.DataFrame,
    layout: ColumnLayout,
    properties: KeyValueStore,
    lookup_fn: LookupFn,
    scheduler: FollowUpScheduler,
    time_budget: float,
    follow_up_delay: float,
    resume_params: dict[str, str] | None = None,
    save: Callable[[pd.DataFrame], None] | None = None,
    enricher: CheckpointedEnricher | None = None,
) -> EnrichmentOutcome:
    """Run one enrichment invocation and arrange the next one if needed.

    Secondary codes are written into ``df`` whether or not the run completed,
    then ``save`` (if given) persists the table. Only after that does a
    suspended run schedule a follow-up carrying ``resume_params``; a completed
    run cancels any pending follow-up.

    Raises:
        ConfigurationError: If the identifier column is missing
    """
    enricher = enricher or CheckpointedEnricher()
    rows = enrichment_rows(df, layout)
    outcome = enricher.run(rows, properties, lookup_fn, time_budget)
    apply_column(df, layout.secondary, {row.row_index: row.secondary_code for row in rows})
    if save is not None:
        save(df)

    if outcome.completed:
        scheduler.cancel_all(ENRICH_JOB)
    else:
        scheduler.schedule(ENRICH_JOB, follow_up_delay, params=resume_params)
    return outcome


def stop_enrichment(properties: KeyValueStore, scheduler: FollowUpScheduler) -> None:
    """Forget the enrichment cursor and cancel any pending follow-up.

    An invocation already in flight is not interrupted.
    """
    properties.delete(CURSOR_KEY)
    scheduler.cancel_all(ENRICH_JOB)
    logger.info("Enrichment stopped; cursor cleared")


def clear_cache(cache: ChunkedCache) -> int:
    """Drop the cached registry so the next matching run refetches it."""
    return cache.clear(REGISTRY_CACHE_NAME)


def run_matching_job(
    source: TableSource,
    settings: Settings,
    layout: ColumnLayout,
    overwrite: bool = False,
    services: Services | None = None,
) -> MatchSummary:
    """Load the table, match it, and save it back."""
    services = services or open_services(settings)
    df = source.load()
    with DrugProductClient(base_url=settings.dpd_base_url) as client:
        assembler = RegistryAssembler(client, services.cache, settings.cache_ttl_seconds)
        summary = start_matching(df, layout, assembler, overwrite=overwrite)
    source.save(df)
    return summary


def run_enrichment_job(
    source: TableSource,
    settings: Settings,
    layout: ColumnLayout,
    services: Services | None = None,
) -> EnrichmentOutcome:
    """Load the table, run one enrichment invocation, and save it back.

    Raises:
        ConfigurationError: If the secondary lookup URL is missing or has no placeholder
    """
    if not settings.secondary_lookup_url:
        raise ConfigurationError("SECONDARY_LOOKUP_URL is not set")
    if "{identifier}" not in settings.secondary_lookup_url:
        raise ConfigurationError("SECONDARY_LOOKUP_URL must contain an {identifier} placeholder")
    services = services or open_services(settings)
    df = source.load()
    resume_params = {
        **source.to_params(),
        "result_column": layout.result,
        "secondary_column": layout.secondary,
    }
    with SecondaryCodeClient(settings.secondary_lookup_url) as client:
        outcome = start_enrichment(
            df,
            layout,
            services.properties,
            client.lookup,
            services.scheduler,
            time_budget=settings.time_budget_seconds,
            follow_up_delay=settings.follow_up_delay_seconds,
            resume_params=resume_params,
            save=source.save,
        )
    return outcome
