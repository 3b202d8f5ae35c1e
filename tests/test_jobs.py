"""Tests for the entry-point operations with in-memory collaborators."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from din_resolver.config import Settings
from din_resolver.enrichment import CURSOR_KEY, CheckpointedEnricher
from din_resolver.errors import ConfigurationError, RegistryUnavailable
from din_resolver.jobs import (
    MatchSummary,
    Services,
    clear_cache,
    is_registry_country,
    run_enrichment_job,
    start_enrichment,
    start_matching,
    stop_enrichment,
)
from din_resolver.models import Ingredient, MarketStatus, Registry, RegistryEntry
from din_resolver.registry import REGISTRY_CACHE_NAME
from din_resolver.scheduler import ENRICH_JOB, FollowUpScheduler
from din_resolver.store.chunked_cache import ChunkedCache
from din_resolver.store.kv import InMemoryKeyValueStore
from din_resolver.tabular import ColumnLayout, TableSource, write_tsv


def sample_registry() -> Registry:
    entries = [
        RegistryEntry("02229000", "1", "ADVIL", MarketStatus.MARKETED, [Ingredient("IBUPROFEN", "200 MG")]),
        RegistryEntry(
            "02240000",
            "2",
            "EXFORGE",
            MarketStatus.MARKETED,
            [Ingredient("AMLODIPINE", "5 MG"), Ingredient("VALSARTAN", "160 MG")],
        ),
    ]
    return Registry(entries={e.id: e for e in entries})


def drug_table() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "Type": ["Brand", "Generic", "Brand", "Brand", "Device", "Brand"],
            "Name": ["Advil", "", "Motrin", "Advil", "Glucometer", "Advil"],
            "Ingredients": ["Ibuprofen", "Amlodipine;Valsartan", "Ibuprofen", "Ibuprofen", "", "Ibuprofen"],
            "Strength": ["200 mg", "5mg/160mg", "200 mg", "200 mg", "", "200 mg"],
            "Form": ["Tablet"] * 6,
            "Country": ["CA", "", "Canada", "US", "", "ca"],
            "DIN": ["", "", "", "", "", "99999999"],
        }
    )


def stub_assembler(registry: Registry | None = None) -> MagicMock:
    assembler = MagicMock()
    assembler.load.return_value = registry or sample_registry()
    return assembler


def fixed_clock():
    return 0.0


class TestStartMatching:
    """Tests for start_matching."""

    def test_matches_and_summarizes(self) -> None:
        df = drug_table()
        summary = start_matching(df, ColumnLayout(), stub_assembler())

        assert df["DIN"].tolist() == ["02229000", "02240000", "", "", "", "99999999"]
        assert summary == MatchSummary(
            total_rows=6,
            matched=2,
            unmatched=1,
            skipped_kind=1,
            skipped_existing=1,
            skipped_country=1,
        )
        assert "matched=2" in str(summary)

    def test_overwrite_existing(self) -> None:
        df = drug_table()
        summary = start_matching(df, ColumnLayout(), stub_assembler(), overwrite=True)

        assert df["DIN"].tolist()[5] == "02229000"
        assert summary.skipped_existing == 0

    def test_missing_column_before_fetch(self) -> None:
        df = drug_table().drop(columns=["Form"])
        assembler = stub_assembler()

        with pytest.raises(ConfigurationError):
            start_matching(df, ColumnLayout(), assembler)
        assembler.load.assert_not_called()

    def test_registry_unavailable_propagates(self) -> None:
        df = drug_table()
        assembler = MagicMock()
        assembler.load.side_effect = RegistryUnavailable("products", "HTTP_ERROR: 503")

        with pytest.raises(RegistryUnavailable):
            start_matching(df, ColumnLayout(), assembler)
        assert df["DIN"].tolist()[0] == ""

    def test_creates_result_column(self) -> None:
        df = drug_table().drop(columns=["DIN"])
        start_matching(df, ColumnLayout(result="Matched DIN"), stub_assembler())
        assert df["Matched DIN"].tolist()[0] == "02229000"

    @pytest.mark.parametrize("code,expected", [("", True), ("CA", True), ("can", True), (" Canada ", True), ("US", False)])
    def test_is_registry_country(self, code: str, expected: bool) -> None:
        assert is_registry_country(code) is expected


class TestStartEnrichment:
    """Tests for start_enrichment, stop_enrichment and clear_cache."""

    @pytest.fixture
    def scheduler(self, properties: InMemoryKeyValueStore) -> FollowUpScheduler:
        return FollowUpScheduler(properties)

    def enrichment_table(self) -> pd.DataFrame:
        return pd.DataFrame({"DIN": ["02229000", "", "02240000"]})

    def test_completed_run_writes_and_cancels(
        self, properties: InMemoryKeyValueStore, scheduler: FollowUpScheduler
    ) -> None:
        df = self.enrichment_table()
        scheduler.schedule(ENRICH_JOB, 0)
        saved: list[pd.DataFrame] = []

        outcome = start_enrichment(
            df,
            ColumnLayout(),
            properties,
            lambda identifier: {"matches": {f"AB-{identifier}-1": {"description": "x"}}},
            scheduler,
            time_budget=60,
            follow_up_delay=60,
            save=saved.append,
            enricher=CheckpointedEnricher(clock=fixed_clock),
        )

        assert outcome.completed
        assert df["Secondary Codes"].tolist() == ["AB-02229000: x", "", "AB-02240000: x"]
        assert len(saved) == 1
        assert scheduler.pending(ENRICH_JOB) is None

    def test_suspended_run_saves_then_schedules(
        self, properties: InMemoryKeyValueStore, scheduler: FollowUpScheduler
    ) -> None:
        df = self.enrichment_table()
        readings = iter([0.0, 0.0, 100.0])
        events: list[str] = []

        def save(frame: pd.DataFrame) -> None:
            events.append("save")
            assert scheduler.pending(ENRICH_JOB) is None

        outcome = start_enrichment(
            df,
            ColumnLayout(),
            properties,
            lambda identifier: {"matches": {}},
            scheduler,
            time_budget=50,
            follow_up_delay=60,
            resume_params={"input": "drugs.tsv"},
            save=save,
            enricher=CheckpointedEnricher(clock=lambda: next(readings)),
        )

        assert not outcome.completed
        assert outcome.next_cursor == 1
        assert events == ["save"]
        assert properties.get(CURSOR_KEY) == "1"
        pending = scheduler.pending(ENRICH_JOB)
        assert pending is not None
        assert pending.params == {"input": "drugs.tsv"}
        assert df["Secondary Codes"].tolist() == ["No matches found", "", ""]

    def test_failing_lookup_still_saves(
        self, properties: InMemoryKeyValueStore, scheduler: FollowUpScheduler
    ) -> None:
        df = self.enrichment_table()
        saved: list[pd.DataFrame] = []

        def lookup(identifier: str) -> dict:
            if identifier == "02240000":
                raise KeyError("{}")
            return {"matches": {"AB-12-1": {"description": "x"}}}

        outcome = start_enrichment(
            df,
            ColumnLayout(),
            properties,
            lookup,
            scheduler,
            time_budget=60,
            follow_up_delay=60,
            save=saved.append,
            enricher=CheckpointedEnricher(clock=fixed_clock),
        )

        assert outcome.completed
        assert len(saved) == 1
        assert df["Secondary Codes"].tolist()[0] == "AB-12: x"
        assert df["Secondary Codes"].tolist()[2].startswith("Error: KeyError")

    def test_stop_enrichment(self, properties: InMemoryKeyValueStore, scheduler: FollowUpScheduler) -> None:
        properties.put(CURSOR_KEY, "5")
        scheduler.schedule(ENRICH_JOB, 60)

        stop_enrichment(properties, scheduler)

        assert properties.get(CURSOR_KEY) is None
        assert scheduler.pending(ENRICH_JOB) is None

    def test_clear_cache(self) -> None:
        cache = ChunkedCache(InMemoryKeyValueStore(max_value_size=20))
        cache.store(REGISTRY_CACHE_NAME, {"entries": ["a" * 30]}, max_age=3600)

        assert clear_cache(cache) > 1
        assert cache.load(REGISTRY_CACHE_NAME, max_age=3600).reason == "absent"


class TestRunEnrichmentJob:
    """Tests for the wired enrichment job."""

    def services(self) -> Services:
        properties = InMemoryKeyValueStore()
        return Services(
            cache=ChunkedCache(InMemoryKeyValueStore()),
            properties=properties,
            scheduler=FollowUpScheduler(properties),
        )

    def test_requires_lookup_url(self, tmp_path: Path) -> None:
        path = tmp_path / "drugs.tsv"
        write_tsv(pd.DataFrame({"DIN": ["1"]}), path)

        with pytest.raises(ConfigurationError, match="SECONDARY_LOOKUP_URL"):
            run_enrichment_job(TableSource(input_path=path), Settings(), ColumnLayout(), services=self.services())

    def test_requires_placeholder(self, tmp_path: Path) -> None:
        path = tmp_path / "drugs.tsv"
        write_tsv(pd.DataFrame({"DIN": ["1"]}), path)
        settings = Settings(secondary_lookup_url="https://codes.test/lookup")

        with pytest.raises(ConfigurationError, match="placeholder"):
            run_enrichment_job(TableSource(input_path=path), settings, ColumnLayout(), services=self.services())

    def test_writes_output(self, tmp_path: Path) -> None:
        path = tmp_path / "drugs.tsv"
        out = tmp_path / "out.tsv"
        write_tsv(pd.DataFrame({"DIN": ["02229000", ""]}), path)
        settings = Settings(secondary_lookup_url="https://codes.test/lookup/{identifier}")
        body = {"matches": {"AB-12-1": {"description": "Analgesic"}}}

        with patch("din_resolver.jobs.SecondaryCodeClient") as mock_client_cls:
            mock_client_cls.return_value.__enter__.return_value.lookup.return_value = body
            outcome = run_enrichment_job(
                TableSource(input_path=path, output_path=out), settings, ColumnLayout(), services=self.services()
            )

        assert outcome.completed
        written = pd.read_csv(out, sep="\t", dtype=str, keep_default_na=False)
        assert written["Secondary Codes"].tolist() == ["AB-12: Analgesic", ""]
