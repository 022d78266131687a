"""
Tests for the occurrence search and download flows.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from conftest import LYNX_KEY, FakeGBIFService, lynx_rows, make_archive, occurrence

from occurrence_atlas.datasources.gbif import (
    BulkDownloadClient,
    OccurrenceSearchClient,
    TaxonomyClient,
)
from occurrence_atlas.errors import MissingCredentials
from occurrence_atlas.flows import occurrences
from occurrence_atlas.schemas import DownloadJob, DownloadStatus, SearchQuery
from occurrence_atlas.store import DataStore

if TYPE_CHECKING:
    from pathlib import Path

    from occurrence_atlas.schemas import Credentials


@pytest.fixture
def wired(
    fake_service: FakeGBIFService,
    credentials: Credentials,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> FakeGBIFService:
    """Point the flow module at a temp store and the in-memory service."""
    fake_service.occurrences = {
        LYNX_KEY: [occurrence(LYNX_KEY, 59.0 + i / 10, 18.0, gbifID=str(i)) for i in range(20)]
        + [occurrence(LYNX_KEY, None, None, gbifID="x")]
    }
    monkeypatch.setattr(occurrences, "store", DataStore(tmp_path))
    monkeypatch.setattr(occurrences, "taxonomy_client", lambda: TaxonomyClient(fake_service))
    monkeypatch.setattr(occurrences, "search_client", lambda: OccurrenceSearchClient(fake_service))
    monkeypatch.setattr(
        occurrences, "download_client", lambda: BulkDownloadClient(fake_service, credentials)
    )
    return fake_service


class TestSearchPath:
    def test_with_country(self) -> None:
        assert str(occurrences.search_path(5, "se", 300)) == "searches/5_SE_n300.json"

    def test_without_country(self) -> None:
        assert str(occurrences.search_path(5, None, 10)) == "searches/5_ALL_n10.json"

    def test_without_coordinate_filter(self) -> None:
        path = occurrences.search_path(5, "SE", 10, has_coordinate=False)
        assert str(path) == "searches/5_SE_n10_any.json"

    def test_distinct_queries_distinct_paths(self) -> None:
        paths = {
            occurrences.search_path(5, "SE", 15),
            occurrences.search_path(5, "SE", 3),
            occurrences.search_path(5, "SE", 3, has_coordinate=False),
        }
        assert len(paths) == 3


class TestTasks:
    """Tasks called directly, outside a flow run."""

    def test_resolve_taxon(self, wired: FakeGBIFService) -> None:
        taxon = occurrences.resolve_taxon("Lynx lynx")
        assert taxon.id == LYNX_KEY

    def test_count_occurrences(self, wired: FakeGBIFService) -> None:
        assert occurrences.count_occurrences(SearchQuery(taxon_key=LYNX_KEY)) == 20

    def test_search_occurrences_returns_gbif_field_names(self, wired: FakeGBIFService) -> None:
        rows = occurrences.search_occurrences(SearchQuery(taxon_key=LYNX_KEY, limit=3))
        assert len(rows) == 3
        assert rows[0]["taxonKey"] == LYNX_KEY
        assert rows[0]["decimalLatitude"] == 59.0
        assert rows[0]["gbifID"] == "0"

    def test_save_search(self, wired: FakeGBIFService, tmp_path: Path) -> None:
        taxon = occurrences.resolve_taxon("Lynx lynx")
        query = SearchQuery(taxon_key=taxon.id, country="SE", limit=7)
        path = occurrences.save_search(
            occurrences.search_path(taxon.id, "SE", 7), [{"taxonKey": 1}], taxon, 42, query
        )
        assert path == tmp_path / "searches" / f"{LYNX_KEY}_SE_n7.json"
        saved = json.loads(path.read_text())
        assert saved["meta"]["source"] == "gbif.org"
        assert saved["meta"]["taxon_key"] == LYNX_KEY
        assert saved["meta"]["total_count"] == 42
        assert saved["meta"]["limit"] == 7
        assert saved["meta"]["has_coordinate"] is True
        assert "valid_until" in saved["meta"]
        assert saved["data"] == [{"taxonKey": 1}]

    def test_fetch_archive_into_downloads_tier(
        self, wired: FakeGBIFService, tmp_path: Path
    ) -> None:
        job = DownloadJob(
            request_key="k1", status=DownloadStatus.SUCCEEDED, citation_doi="10.15468/x"
        )
        path = occurrences.fetch_archive(job)
        assert path == tmp_path / "downloads" / "k1.zip"


class TestSearchFlow:
    """Name → count → bounded search → cache."""

    def test_search_flow(self, wired: FakeGBIFService, tmp_path: Path) -> None:
        summary = occurrences.search_flow.fn("Lynx lynx", limit=10)

        assert summary["taxon_key"] == LYNX_KEY
        assert summary["name"] == "Lynx lynx"
        assert summary["total"] == 20
        assert summary["retrieved"] == 10
        assert summary["with_coordinates"] == 10
        assert summary["bounding_box"]["min_lat"] == 59.0
        assert summary["path"] == str(tmp_path / "searches" / f"{LYNX_KEY}_ALL_n10.json")

    def test_fresh_cache_skips_search(self, wired: FakeGBIFService) -> None:
        occurrences.search_flow.fn("Lynx lynx", limit=10)
        searches_before = len([c for c in wired.calls if c[0] == "search"])

        summary = occurrences.search_flow.fn("Lynx lynx", limit=10)

        assert len([c for c in wired.calls if c[0] == "search"]) == searches_before
        assert summary["retrieved"] == 10

    def test_smaller_limit_not_served_from_larger_cache(self, wired: FakeGBIFService) -> None:
        occurrences.search_flow.fn("Lynx lynx", limit=15)

        summary = occurrences.search_flow.fn("Lynx lynx", limit=3)

        assert summary["retrieved"] == 3
        assert summary["path"].endswith(f"{LYNX_KEY}_ALL_n3.json")

    def test_coordinate_filter_part_of_cache_key(self, wired: FakeGBIFService) -> None:
        filtered = occurrences.search_flow.fn("Lynx lynx", limit=30)
        unfiltered = occurrences.search_flow.fn("Lynx lynx", limit=30, has_coordinate=False)

        assert filtered["retrieved"] == 20
        assert unfiltered["retrieved"] == 21
        assert unfiltered["with_coordinates"] == 20
        assert filtered["path"] != unfiltered["path"]


class TestDownloadFlow:
    """Name → bulk download → archive → records + citation."""

    def test_download_flow(self, wired: FakeGBIFService, tmp_path: Path) -> None:
        archive = make_archive(tmp_path / "source.zip", lynx_rows(8))
        wired.archive_bytes = archive.read_bytes()
        wired.polls[wired.download_key] = [
            {"status": "PREPARING"},
            {"status": "RUNNING"},
            {"status": "SUCCEEDED", "doi": "10.15468/dl.abc123", "totalRecords": 8},
        ]

        result = occurrences.download_flow.fn("Lynx lynx", poll_interval=0, max_rows=5)

        assert result["status"] == "SUCCEEDED"
        assert result["request_key"] == wired.download_key
        assert result["archive"] == str(tmp_path / "downloads" / f"{wired.download_key}.zip")
        assert result["records"] == 5
        assert result["skipped"] == 0
        assert result["with_coordinates"] == 5
        assert "10.15468/dl.abc123" in result["citation"]

    def test_failed_download_reported(self, wired: FakeGBIFService, tmp_path: Path) -> None:
        wired.polls[wired.download_key] = [{"status": "KILLED"}]

        result = occurrences.download_flow.fn("Lynx lynx", poll_interval=0)

        assert result["status"] == "FAILED"
        assert "archive" not in result
        assert not (tmp_path / "downloads").exists()
        assert len([c for c in wired.calls if c[0] == "submit_download"]) == 1

    def test_download_needs_credentials(
        self, wired: FakeGBIFService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(occurrences, "download_client", lambda: BulkDownloadClient(wired))
        with pytest.raises(MissingCredentials):
            occurrences.download_flow.fn("Lynx lynx", poll_interval=0)
