"""
Prefect flows for the GBIF walkthrough.

- search_flow:   name → taxon → count → bounded search → cached JSON
- download_flow: name → taxon → bulk download job → archive → RecordSet + citation

Retries live on the tasks, not in the clients: the library surfaces transient
errors and this module decides to try again.  Download submission is a POST
and is never retried.

Run locally:
    python -m occurrence_atlas.flows.occurrences "Puma concolor"
"""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from prefect import flow, task

from occurrence_atlas.config import get_settings
from occurrence_atlas.datasources.gbif import (
    BulkDownloadClient,
    HttpGBIFService,
    OccurrenceSearchClient,
    TaxonomyClient,
)
from occurrence_atlas.errors import EmptySet
from occurrence_atlas.recordset import RecordSet
from occurrence_atlas.schemas import DownloadJob, DownloadStatus, ReturnMode, SearchQuery, TaxonRecord
from occurrence_atlas.store import DataStore

# Data store with searches/ and downloads/ tiers
store = DataStore(get_settings().data_dir)

SEARCH_TTL = timedelta(hours=24)


def search_path(
    taxon_key: int, country: str | None, limit: int, has_coordinate: bool = True
) -> Path:
    """Store path for a cached bounded search, one file per distinct query."""
    coords = "" if has_coordinate else "_any"
    return Path("searches") / f"{taxon_key}_{(country or 'all').upper()}_n{limit}{coords}.json"


# =============================================================================
# Client factories (patched in tests)
# =============================================================================


def _service() -> HttpGBIFService:
    return HttpGBIFService(api_base=get_settings().api_base)


def taxonomy_client() -> TaxonomyClient:
    return TaxonomyClient(_service())


def search_client() -> OccurrenceSearchClient:
    return OccurrenceSearchClient(_service())


def download_client() -> BulkDownloadClient:
    return BulkDownloadClient(_service(), credentials=get_settings().credentials())


# =============================================================================
# Tasks
# =============================================================================


@task(name="resolve-taxon", retries=2, retry_delay_seconds=5)
def resolve_taxon(name: str, rank: str = "SPECIES", taxonomy_id: str | None = None) -> TaxonRecord:
    """Look up the taxon record for a scientific name."""
    return taxonomy_client().lookup(name, rank, taxonomy_id=taxonomy_id)


@task(name="count-occurrences", retries=2, retry_delay_seconds=5)
def count_occurrences(query: SearchQuery) -> int:
    """Metadata-only probe before retrieving anything."""
    return search_client().count(query.model_copy(update={"return_mode": ReturnMode.COUNT}))


@task(name="search-occurrences", retries=2, retry_delay_seconds=5)
def search_occurrences(query: SearchQuery) -> list[dict[str, Any]]:
    """Bounded search, returned as JSON-ready dicts (GBIF field names)."""
    found = search_client().search(query)
    records = found if isinstance(found, list) else [r for rs in found.values() for r in rs]
    return [r.model_dump(mode="json", by_alias=True) for r in records]


@task(name="save-search")
def save_search(
    path: Path,
    records: list[dict[str, Any]],
    taxon: TaxonRecord,
    total: int,
    query: SearchQuery,
) -> Path:
    """Save search results via store, with the query that produced them."""
    return store.write(
        path,
        records,
        source="gbif.org",
        valid_until=datetime.now(UTC) + SEARCH_TTL,
        taxon_key=taxon.id,
        taxon_name=taxon.name,
        total_count=total,
        country=query.country,
        limit=query.limit,
        has_coordinate=query.has_coordinate,
    )


@task(name="submit-download")
def submit_download(query: SearchQuery) -> DownloadJob:
    """Submit a bulk export. Not retried: each call creates a new job."""
    return download_client().submit(query)


@task(name="wait-download", retries=2, retry_delay_seconds=30)
def wait_download(
    job: DownloadJob, interval: float = 60.0, timeout: float | None = None
) -> DownloadJob:
    """Poll until the export succeeds or fails."""
    return download_client().wait(job, interval=interval, timeout=timeout)


@task(name="fetch-archive", retries=2, retry_delay_seconds=10)
def fetch_archive(job: DownloadJob) -> Path:
    """Fetch the archive into the store's downloads/ tier."""
    return download_client().fetch_archive(job, store.downloads)


def _bbox_dict(records: RecordSet) -> dict[str, float] | None:
    try:
        return records.bounding_box().model_dump()
    except EmptySet:
        return None


# =============================================================================
# Flows
# =============================================================================


@flow(name="occurrence-search", log_prints=True)
def search_flow(
    name: str,
    rank: str = "SPECIES",
    country: str | None = None,
    limit: int = 300,
    taxonomy_id: str | None = None,
    has_coordinate: bool = True,
) -> dict[str, Any]:
    """
    Resolve a name, count its occurrences, and cache a bounded sample.

    Skips the search when a fresh cached result exists for the same taxon,
    country, limit and coordinate filter.
    """
    taxon = resolve_taxon(name, rank, taxonomy_id)
    print(f"Resolved {name!r} to {taxon.rank} {taxon.name} (key {taxon.id})")

    query = SearchQuery(
        taxon_key=taxon.id, country=country, limit=limit, has_coordinate=has_coordinate
    )
    total = count_occurrences(query)
    print(f"{total} occurrences match")

    path = search_path(taxon.id, country, limit, has_coordinate)
    if store.is_fresh(path):
        print(f"Search results for {taxon.id} are fresh, skipping search.")
        raw = store.read(path) or []
        output = store.base / path
    else:
        raw = search_occurrences(query)
        output = save_search(path, raw, taxon, total, query)
        print(f"Saved {len(raw)} records to {output}")

    records = RecordSet.load(raw)
    located = records.drop_missing_coordinates()
    return {
        "taxon_key": taxon.id,
        "name": taxon.name,
        "total": total,
        "retrieved": len(records),
        "with_coordinates": len(located),
        "bounding_box": _bbox_dict(located),
        "path": str(output),
    }


@flow(name="occurrence-download", log_prints=True)
def download_flow(
    name: str,
    rank: str = "SPECIES",
    country: str | None = None,
    poll_interval: float = 60.0,
    timeout: float | None = None,
    max_rows: int | None = None,
) -> dict[str, Any]:
    """
    Resolve a name, run a bulk download, and load the resulting archive.

    A FAILED job is reported in the result; nothing is resubmitted.
    """
    taxon = resolve_taxon(name, rank)
    query = SearchQuery(taxon_key=taxon.id, country=country)

    job = submit_download(query)
    print(f"Submitted download {job.request_key} for {taxon.name}")
    job = wait_download(job, interval=poll_interval, timeout=timeout)

    result: dict[str, Any] = {
        "taxon_key": taxon.id,
        "request_key": job.request_key,
        "status": job.status.value,
        "doi": job.citation_doi,
    }
    if job.status is not DownloadStatus.SUCCEEDED:
        print(f"Download {job.request_key} finished as {job.status}")
        return result

    archive = fetch_archive(job)
    loaded = RecordSet.load_from_archive(archive, max_rows=max_rows)
    located = loaded.records.drop_missing_coordinates()
    print(f"Loaded {len(loaded.records)} records ({loaded.skipped} skipped) from {archive}")

    result.update(
        {
            "archive": str(archive),
            "records": len(loaded.records),
            "skipped": loaded.skipped,
            "with_coordinates": len(located),
            "bounding_box": _bbox_dict(located),
            "citation": BulkDownloadClient.citation(job) if job.citation_doi else None,
        }
    )
    return result


if __name__ == "__main__":
    summary = search_flow(" ".join(sys.argv[1:]) or "Puma concolor")
    print(f"Flow complete: {summary}")
