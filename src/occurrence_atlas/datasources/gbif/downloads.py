"""
Asynchronous bulk downloads.

GBIF compiles bulk exports server-side over minutes, so this path is a job:

    submit() -> DownloadJob(PENDING)
    poll_status() ... -> DownloadJob(RUNNING) ... -> DownloadJob(SUCCEEDED | FAILED)
    fetch_archive()   -> <destination>/<request_key>.zip
    citation()        -> "GBIF.org (YYYY-MM-DD) GBIF Occurrence Download https://doi.org/..."

It is not interchangeable with ``OccurrenceSearchClient.search``, which is
synchronous and bounded.  A FAILED job is reported as-is; resubmitting is
up to the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from occurrence_atlas.datasources.gbif.client import GBIFService, HttpGBIFService
from occurrence_atlas.errors import InvalidArgument, MissingCredentials, MissingDoi, NotReady
from occurrence_atlas.schemas import Credentials, DownloadJob, DownloadStatus, SearchQuery
from occurrence_atlas.store import DataStore

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "SIMPLE_CSV"
DOWNLOAD_FORMATS = ("SIMPLE_CSV", "DWCA", "SPECIES_LIST")
DEFAULT_POLL_INTERVAL = 30.0  # seconds
DOI_RESOLVER = "https://doi.org/"


# =============================================================================
# Predicate building
# =============================================================================


def build_predicate(query: SearchQuery) -> dict[str, Any]:
    """Translate a SearchQuery into a download predicate (``and`` of filters)."""
    if query.is_multi:
        taxon: dict[str, Any] = {
            "type": "in",
            "key": "TAXON_KEY",
            "values": [str(k) for k in query.taxon_keys],
        }
    else:
        taxon = {"type": "equals", "key": "TAXON_KEY", "value": str(query.taxon_key)}

    predicates: list[dict[str, Any]] = [taxon]
    if query.has_coordinate:
        predicates.append({"type": "equals", "key": "HAS_COORDINATE", "value": "true"})
    if query.country:
        predicates.append({"type": "equals", "key": "COUNTRY", "value": query.country})
    return {"type": "and", "predicates": predicates}


def build_request(
    query: SearchQuery, credentials: Credentials, fmt: str = DEFAULT_FORMAT
) -> dict[str, Any]:
    """Request body for POST /occurrence/download/request."""
    return {
        "creator": credentials.user,
        "notificationAddresses": [credentials.email],
        "sendNotification": True,
        "format": fmt,
        "predicate": build_predicate(query),
    }


# =============================================================================
# Client
# =============================================================================


class BulkDownloadClient:
    """Submits, polls, fetches and cites GBIF bulk downloads.

    Credentials are passed in explicitly (see ``Settings.credentials()``);
    they are read on each submission and never logged.
    """

    def __init__(
        self,
        service: GBIFService | None = None,
        credentials: Credentials | None = None,
    ) -> None:
        self.service = service or HttpGBIFService()
        self.credentials = credentials

    def submit(self, query: SearchQuery, fmt: str = DEFAULT_FORMAT) -> DownloadJob:
        """
        Submit an export job for ``query``.

        Raises:
            MissingCredentials: If the client has no credentials.
            InvalidArgument: If ``fmt`` is not a known download format.
        """
        if self.credentials is None:
            msg = "Bulk downloads need GBIF credentials (GBIF_USER, GBIF_PWD, GBIF_EMAIL)"
            raise MissingCredentials(msg)
        if fmt not in DOWNLOAD_FORMATS:
            msg = f"Unknown download format {fmt!r}; expected one of {DOWNLOAD_FORMATS}"
            raise InvalidArgument(msg)

        request = build_request(query, self.credentials, fmt)
        key = self.service.submit_download(request, self.credentials)
        logger.info("Submitted download %s for taxa %s", key, query.taxon_keys)
        return DownloadJob(
            request_key=key,
            status=DownloadStatus.PENDING,
            submitted_at=datetime.now(UTC),
        )

    def poll_status(self, job: DownloadJob) -> DownloadJob:
        """
        Fetch the job's current status and return an updated copy.

        Raises:
            InvalidTransition: If the service reports a status that cannot
                follow the job's current one.
            GBIFError: If the service reports a status outside its vocabulary.
        """
        meta = self.service.poll_download(job.request_key)
        status = DownloadStatus.from_remote(str(meta.get("status", "")))
        updated = job.advance(
            status,
            citation_doi=meta.get("doi") or job.citation_doi,
            download_link=meta.get("downloadLink") or job.download_link,
            total_records=meta.get("totalRecords", job.total_records),
        )
        if updated.status is not job.status:
            logger.info("Download %s: %s -> %s", job.request_key, job.status, updated.status)
        return updated

    def wait(
        self,
        job: DownloadJob,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> DownloadJob:
        """
        Poll until the job reaches SUCCEEDED or FAILED.

        Raises:
            TimeoutError: If ``timeout`` seconds pass first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            job = self.poll_status(job)
            if job.status.is_terminal:
                return job
            if deadline is not None and time.monotonic() + interval > deadline:
                msg = f"Download {job.request_key} still {job.status} after {timeout}s"
                raise TimeoutError(msg)
            sleep(interval)

    def fetch_archive(self, job: DownloadJob, destination: Path | str) -> Path:
        """
        Save the job's archive as ``<destination>/<request_key>.zip``.

        An archive already present for the same key is returned untouched;
        archives are immutable once fetched.

        Raises:
            NotReady: If the job has not SUCCEEDED. Nothing is written.
        """
        if job.status is not DownloadStatus.SUCCEEDED:
            msg = f"Download {job.request_key} is {job.status}, not SUCCEEDED"
            raise NotReady(msg)

        store = DataStore(Path(destination))
        relative = Path(f"{job.request_key}.zip")
        existing = store.file_path(relative)
        if existing is not None:
            logger.info("Archive for %s already at %s", job.request_key, existing)
            return existing

        url = job.download_link or self.service.fetch_archive_url(job.request_key)
        path = store.write_stream(
            relative,
            self.service.stream(url),
            source="gbif.org",
            request_key=job.request_key,
            doi=job.citation_doi,
            total_records=job.total_records,
        )
        logger.info("Saved archive for %s to %s", job.request_key, path)
        return path

    @staticmethod
    def citation(job: DownloadJob, today: date | None = None) -> str:
        """
        Citation for the job's data, embedding its DOI and the access date.

        Raises:
            MissingDoi: If the job has no DOI yet.
        """
        if not job.citation_doi:
            msg = f"Download {job.request_key} has no DOI yet (status {job.status})"
            raise MissingDoi(msg)
        doi = job.citation_doi.removeprefix(DOI_RESOLVER)
        accessed = (today or date.today()).isoformat()
        return f"GBIF.org ({accessed}) GBIF Occurrence Download {DOI_RESOLVER}{doi}"
