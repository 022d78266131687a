"""
GBIF API transport.

``GBIFService`` is the capability interface the clients depend on; it speaks
plain dicts and knows nothing about the domain models.  ``HttpGBIFService``
implements it over the shared ``requests`` session.  Tests substitute a fake.

API docs:
  - Species: https://techdocs.gbif.org/en/openapi/v1/species
  - Occurrence search: https://techdocs.gbif.org/en/openapi/v1/occurrence
  - Downloads: https://techdocs.gbif.org/en/data-use/api-downloads

Nothing here retries.  HTTP failures are translated to ``occurrence_atlas.errors``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Protocol

import requests

from occurrence_atlas.config import get_settings
from occurrence_atlas.errors import GBIFError, NotFound, QuotaExceeded, TransientNetworkError
from occurrence_atlas.services.http import session

if TYPE_CHECKING:
    from occurrence_atlas.schemas import Credentials

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API configuration
# ---------------------------------------------------------------------------
API_BASE = "https://api.gbif.org/v1"
BACKBONE_DATASET_KEY = "d7dddbf4-2cf0-4f39-9b2b-bd5d2ecfc7c4"
MAX_PAGE_SIZE = 300  # /occurrence/search maximum
MAX_OFFSET = 100_000  # offset + limit ceiling for /occurrence/search
CHUNK_SIZE = 1 << 16

_TRANSPORT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


# ---------------------------------------------------------------------------
# Capability interface
# ---------------------------------------------------------------------------


class GBIFService(Protocol):
    """Operations the GBIF clients need from the remote service."""

    def suggest(self, name: str) -> list[dict[str, Any]]: ...

    def lookup(
        self, name: str, rank: str, dataset_key: str | None, limit: int
    ) -> list[dict[str, Any]]: ...

    def count(self, params: dict[str, Any]) -> int: ...

    def search(self, params: dict[str, Any], offset: int, limit: int) -> dict[str, Any]: ...

    def submit_download(self, request: dict[str, Any], credentials: Credentials) -> str: ...

    def poll_download(self, key: str) -> dict[str, Any]: ...

    def fetch_archive_url(self, key: str) -> str: ...

    def stream(self, url: str) -> Iterator[bytes]: ...


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def raise_for_status(resp: requests.Response) -> None:
    """Map a failed response onto the library's exceptions."""
    if resp.ok:
        return
    code = resp.status_code
    detail = f"{code} from {resp.url}"
    if code == 404:
        raise NotFound(f"Not found: {detail}", status_code=code)
    if code == 429:
        raise QuotaExceeded(f"Rate limit exceeded: {detail}", status_code=code)
    if code >= 500:
        raise TransientNetworkError(f"Server error: {detail}", status_code=code)
    if code in (401, 403):
        raise GBIFError(f"Authentication rejected: {detail}", status_code=code)
    raise GBIFError(f"Request failed: {detail}", status_code=code)


# ---------------------------------------------------------------------------
# HTTP implementation
# ---------------------------------------------------------------------------


class HttpGBIFService:
    """``GBIFService`` over HTTPS.

    ``api_base`` defaults to ``Settings.api_base`` (env ``API_BASE``).
    """

    def __init__(self, api_base: str | None = None, http: requests.Session | None = None) -> None:
        self.api_base = (api_base or get_settings().api_base).rstrip("/")
        self.http = http or session

    def _url(self, endpoint: str) -> str:
        return f"{self.api_base}/{endpoint}"

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = self._url(endpoint)
        logger.debug("GET %s params=%s", url, params)
        try:
            resp = self.http.get(url, params=params or {})
        except _TRANSPORT_ERRORS as exc:
            msg = f"GET {url} failed: {exc}"
            raise TransientNetworkError(msg) from exc
        raise_for_status(resp)
        return resp.json()

    # Species --------------------------------------------------------------

    def suggest(self, name: str) -> list[dict[str, Any]]:
        """GET /species/suggest: autocomplete matches for a name."""
        data: list[dict[str, Any]] = self._get("species/suggest", {"q": name})
        return data

    def lookup(
        self, name: str, rank: str, dataset_key: str | None, limit: int
    ) -> list[dict[str, Any]]:
        """GET /species/search: full taxon records for name + rank."""
        params: dict[str, Any] = {"q": name, "rank": rank, "limit": limit}
        if dataset_key:
            params["datasetKey"] = dataset_key
        data = self._get("species/search", params)
        results: list[dict[str, Any]] = data.get("results", [])
        return results

    # Occurrences ----------------------------------------------------------

    def count(self, params: dict[str, Any]) -> int:
        """GET /occurrence/search with ``limit=0``: metadata only."""
        data = self._get("occurrence/search", {**params, "limit": 0})
        return int(data.get("count", 0))

    def search(self, params: dict[str, Any], offset: int, limit: int) -> dict[str, Any]:
        """GET /occurrence/search: one page of records."""
        data: dict[str, Any] = self._get(
            "occurrence/search", {**params, "offset": offset, "limit": limit}
        )
        return data

    # Downloads ------------------------------------------------------------

    def submit_download(self, request: dict[str, Any], credentials: Credentials) -> str:
        """POST /occurrence/download/request: returns the download key."""
        url = self._url("occurrence/download/request")
        logger.debug("POST %s format=%s", url, request.get("format"))
        try:
            resp = self.http.post(
                url,
                json=request,
                auth=(credentials.user, credentials.password.get_secret_value()),
            )
        except _TRANSPORT_ERRORS as exc:
            msg = f"POST {url} failed: {exc}"
            raise TransientNetworkError(msg) from exc
        raise_for_status(resp)
        return resp.text.strip()

    def poll_download(self, key: str) -> dict[str, Any]:
        """GET /occurrence/download/{key}: job metadata and status."""
        data: dict[str, Any] = self._get(f"occurrence/download/{key}")
        return data

    def fetch_archive_url(self, key: str) -> str:
        return self._url(f"occurrence/download/request/{key}.zip")

    def stream(self, url: str) -> Iterator[bytes]:
        """Yield the body of ``url`` in chunks."""
        logger.debug("GET %s (stream)", url)
        try:
            with self.http.get(url, stream=True) as resp:
                raise_for_status(resp)
                yield from resp.iter_content(chunk_size=CHUNK_SIZE)
        except _TRANSPORT_ERRORS as exc:
            msg = f"GET {url} failed: {exc}"
            raise TransientNetworkError(msg) from exc
