"""Shared fixtures: an in-memory GBIFService and sample archives."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from pydantic import SecretStr

from occurrence_atlas.schemas import Credentials

# =============================================================================
# Sample API payloads
# =============================================================================

LYNX_KEY = 2435240
PUMA_KEY = 2435099

SAMPLE_SUGGEST_RESPONSE: list[dict[str, Any]] = [
    {"key": LYNX_KEY, "canonicalName": "Lynx lynx", "rank": "SPECIES"},
    {"key": 2435238, "canonicalName": "Lynx", "rank": "GENUS"},
    {"key": 7193927, "canonicalName": "Lynx lynx lynx", "rank": "SUBSPECIES"},
]

SAMPLE_TAXA: list[dict[str, Any]] = [
    {
        "key": LYNX_KEY,
        "scientificName": "Lynx lynx (Linnaeus, 1758)",
        "canonicalName": "Lynx lynx",
        "rank": "SPECIES",
        "parentKey": 2435238,
        "genusKey": 2435238,
        "familyKey": 9703,
        "kingdom": "Animalia",
        "family": "Felidae",
        "genus": "Lynx",
        "vernacularNames": [
            {"vernacularName": "Eurasian Lynx", "language": "eng"},
            {"vernacularName": "lodjur", "language": "swe"},
            {"vernacularName": "Luchs", "language": "deu"},
        ],
    },
    {
        "key": 2435238,
        "canonicalName": "Lynx",
        "rank": "GENUS",
        "parentKey": 9703,
        "familyKey": 9703,
        "family": "Felidae",
        "vernacularNames": [],
    },
    {
        "key": PUMA_KEY,
        "canonicalName": "Puma concolor",
        "rank": "SPECIES",
        "parentKey": 2435098,
        "genusKey": 2435098,
        "familyKey": 9703,
    },
]


def occurrence(key: int, lat: float | None, lon: float | None, **extra: Any) -> dict[str, Any]:
    """A raw /occurrence/search result."""
    names = {LYNX_KEY: "Lynx lynx", PUMA_KEY: "Puma concolor"}
    return {
        "taxonKey": key,
        "species": names.get(key, "Unknown"),
        "decimalLatitude": lat,
        "decimalLongitude": lon,
        **extra,
    }


# =============================================================================
# Fake service
# =============================================================================


class FakeGBIFService:
    """In-memory stand-in for HttpGBIFService."""

    def __init__(self) -> None:
        self.suggestions: list[dict[str, Any]] = list(SAMPLE_SUGGEST_RESPONSE)
        self.taxa: list[dict[str, Any]] = list(SAMPLE_TAXA)
        self.occurrences: dict[int, list[dict[str, Any]]] = {}
        self.download_key = "0012345-261018120000001"
        self.polls: dict[str, list[dict[str, Any]]] = {}
        self.archive_bytes = b"PK-fake-archive"
        self.submitted: list[dict[str, Any]] = []
        self.calls: list[tuple[Any, ...]] = []

    def suggest(self, name: str) -> list[dict[str, Any]]:
        self.calls.append(("suggest", name))
        return list(self.suggestions)

    def lookup(
        self, name: str, rank: str, dataset_key: str | None, limit: int
    ) -> list[dict[str, Any]]:
        self.calls.append(("lookup", name, rank, dataset_key, limit))
        hits = [
            t
            for t in self.taxa
            if t.get("rank") == rank and name.lower() in t.get("canonicalName", "").lower()
        ]
        return hits[:limit]

    def _rows(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        rows = [r for k in params["taxonKey"] for r in self.occurrences.get(k, [])]
        if params.get("hasCoordinate") == "true":
            rows = [
                r
                for r in rows
                if r.get("decimalLatitude") is not None and r.get("decimalLongitude") is not None
            ]
        return rows

    def count(self, params: dict[str, Any]) -> int:
        self.calls.append(("count", params))
        return len(self._rows(params))

    def search(self, params: dict[str, Any], offset: int, limit: int) -> dict[str, Any]:
        self.calls.append(("search", params, offset, limit))
        rows = self._rows(params)
        return {
            "offset": offset,
            "limit": limit,
            "count": len(rows),
            "endOfRecords": offset + limit >= len(rows),
            "results": rows[offset : offset + limit],
        }

    def submit_download(self, request: dict[str, Any], credentials: Credentials) -> str:
        self.calls.append(("submit_download", credentials.user))
        self.submitted.append(request)
        return self.download_key

    def poll_download(self, key: str) -> dict[str, Any]:
        self.calls.append(("poll_download", key))
        responses = self.polls[key]
        return responses.pop(0) if len(responses) > 1 else responses[0]

    def fetch_archive_url(self, key: str) -> str:
        return f"https://api.gbif.test/v1/occurrence/download/request/{key}.zip"

    def stream(self, url: str) -> Iterator[bytes]:
        self.calls.append(("stream", url))
        yield self.archive_bytes


@pytest.fixture
def fake_service() -> FakeGBIFService:
    return FakeGBIFService()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(user="atlas-user", password=SecretStr("hunter2"), email="atlas@example.org")


# =============================================================================
# Archives
# =============================================================================

ARCHIVE_HEADER = [
    "gbifID",
    "taxonKey",
    "species",
    "countryCode",
    "decimalLatitude",
    "decimalLongitude",
    "eventDate",
]


def make_archive(path: Path, rows: list[list[str]], entry: str = "0012345.csv") -> Path:
    """Write a zip holding one tab-separated table with ARCHIVE_HEADER."""
    buf = io.StringIO()
    buf.write("\t".join(ARCHIVE_HEADER) + "\n")
    for row in rows:
        buf.write("\t".join(row) + "\n")
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(entry, buf.getvalue())
    return path


def lynx_rows(n: int) -> list[list[str]]:
    """n well-formed rows around Stockholm, gbifIDs 1..n in file order."""
    return [
        [str(i), str(LYNX_KEY), "Lynx lynx", "SE", f"{59.0 + i / 10:.1f}", f"{18.0 + i / 10:.1f}", "2024-05-01"]
        for i in range(1, n + 1)
    ]
