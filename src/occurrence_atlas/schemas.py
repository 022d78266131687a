"""
Domain models for occurrence_atlas.

Pydantic models for data from the GBIF API and local processing.
These define the canonical schema - the GBIF clients normalize API responses
to these.  Every model is frozen: polling, filtering and lookups always
produce new values.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from occurrence_atlas.errors import GBIFError, InvalidArgument, InvalidTransition

# =============================================================================
# Taxonomy
# =============================================================================


class TaxonRank(StrEnum):
    """Rank vocabulary accepted by the GBIF species search."""

    CLASS = "CLASS"
    CULTIVAR = "CULTIVAR"
    CULTIVAR_GROUP = "CULTIVAR_GROUP"
    DOMAIN = "DOMAIN"
    FAMILY = "FAMILY"
    FORM = "FORM"
    GENUS = "GENUS"
    INFORMAL = "INFORMAL"
    INFRAGENERIC_NAME = "INFRAGENERIC_NAME"
    INFRAORDER = "INFRAORDER"
    INFRASPECIFIC_NAME = "INFRASPECIFIC_NAME"
    INFRASUBSPECIFIC_NAME = "INFRASUBSPECIFIC_NAME"
    KINGDOM = "KINGDOM"
    ORDER = "ORDER"
    PHYLUM = "PHYLUM"
    SECTION = "SECTION"
    SERIES = "SERIES"
    SPECIES = "SPECIES"
    STRAIN = "STRAIN"
    SUBCLASS = "SUBCLASS"
    SUBFAMILY = "SUBFAMILY"
    SUBFORM = "SUBFORM"
    SUBGENUS = "SUBGENUS"
    SUBKINGDOM = "SUBKINGDOM"
    SUBORDER = "SUBORDER"
    SUBPHYLUM = "SUBPHYLUM"
    SUBSECTION = "SUBSECTION"
    SUBSERIES = "SUBSERIES"
    SUBSPECIES = "SUBSPECIES"
    SUBTRIBE = "SUBTRIBE"
    SUBVARIETY = "SUBVARIETY"
    SUPERCLASS = "SUPERCLASS"
    SUPERFAMILY = "SUPERFAMILY"
    SUPERORDER = "SUPERORDER"
    SUPERPHYLUM = "SUPERPHYLUM"
    SUPRAGENERIC_NAME = "SUPRAGENERIC_NAME"
    TRIBE = "TRIBE"
    UNRANKED = "UNRANKED"
    VARIETY = "VARIETY"

    @classmethod
    def parse(cls, value: str | TaxonRank) -> TaxonRank:
        """Parse a caller-supplied rank, case-insensitively.

        Raises:
            InvalidArgument: If the value is not part of the vocabulary.
        """
        if isinstance(value, TaxonRank):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            msg = f"Unknown taxon rank: {value!r}"
            raise InvalidArgument(msg) from None

    @classmethod
    def from_service(cls, value: str | None) -> TaxonRank:
        """Map a rank returned by the service, falling back to UNRANKED."""
        if not value:
            return cls.UNRANKED
        try:
            return cls(value.upper())
        except ValueError:
            return cls.UNRANKED


class TaxonMatch(BaseModel):
    """A candidate match from name suggestion. Used only to pick a rank."""

    model_config = ConfigDict(frozen=True)

    name: str
    rank: TaxonRank
    suggested_id: int | None = None


class TaxonRecord(BaseModel):
    """A canonical taxon from the GBIF taxonomy.

    ``id`` is the only stable join key; names are not unique.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="GBIF taxon (usage) key")
    name: str
    rank: TaxonRank
    parent_id: int | None = None
    genus_id: int | None = None
    family_id: int | None = None
    kingdom: str | None = None
    family: str | None = None
    genus: str | None = None
    vernacular_names: tuple[tuple[str, str], ...] = ()


# =============================================================================
# Occurrences
# =============================================================================


class OccurrenceRecord(BaseModel):
    """A single occurrence row.

    Accepts GBIF's camelCase keys (``taxonKey``, ``decimalLatitude``...) as
    well as the snake_case field names.  Any other attribute of the row is
    kept as an extra and exposed through ``attributes``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    taxon_key: int = Field(..., alias="taxonKey")
    species: str = ""
    decimal_latitude: float | None = Field(default=None, alias="decimalLatitude")
    decimal_longitude: float | None = Field(default=None, alias="decimalLongitude")

    @field_validator("species", mode="before")
    @classmethod
    def _none_species(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("decimal_latitude", "decimal_longitude", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        # Tab-separated exports leave missing coordinates as empty strings
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates are set to finite values on the globe.

        NaN, infinities and out-of-range values count as missing.
        """
        lat, lon = self.decimal_latitude, self.decimal_longitude
        if lat is None or lon is None:
            return False
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        return -90 <= lat <= 90 and -180 <= lon <= 180

    @property
    def attributes(self) -> dict[str, Any]:
        """Open-ended extra attributes (eventDate, gbifID, ...)."""
        return dict(self.model_extra or {})


class ReturnMode(StrEnum):
    """Whether a search returns only a count or the rows themselves."""

    COUNT = "count"
    DATA = "data"


class SearchQuery(BaseModel):
    """Filter predicates for an occurrence search or bulk download."""

    model_config = ConfigDict(frozen=True)

    taxon_key: int | frozenset[int]
    country: str | None = Field(default=None, min_length=2, max_length=2)
    has_coordinate: bool = True
    limit: int = Field(default=300, ge=0)
    return_mode: ReturnMode = ReturnMode.DATA

    @field_validator("country")
    @classmethod
    def _upper_country(cls, v: str | None) -> str | None:
        return v.upper() if v else v

    @field_validator("taxon_key")
    @classmethod
    def _non_empty_keys(cls, v: int | frozenset[int]) -> int | frozenset[int]:
        if isinstance(v, frozenset) and not v:
            msg = "taxon_key set must not be empty"
            raise ValueError(msg)
        return v

    @property
    def taxon_keys(self) -> list[int]:
        """Taxon keys as a sorted list (one element for a single key)."""
        if isinstance(self.taxon_key, frozenset):
            return sorted(self.taxon_key)
        return [self.taxon_key]

    @property
    def is_multi(self) -> bool:
        return isinstance(self.taxon_key, frozenset)


# =============================================================================
# Bulk downloads
# =============================================================================


class DownloadStatus(StrEnum):
    """Lifecycle of an asynchronous bulk export."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @classmethod
    def from_remote(cls, value: str) -> DownloadStatus:
        """Collapse GBIF's download statuses onto the four lifecycle states."""
        status = _REMOTE_STATUS.get(value.upper())
        if status is None:
            msg = f"Unknown download status from service: {value!r}"
            raise GBIFError(msg)
        return status

    @property
    def is_terminal(self) -> bool:
        return self in (DownloadStatus.SUCCEEDED, DownloadStatus.FAILED)

    def can_become(self, new: DownloadStatus) -> bool:
        """Whether a poll may report ``new`` after this status."""
        return new in _ALLOWED_TRANSITIONS[self]


_REMOTE_STATUS: dict[str, DownloadStatus] = {
    "PREPARING": DownloadStatus.PENDING,
    "SUSPENDED": DownloadStatus.PENDING,
    "PENDING": DownloadStatus.PENDING,
    "RUNNING": DownloadStatus.RUNNING,
    "SUCCEEDED": DownloadStatus.SUCCEEDED,
    "CANCELLED": DownloadStatus.FAILED,
    "KILLED": DownloadStatus.FAILED,
    "FAILED": DownloadStatus.FAILED,
    "FILE_ERASED": DownloadStatus.FAILED,
}

# Polling can miss RUNNING entirely, so PENDING may jump straight to a
# terminal state.  Terminal states only repeat themselves.
_ALLOWED_TRANSITIONS: dict[DownloadStatus, frozenset[DownloadStatus]] = {
    DownloadStatus.PENDING: frozenset(DownloadStatus),
    DownloadStatus.RUNNING: frozenset(
        {DownloadStatus.RUNNING, DownloadStatus.SUCCEEDED, DownloadStatus.FAILED}
    ),
    DownloadStatus.SUCCEEDED: frozenset({DownloadStatus.SUCCEEDED}),
    DownloadStatus.FAILED: frozenset({DownloadStatus.FAILED}),
}


class DownloadJob(BaseModel):
    """A submitted bulk export, identified by its request key."""

    model_config = ConfigDict(frozen=True)

    request_key: str = Field(..., min_length=1)
    status: DownloadStatus = DownloadStatus.PENDING
    citation_doi: str | None = None
    submitted_at: datetime | None = None
    download_link: str | None = None
    total_records: int | None = None

    def advance(self, status: DownloadStatus, **changes: Any) -> DownloadJob:
        """Return a copy in ``status``, enforcing the lifecycle.

        Raises:
            InvalidTransition: If ``status`` cannot follow the current one.
        """
        if not self.status.can_become(status):
            msg = f"Download {self.request_key}: {self.status} -> {status} is not allowed"
            raise InvalidTransition(msg)
        return self.model_copy(update={"status": status, **changes})


class Credentials(BaseModel):
    """GBIF account used to authenticate download submissions."""

    model_config = ConfigDict(frozen=True)

    user: str = Field(..., min_length=1)
    password: SecretStr
    email: str = Field(..., min_length=3)


# =============================================================================
# Geographic
# =============================================================================


class BoundingBox(BaseModel):
    """Extent of a set of occurrence coordinates, in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    min_lon: float = Field(..., ge=-180, le=180)
    max_lon: float = Field(..., ge=-180, le=180)
    min_lat: float = Field(..., ge=-90, le=90)
    max_lat: float = Field(..., ge=-90, le=90)

    @property
    def center(self) -> tuple[float, float]:
        """(lat, lon) midpoint, handy for centering a map view."""
        return ((self.min_lat + self.max_lat) / 2, (self.min_lon + self.max_lon) / 2)
