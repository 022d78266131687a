"""Taxon lookup by name and rank."""

from __future__ import annotations

import logging
from typing import Any

from occurrence_atlas.datasources.gbif.client import GBIFService, HttpGBIFService
from occurrence_atlas.errors import InvalidArgument, NotFound
from occurrence_atlas.schemas import TaxonRank, TaxonRecord

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_LIMIT = 20

# =============================================================================
# Parsing
# =============================================================================


def _parse_vernacular(entries: list[dict[str, Any]] | None) -> tuple[tuple[str, str], ...]:
    """(language, name) pairs in service order; entries without a name are dropped."""
    pairs: list[tuple[str, str]] = []
    for entry in entries or []:
        name = entry.get("vernacularName")
        if name:
            pairs.append((entry.get("language") or "", name))
    return tuple(pairs)


def _parse_taxon(result: dict[str, Any]) -> TaxonRecord:
    """Parse a /species/search result into a TaxonRecord."""
    return TaxonRecord(
        id=result["key"],
        name=result.get("canonicalName") or result.get("scientificName", ""),
        rank=TaxonRank.from_service(result.get("rank")),
        parent_id=result.get("parentKey"),
        genus_id=result.get("genusKey"),
        family_id=result.get("familyKey"),
        kingdom=result.get("kingdom"),
        family=result.get("family"),
        genus=result.get("genus"),
        vernacular_names=_parse_vernacular(result.get("vernacularNames")),
    )


# =============================================================================
# Client
# =============================================================================


class TaxonomyClient:
    """Fetches canonical taxon records with ancestor keys and vernacular names."""

    def __init__(self, service: GBIFService | None = None) -> None:
        self.service = service or HttpGBIFService()

    def lookup(
        self,
        name: str,
        rank: TaxonRank | str,
        taxonomy_id: str | None = None,
        limit: int = DEFAULT_LOOKUP_LIMIT,
    ) -> TaxonRecord:
        """
        Look up one taxon by name and rank.

        When several records match, the first in the service's ranking is
        returned.  Pass ``limit=1`` to make that explicit.

        Args:
            name: Scientific name to search for.
            rank: A ``TaxonRank`` or its name (case-insensitive).
            taxonomy_id: Checklist dataset key, e.g. ``BACKBONE_DATASET_KEY``.
                None searches every checklist.
            limit: Maximum candidates requested from the service.

        Raises:
            InvalidArgument: Unknown rank, blank name, or ``limit < 1``.
            NotFound: Nothing matches name + rank.
        """
        if not name or not name.strip():
            msg = "name must not be empty"
            raise InvalidArgument(msg)
        if limit < 1:
            msg = f"limit must be at least 1, got {limit}"
            raise InvalidArgument(msg)
        parsed_rank = TaxonRank.parse(rank)

        results = self.service.lookup(name.strip(), parsed_rank.value, taxonomy_id, limit)
        if not results:
            msg = f"No {parsed_rank.value.lower()} named {name!r}"
            raise NotFound(msg)
        if len(results) > 1:
            logger.debug("%d matches for %s %r; using the first", len(results), parsed_rank, name)
        return _parse_taxon(results[0])

    @staticmethod
    def vernacular_names(record: TaxonRecord) -> list[tuple[str, str]]:
        """(language, name) pairs already carried by ``record``; no request."""
        return list(record.vernacular_names)
