"""Free-text name suggestion."""

from __future__ import annotations

from typing import Any

from occurrence_atlas.datasources.gbif.client import GBIFService, HttpGBIFService
from occurrence_atlas.errors import InvalidArgument
from occurrence_atlas.schemas import TaxonMatch, TaxonRank


def _parse_match(result: dict[str, Any]) -> TaxonMatch:
    return TaxonMatch(
        name=result.get("canonicalName") or result.get("scientificName", ""),
        rank=TaxonRank.from_service(result.get("rank")),
        suggested_id=result.get("key"),
    )


class NameResolver:
    """Turns a free-text taxon name into candidate matches with ranks."""

    def __init__(self, service: GBIFService | None = None) -> None:
        self.service = service or HttpGBIFService()

    def suggest(self, name: str) -> list[TaxonMatch]:
        """
        Suggest taxa for a name, in the service's relevance order.

        The order is only meaningful for display; it may change between calls.

        Raises:
            InvalidArgument: If ``name`` is blank.
            TransientNetworkError: On connectivity failure (not retried).
        """
        if not name or not name.strip():
            msg = "name must not be empty"
            raise InvalidArgument(msg)
        return [_parse_match(r) for r in self.service.suggest(name.strip())]
