"""Bounded occurrence search and count probes."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from occurrence_atlas.datasources.gbif.client import (
    MAX_OFFSET,
    MAX_PAGE_SIZE,
    GBIFService,
    HttpGBIFService,
)
from occurrence_atlas.errors import InvalidArgument
from occurrence_atlas.schemas import OccurrenceRecord, ReturnMode, SearchQuery

logger = logging.getLogger(__name__)


def query_params(query: SearchQuery, taxon_keys: list[int] | None = None) -> dict[str, Any]:
    """Translate a SearchQuery into /occurrence/search parameters.

    ``has_coordinate=False`` means "don't filter on coordinates", not
    "only records without coordinates".
    """
    params: dict[str, Any] = {"taxonKey": taxon_keys or query.taxon_keys}
    if query.has_coordinate:
        params["hasCoordinate"] = "true"
    if query.country:
        params["country"] = query.country
    return params


class OccurrenceSearchClient:
    """Counts and retrieves occurrence records for one or more taxa.

    Always ``count`` before retrieving: occurrence counts reach into the
    millions, and anything beyond a few thousand rows belongs to
    ``BulkDownloadClient`` instead.
    """

    def __init__(self, service: GBIFService | None = None) -> None:
        self.service = service or HttpGBIFService()

    def count(self, query: SearchQuery) -> int:
        """
        Number of records matching ``query``; no rows are transferred.

        A set of taxon keys is sent in one request and the combined count
        is returned.

        Raises:
            QuotaExceeded: Unauthenticated rate limit hit.
            TransientNetworkError: On transport failure.
        """
        total = self.service.count(query_params(query))
        logger.info("Count for taxa %s: %d", query.taxon_keys, total)
        return total

    def search(
        self, query: SearchQuery
    ) -> list[OccurrenceRecord] | dict[int, list[OccurrenceRecord]]:
        """
        Retrieve up to ``query.limit`` records, paging as needed.

        A single taxon key yields a list.  A set of keys is partitioned: one
        bounded search per key, returned as ``{taxon_key: records}`` with each
        list holding at most ``query.limit`` records.

        Raises:
            InvalidArgument: If ``query.return_mode`` is COUNT.
            QuotaExceeded: Unauthenticated rate limit hit.
            TransientNetworkError: On transport failure.
        """
        if query.return_mode is ReturnMode.COUNT:
            msg = "search() needs return_mode=DATA; use count() for COUNT queries"
            raise InvalidArgument(msg)
        if query.is_multi:
            return {key: self._search_one(query, [key]) for key in query.taxon_keys}
        return self._search_one(query, query.taxon_keys)

    def _search_one(self, query: SearchQuery, taxon_keys: list[int]) -> list[OccurrenceRecord]:
        params = query_params(query, taxon_keys)
        records: list[OccurrenceRecord] = []
        offset = 0
        invalid = 0

        while len(records) < query.limit:
            page_size = min(MAX_PAGE_SIZE, query.limit - len(records))
            if offset + page_size > MAX_OFFSET:
                logger.warning(
                    "Stopped paging taxa %s at offset %d; use a bulk download for more",
                    taxon_keys,
                    offset,
                )
                break

            page = self.service.search(params, offset=offset, limit=page_size)
            results: list[dict[str, Any]] = page.get("results", [])
            for raw in results[:page_size]:
                try:
                    records.append(OccurrenceRecord.model_validate(raw))
                except ValidationError:
                    invalid += 1

            if not results or page.get("endOfRecords", True):
                break
            offset += len(results)

        if invalid:
            logger.warning("Skipped %d malformed records for taxa %s", invalid, taxon_keys)
        logger.info("Retrieved %d records for taxa %s", len(records), taxon_keys)
        return records[: query.limit]
