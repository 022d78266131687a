"""Occurrence Atlas - a thin client for GBIF taxonomy and occurrence data.

Architecture::

    datasources/gbif/  GBIF API (name suggestion, taxon lookup, search, bulk downloads)
    recordset.py       Immutable occurrence tables: NaN filtering, bounding boxes, archives
    palette.py         Per-species marker colors for map renderers
    store.py           Local cache for search results and download archives
    flows/             Prefect orchestration (bounded search, bulk download)
    services/          Shared utilities (HTTP session with default timeout)

Data flow: NameResolver → TaxonomyClient → OccurrenceSearchClient (bounded)
or BulkDownloadClient (large, citable) → RecordSet → your map renderer.
"""

__version__ = "0.1.0"

from occurrence_atlas.config import Settings, get_settings
from occurrence_atlas.datasources.gbif import (
    BulkDownloadClient,
    NameResolver,
    OccurrenceSearchClient,
    TaxonomyClient,
)
from occurrence_atlas.recordset import ArchiveLoad, RecordSet
from occurrence_atlas.schemas import (
    BoundingBox,
    DownloadJob,
    DownloadStatus,
    OccurrenceRecord,
    ReturnMode,
    SearchQuery,
    TaxonMatch,
    TaxonRank,
    TaxonRecord,
)

__all__ = [
    "ArchiveLoad",
    "BoundingBox",
    "BulkDownloadClient",
    "DownloadJob",
    "DownloadStatus",
    "NameResolver",
    "OccurrenceRecord",
    "OccurrenceSearchClient",
    "RecordSet",
    "ReturnMode",
    "SearchQuery",
    "Settings",
    "TaxonMatch",
    "TaxonRank",
    "TaxonRecord",
    "TaxonomyClient",
    "__version__",
    "get_settings",
]
