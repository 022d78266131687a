"""GBIF (Global Biodiversity Information Facility) data source.

Client-side orchestration of the GBIF API: name resolution, taxon lookup,
bounded occurrence search and asynchronous bulk downloads.  The taxonomy
backbone, search engine and export jobs all run on GBIF's side.

Public API:
  - client: GBIFService (capability interface), HttpGBIFService, constants
  - names: NameResolver
  - taxonomy: TaxonomyClient
  - occurrences: OccurrenceSearchClient
  - downloads: BulkDownloadClient, build_predicate
"""

from occurrence_atlas.datasources.gbif.client import (
    API_BASE,
    BACKBONE_DATASET_KEY,
    GBIFService,
    HttpGBIFService,
)
from occurrence_atlas.datasources.gbif.downloads import BulkDownloadClient, build_predicate
from occurrence_atlas.datasources.gbif.names import NameResolver
from occurrence_atlas.datasources.gbif.occurrences import OccurrenceSearchClient
from occurrence_atlas.datasources.gbif.taxonomy import TaxonomyClient

__all__ = [
    "API_BASE",
    "BACKBONE_DATASET_KEY",
    "BulkDownloadClient",
    "GBIFService",
    "HttpGBIFService",
    "NameResolver",
    "OccurrenceSearchClient",
    "TaxonomyClient",
    "build_predicate",
]
