"""
Prefect flows for the occurrence pipeline.

Flows:
- occurrences.search_flow: resolve a name, count, cache a bounded search
- occurrences.download_flow: resolve a name, run a bulk download, load the archive

Usage (local):
    python -m occurrence_atlas.flows.occurrences "Puma concolor"

Usage (Prefect dashboard):
    prefect server start  # flow runs show up once a server is running
"""
