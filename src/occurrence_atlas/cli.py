"""
Command-line interface for the application.

This module provides the main entry point for the CLI.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from occurrence_atlas import __version__
from occurrence_atlas.config import configure_logging, get_settings
from occurrence_atlas.datasources.gbif import (
    BulkDownloadClient,
    HttpGBIFService,
    NameResolver,
    OccurrenceSearchClient,
    TaxonomyClient,
)
from occurrence_atlas.errors import GBIFError
from occurrence_atlas.flows.occurrences import search_flow
from occurrence_atlas.palette import build_species_palette
from occurrence_atlas.recordset import RecordSet
from occurrence_atlas.schemas import DownloadJob, ReturnMode, SearchQuery, TaxonRank


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="occurrence-atlas",
        description="Resolve taxa and retrieve GBIF occurrence records",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("info", help="Show application info")

    suggest_parser = subparsers.add_parser("suggest", help="Suggest taxa for a name")
    suggest_parser.add_argument("name", help="Free-text taxon name")

    lookup_parser = subparsers.add_parser("lookup", help="Look up a taxon by name and rank")
    lookup_parser.add_argument("name", help="Scientific name")
    lookup_parser.add_argument(
        "--rank",
        default=TaxonRank.SPECIES.value,
        help="Taxon rank (default: SPECIES)",
    )
    lookup_parser.add_argument("--taxonomy-id", default=None, help="Checklist dataset key")
    lookup_parser.add_argument("--limit", type=int, default=20, help="Candidates to request")

    for command, help_text in (
        ("count", "Count occurrences for taxon keys"),
        ("search", "Retrieve a bounded page of occurrences"),
    ):
        p = subparsers.add_parser(command, help=help_text)
        _add_query_arguments(p)
        if command == "search":
            p.add_argument("--limit", type=int, default=300, help="Maximum records (default: 300)")
            p.add_argument("--geojson", type=Path, default=None, help="Write a GeoJSON file")

    download_parser = subparsers.add_parser("download", help="Bulk download jobs")
    download_sub = download_parser.add_subparsers(dest="download_command")
    submit_parser = download_sub.add_parser("submit", help="Submit a download job")
    _add_query_arguments(submit_parser)
    submit_parser.add_argument("--format", default="SIMPLE_CSV", help="Download format")
    for command, help_text in (
        ("status", "Show a download job's status"),
        ("fetch", "Fetch a finished download's archive"),
        ("cite", "Print the citation for a finished download"),
    ):
        p = download_sub.add_parser(command, help=help_text)
        p.add_argument("key", help="Download request key")
        if command == "fetch":
            p.add_argument("--dest", type=Path, default=None, help="Destination directory")

    refresh_parser = subparsers.add_parser(
        "refresh", help="Resolve a name and cache a bounded search"
    )
    refresh_parser.add_argument("name", help="Scientific name")
    refresh_parser.add_argument("--rank", default=TaxonRank.SPECIES.value)
    refresh_parser.add_argument("--country", default=None)
    refresh_parser.add_argument("--limit", type=int, default=300)
    refresh_parser.add_argument(
        "--any-coordinates",
        action="store_true",
        help="Include records without coordinates",
    )

    return parser


def _add_query_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("taxon_keys", type=int, nargs="+", help="GBIF taxon key(s)")
    parser.add_argument("--country", default=None, help="ISO 3166 alpha-2 country code")
    parser.add_argument(
        "--any-coordinates",
        action="store_true",
        help="Include records without coordinates",
    )


def _query(args: argparse.Namespace, mode: ReturnMode = ReturnMode.DATA) -> SearchQuery:
    keys: list[int] = args.taxon_keys
    return SearchQuery(
        taxon_key=keys[0] if len(keys) == 1 else frozenset(keys),
        country=args.country,
        has_coordinate=not args.any_coordinates,
        limit=getattr(args, "limit", 0),
        return_mode=mode,
    )


def _service() -> HttpGBIFService:
    return HttpGBIFService(api_base=get_settings().api_base)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_info(_args: argparse.Namespace) -> int:
    """Handle the 'info' command."""
    settings = get_settings()
    print(f"Application: {settings.app_name}")
    print(f"Version: {__version__}")
    print(f"Environment: {settings.app_env}")
    print(f"API: {settings.api_base}")
    print(f"Data dir: {settings.data_dir}")
    print(f"Credentials: {'configured' if settings.credentials() else 'not configured'}")
    return 0


def cmd_suggest(args: argparse.Namespace) -> int:
    """Handle the 'suggest' command."""
    for match in NameResolver(_service()).suggest(args.name):
        key = match.suggested_id if match.suggested_id is not None else "-"
        print(f"{key}\t{match.rank}\t{match.name}")
    return 0


def cmd_lookup(args: argparse.Namespace) -> int:
    """Handle the 'lookup' command."""
    record = TaxonomyClient(_service()).lookup(
        args.name, args.rank, taxonomy_id=args.taxonomy_id, limit=args.limit
    )
    _print_json(record.model_dump(mode="json"))
    return 0


def cmd_count(args: argparse.Namespace) -> int:
    """Handle the 'count' command."""
    print(OccurrenceSearchClient(_service()).count(_query(args, ReturnMode.COUNT)))
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    """Handle the 'search' command."""
    found = OccurrenceSearchClient(_service()).search(_query(args))
    groups = found if isinstance(found, dict) else {args.taxon_keys[0]: found}

    all_records = RecordSet([r for records in groups.values() for r in records])
    for key, records in groups.items():
        print(f"{key}: {len(records)} records")

    located = all_records.drop_missing_coordinates()
    if len(located):
        bbox = located.bounding_box()
        print(
            f"Extent: lon [{bbox.min_lon}, {bbox.max_lon}], lat [{bbox.min_lat}, {bbox.max_lat}]"
        )

    if args.geojson is not None:
        palette = build_species_palette(located.species_counts())
        geojson = located.to_geojson(name="occurrences", palette=palette)
        args.geojson.parent.mkdir(parents=True, exist_ok=True)
        args.geojson.write_text(json.dumps(geojson))
        print(f"Wrote {len(geojson['features'])} features to {args.geojson}")
    return 0


def cmd_download(args: argparse.Namespace) -> int:
    """Handle the 'download' subcommands."""
    settings = get_settings()
    client = BulkDownloadClient(_service(), credentials=settings.credentials())

    if args.download_command == "submit":
        job = client.submit(_query(args), fmt=args.format)
        print(job.request_key)
        return 0
    if args.download_command is None:
        print("Specify a download command: submit, status, fetch, cite", file=sys.stderr)
        return 1

    job = client.poll_status(DownloadJob(request_key=args.key))
    if args.download_command == "status":
        _print_json(job.model_dump(mode="json"))
    elif args.download_command == "fetch":
        dest = args.dest or settings.data_dir / "downloads"
        print(client.fetch_archive(job, dest))
    else:
        print(client.citation(job))
    return 0


def cmd_refresh(args: argparse.Namespace) -> int:
    """Handle the 'refresh' command: run the search flow for one name."""
    summary = search_flow(
        args.name,
        rank=args.rank,
        country=args.country,
        limit=args.limit,
        has_coordinate=not args.any_coordinates,
    )
    _print_json(summary)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.debug else None)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "info": cmd_info,
        "suggest": cmd_suggest,
        "lookup": cmd_lookup,
        "count": cmd_count,
        "search": cmd_search,
        "download": cmd_download,
        "refresh": cmd_refresh,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except (GBIFError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
