"""In-memory occurrence tables with geometry cleaning.

A ``RecordSet`` never changes after construction.  Filtering returns a new
set, so the unfiltered original stays available for auditing how many rows
were dropped and why.
"""

from __future__ import annotations

import csv
import logging
import zipfile
from collections import Counter
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

from pydantic import ValidationError

from occurrence_atlas.errors import EmptySet, InvalidArgument
from occurrence_atlas.schemas import BoundingBox, OccurrenceRecord

if TYPE_CHECKING:
    from occurrence_atlas.palette import SpeciesStyle

logger = logging.getLogger(__name__)

# Entry names GBIF uses: "<key>.csv" for SIMPLE_CSV, "occurrence.txt" for DWCA
DWCA_OCCURRENCE_ENTRY = "occurrence.txt"
_TABLE_SUFFIXES = (".csv", ".txt")


class ArchiveLoad(NamedTuple):
    """Result of ``RecordSet.load_from_archive``."""

    records: RecordSet
    skipped: int


class RecordSet:
    """An ordered, immutable sequence of occurrence records."""

    __slots__ = ("_records",)

    def __init__(self, records: Iterable[OccurrenceRecord] = ()) -> None:
        self._records: tuple[OccurrenceRecord, ...] = tuple(records)

    @classmethod
    def load(cls, rows: Iterable[OccurrenceRecord | dict[str, Any]]) -> RecordSet:
        """Build a set from records or raw GBIF result dicts."""
        return cls(
            row if isinstance(row, OccurrenceRecord) else OccurrenceRecord.model_validate(row)
            for row in rows
        )

    # -- sequence protocol --------------------------------------------------

    @property
    def records(self) -> tuple[OccurrenceRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[OccurrenceRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> OccurrenceRecord:
        return self._records[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecordSet):
            return NotImplemented
        return self._records == other._records

    def __hash__(self) -> int:
        return hash(self._records)

    def __repr__(self) -> str:
        return f"RecordSet({len(self._records)} records)"

    # -- geometry -----------------------------------------------------------

    def drop_missing_coordinates(self) -> RecordSet:
        """Copy keeping only the records for which ``has_coordinates`` holds."""
        kept = [r for r in self._records if r.has_coordinates]
        dropped = len(self._records) - len(kept)
        if dropped:
            logger.debug("Dropped %d of %d records without coordinates", dropped, len(self))
        return RecordSet(kept)

    def coordinates(self) -> list[tuple[float, float]]:
        """(lon, lat) pairs of records with valid coordinates."""
        return [
            (r.decimal_longitude, r.decimal_latitude)  # type: ignore[misc]
            for r in self._records
            if r.has_coordinates
        ]

    def bounding_box(self) -> BoundingBox:
        """
        Extent of all valid coordinates; records without them are ignored.

        Raises:
            EmptySet: If no record has valid coordinates.
        """
        coords = self.coordinates()
        if not coords:
            msg = f"No valid coordinates among {len(self)} records"
            raise EmptySet(msg)
        lons = [lon for lon, _ in coords]
        lats = [lat for _, lat in coords]
        return BoundingBox(min_lon=min(lons), max_lon=max(lons), min_lat=min(lats), max_lat=max(lats))

    # -- summaries ----------------------------------------------------------

    def species_counts(self) -> dict[str, int]:
        """Record count per species name, most common first."""
        return dict(Counter(r.species for r in self._records).most_common())

    def to_geojson(
        self, name: str = "occurrences", palette: dict[str, SpeciesStyle] | None = None
    ) -> dict[str, Any]:
        """
        GeoJSON FeatureCollection of the records with valid coordinates.

        With a palette (see ``palette.build_species_palette``), each feature
        also carries ``marker-color`` for its species.
        """
        features: list[dict[str, Any]] = []
        for record in self._records:
            if not record.has_coordinates:
                continue
            properties: dict[str, Any] = {
                "taxonKey": record.taxon_key,
                "species": record.species,
                **{k: v for k, v in record.attributes.items() if _is_scalar(v)},
            }
            if palette and record.species in palette:
                properties["marker-color"] = palette[record.species].color
            features.append(
                {
                    "type": "Feature",
                    "properties": properties,
                    "geometry": {
                        "type": "Point",
                        "coordinates": [record.decimal_longitude, record.decimal_latitude],
                    },
                }
            )
        return {
            "type": "FeatureCollection",
            "name": name.replace(" ", "_"),
            "crs": {"type": "name", "properties": {"name": "urn:ogc:def:crs:OGC:1.3:CRS84"}},
            "features": features,
        }

    # -- archives -----------------------------------------------------------

    @classmethod
    def load_from_archive(
        cls,
        path: Path | str,
        entry_name: str | None = None,
        max_rows: int | None = None,
    ) -> ArchiveLoad:
        """
        Parse the tab-separated occurrence table inside a zip archive.

        ``max_rows`` truncates: reading stops after that many data rows, in
        file order.  The result is the head of the file, not a statistical
        sample.  Malformed rows (wrong column count, invalid values, bytes
        that are not UTF-8, fields over the csv size limit) count towards
        ``max_rows``, are skipped, and are reported in ``ArchiveLoad.skipped``.

        Args:
            path: Zip file, e.g. from ``BulkDownloadClient.fetch_archive``.
            entry_name: Table inside the zip.  Defaults to ``occurrence.txt``
                when present, else the first ``.csv``/``.txt`` entry.
            max_rows: Maximum data rows to read; None reads everything.

        Raises:
            InvalidArgument: Negative ``max_rows``, no such entry, or an
                unreadable header line.
        """
        if max_rows is not None and max_rows < 0:
            msg = f"max_rows must be >= 0, got {max_rows}"
            raise InvalidArgument(msg)

        records: list[OccurrenceRecord] = []
        skipped = 0
        read = 0
        with zipfile.ZipFile(path) as archive:
            entry = entry_name or _default_entry(archive)
            if entry not in archive.namelist():
                msg = f"No entry {entry!r} in {path}"
                raise InvalidArgument(msg)

            with archive.open(entry) as raw:
                first = raw.readline()
                if not first:
                    return ArchiveLoad(cls(), 0)
                try:
                    header = _split_row(first)
                except (UnicodeDecodeError, csv.Error) as exc:
                    msg = f"Unreadable header in {path}:{entry}: {exc}"
                    raise InvalidArgument(msg) from exc

                # Rows are decoded one at a time so a bad byte costs one row
                for line in raw:
                    if max_rows is not None and read >= max_rows:
                        break
                    try:
                        row = _split_row(line)
                    except (UnicodeDecodeError, csv.Error):
                        read += 1
                        skipped += 1
                        continue
                    if not row:
                        continue
                    read += 1
                    if len(row) != len(header):
                        skipped += 1
                        continue
                    try:
                        records.append(OccurrenceRecord.model_validate(dict(zip(header, row))))
                    except ValidationError:
                        skipped += 1

        if skipped:
            logger.warning("Skipped %d malformed rows of %d read from %s", skipped, read, path)
        logger.info("Loaded %d records from %s:%s", len(records), Path(path).name, entry)
        return ArchiveLoad(cls(records), skipped)


def _split_row(line: bytes) -> list[str]:
    """Decode one UTF-8 line and split it on tabs (no quoting in GBIF exports)."""
    text = line.decode("utf-8").rstrip("\r\n")
    return next(csv.reader([text], delimiter="\t", quoting=csv.QUOTE_NONE), [])


def _default_entry(archive: zipfile.ZipFile) -> str:
    names = archive.namelist()
    if DWCA_OCCURRENCE_ENTRY in names:
        return DWCA_OCCURRENCE_ENTRY
    for name in names:
        if name.lower().endswith(_TABLE_SUFFIXES):
            return name
    msg = f"No tab-separated table in archive (entries: {names})"
    raise InvalidArgument(msg)


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, str | int | float | bool)
