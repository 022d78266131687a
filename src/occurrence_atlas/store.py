"""Local data store for search results and download archives.

Two tiers under one base directory:
  - searches/: JSON results of bounded searches, expiring after a TTL
  - downloads/: bulk-download archives, immutable once written

JSON results are wrapped in a ``{"meta": ..., "data": ...}`` envelope.
Archives stay zip files; their metadata (request key, DOI, size) goes in a
``<name>.meta.json`` sidecar.  Either way ``meta.valid_until`` decides
whether ``is_fresh`` lets a flow skip the request.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

ENVELOPE_INDENT = 2


def _sidecar(full: Path) -> Path:
    return full.with_name(full.name + ".meta.json")


def _dump(path: Path, payload: dict[str, Any]) -> None:
    path.write_text(json.dumps(payload, indent=ENVELOPE_INDENT, default=str))


class DataStore:
    """Files under ``base_dir``, each carrying fetch metadata."""

    def __init__(self, base_dir: Path) -> None:
        self.base = base_dir
        self.searches = base_dir / "searches"
        self.downloads = base_dir / "downloads"

    # -- paths --------------------------------------------------------------

    def _resolve(self, path: Path) -> Path:
        """Absolute location of ``path``; refuses anything outside the base."""
        full = path if path.is_absolute() else self.base / path
        if not full.resolve().is_relative_to(self.base.resolve()):
            msg = f"Path escapes store base directory: {path}"
            raise ValueError(msg)
        return full

    def file_path(self, path: Path) -> Path | None:
        """Location of a stored file, or None when nothing is there yet."""
        full = self._resolve(path)
        return full if full.is_file() else None

    # -- JSON envelopes -----------------------------------------------------

    def write(
        self,
        path: Path,
        data: Any,
        source: str,
        valid_until: datetime | None = None,
        **params: Any,
    ) -> Path:
        """Write ``data`` inside a metadata envelope.

        Args:
            path: Relative path under base_dir (e.g. ``searches/2435240_SE_n300.json``).
            data: Anything JSON-serialisable; other values go through ``str``.
            source: Where the data came from (e.g. ``"gbif.org"``).
            valid_until: Expiry timestamp. None means never fresh.
            **params: Extra metadata (taxon key, total count, ...).

        Returns:
            Absolute path of the written file.
        """
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        _dump(full, {"meta": self._meta(source, valid_until, params), "data": data})
        return full

    def read(self, path: Path) -> Any:
        """Payload of an envelope (a bare JSON file is returned whole), or None."""
        full = self._resolve(path)
        if not full.is_file():
            return None
        content = json.loads(full.read_text())
        if isinstance(content, dict) and "data" in content:
            return content["data"]
        return content

    # -- binary files -------------------------------------------------------

    def write_stream(
        self,
        path: Path,
        chunks: Iterable[bytes],
        source: str,
        valid_until: datetime | None = None,
        **params: Any,
    ) -> Path:
        """Store streamed bytes at ``path`` and describe them in a sidecar.

        Bytes land in ``<name>.part`` and are renamed once the stream ends,
        so a broken transfer never shows up under the final name.

        Returns:
            Absolute path of the stored file.
        """
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        partial = full.with_name(full.name + ".part")

        size = 0
        try:
            with partial.open("wb") as out:
                for chunk in chunks:
                    out.write(chunk)
                    size += len(chunk)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(full)

        meta = self._meta(source, valid_until, params)
        meta["size_bytes"] = size
        _dump(_sidecar(full), {"meta": meta})
        return full

    # -- metadata -----------------------------------------------------------

    @staticmethod
    def _meta(source: str, valid_until: datetime | None, params: dict[str, Any]) -> dict[str, Any]:
        meta: dict[str, Any] = {"source": source, "fetched_at": datetime.now(UTC).isoformat()}
        if valid_until is not None:
            meta["valid_until"] = valid_until.isoformat()
        return {**meta, **params}

    def read_meta(self, path: Path) -> dict[str, Any]:
        """Sidecar metadata if present, else the envelope's; ``{}`` for neither."""
        full = self._resolve(path)
        for candidate in (_sidecar(full), full):
            if candidate.suffix != ".json" or not candidate.is_file():
                continue
            content = json.loads(candidate.read_text())
            if isinstance(content, dict) and isinstance(content.get("meta"), dict):
                return content["meta"]
        return {}

    def is_fresh(self, path: Path) -> bool:
        """True while the stored file exists and its ``valid_until`` lies ahead.

        A naive timestamp is read as UTC.
        """
        if self.file_path(path) is None:
            return False
        raw = self.read_meta(path).get("valid_until")
        if raw is None:
            return False
        expiry = datetime.fromisoformat(raw)
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        return expiry > datetime.now(UTC)
