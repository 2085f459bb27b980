"""Asset index persistence layer.

Manages the JSON sidecar (``.metadata.json`` in the asset directory) that
maps each asset's content identity to the copies downloaded for each page
that embeds it:

    {"<content_id>": {"<owner>": {"local_path": ..., "content_hash": ...,
                                  "last_fetched": ..., "owner_id": ...}}}

``<owner>`` is the compact (dash-free) owner id. Files written before an
identity could have several owners hold the record directly under the
content id; ``load()`` still reads that shape.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Byte hashing** -- ``bytes_hash()`` is a SHA-256 over the raw file
  bytes, so integrity checks do not depend on text decoding.
* **Loaded once** -- the index is read at the start of a run and written
  back after every mutation.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from ..validators import compact_id
from .models import AssetRecord

logger = logging.getLogger(__name__)

INDEX_FILENAME = ".metadata.json"


class AssetIndex:
    """Load, save and query the asset sidecar index.

    Args:
        path: Location of the sidecar file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._records: dict[str, dict[str, AssetRecord]] = {}

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load the index from disk.

        A missing file gives an empty index. A corrupt file is logged and
        also treated as empty; the next ``save()`` replaces it.
        """
        self._records = {}
        if not self._path.exists():
            return
        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(
                "Asset index %s is unreadable (%s); starting empty",
                self._path,
                exc,
            )
            return
        if not isinstance(data, dict):
            logger.warning(
                "Asset index %s has non-dict root; starting empty",
                self._path,
            )
            return
        for content_id, raw in data.items():
            if not isinstance(raw, dict):
                continue
            # Single-owner layout: the record sits directly under the id
            owned = [raw] if "local_path" in raw else list(raw.values())
            for item in owned:
                if not isinstance(item, dict):
                    continue
                try:
                    self.update(AssetRecord(content_id=content_id, **item))
                except (TypeError, ValidationError) as exc:
                    logger.warning(
                        "Dropping malformed asset record %s: %s",
                        content_id,
                        exc,
                    )

    def save(self) -> None:
        """Persist the index to disk atomically.

        Writes to a temporary file in the same directory then atomically
        replaces the target. Creates the parent directory if needed.
        """
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        payload = {
            content_id: {
                owner: record.model_dump(exclude={"content_id"})
                for owner, record in sorted(owned.items())
            }
            for content_id, owned in sorted(self._records.items())
            if owned
        }

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self._path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    def get(self, content_id: str, owner_id: str) -> AssetRecord | None:
        """Return *owner_id*'s record for *content_id*, or ``None``."""
        return self._records.get(content_id, {}).get(compact_id(owner_id))

    def owners(self, content_id: str) -> list[AssetRecord]:
        """Every owner's record for *content_id*, ordered by owner."""
        owned = self._records.get(content_id, {})
        return [owned[k] for k in sorted(owned)]

    def update(self, record: AssetRecord) -> None:
        """Upsert *record* under its ``content_id`` and owner."""
        owned = self._records.setdefault(record.content_id, {})
        owned[compact_id(record.owner_id)] = record

    def remove(self, content_id: str, owner_id: str | None = None) -> None:
        """Remove one owner's record, or every record when *owner_id* is
        ``None``. No-op if not present.
        """
        if owner_id is None:
            self._records.pop(content_id, None)
            return
        owned = self._records.get(content_id)
        if owned is None:
            return
        owned.pop(compact_id(owner_id), None)
        if not owned:
            del self._records[content_id]

    def entries(self) -> list[AssetRecord]:
        """All records, ordered by content id then owner."""
        return [
            record
            for content_id in sorted(self._records)
            for record in self.owners(content_id)
        ]

    def references(self, path: Path, root: Path) -> bool:
        """Return ``True`` if any record's ``local_path`` resolves to *path*.

        Relative ``local_path`` values are taken against *root*.
        """
        target = path.resolve()
        for record in self.entries():
            local = Path(record.local_path)
            if not local.is_absolute():
                local = root / local
            if local.resolve() == target:
                return True
        return False

    def __len__(self) -> int:
        return sum(len(owned) for owned in self._records.values())

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._records

    # ------------------------------------------------------------------
    # Content hashing
    # ------------------------------------------------------------------

    @staticmethod
    def bytes_hash(path: Path) -> str:
        """Compute the SHA-256 hex digest of the file at *path*."""
        digest = hashlib.sha256()
        with open(path, "rb") as fh:
            for chunk in iter(lambda: fh.read(65536), b""):
                digest.update(chunk)
        return digest.hexdigest()
