"""Output map builder: the local side of reconciliation.

Scans the content tree for Markdown files written by earlier runs and
recovers, for each, the page id and the timestamps recorded in its front
matter.

Id resolution order:

1. ``id`` in the front matter.
2. ``NOTION_METADATA.id`` in the front matter.
3. A 32-hex id embedded in the filename (for bundle indexes, in the
   bundle directory name). Logged, since it means the header lost its id.

Files whose id cannot be recovered are logged and left out of the map, so
they are never deleted.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ..converters.front_matter import parse
from ..file_handler import read_file_with_encoding
from ..validators import extract_id_from_filename, normalize_notion_id
from .models import IdSource, OutputEntry, StructuralKind

logger = logging.getLogger(__name__)


class OutputMapBuilder:
    """Build the list of output entries found under a content root.

    Args:
        index_file_names: Filenames that mark a bundle index.
        extension: Extension of output files (``.md``).
    """

    def __init__(
        self,
        index_file_names: frozenset[str] | set[str],
        extension: str = ".md",
    ) -> None:
        self._index_names = frozenset(index_file_names)
        self._extension = extension

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self, content_root: Path) -> list[Path]:
        """Every output-extension file under *content_root*, sorted.

        Uses an explicit stack rather than recursion. Hidden directories
        and files are skipped.
        """
        if not content_root.is_dir():
            return []
        found: list[Path] = []
        stack = [content_root]
        while stack:
            directory = stack.pop()
            for entry in directory.iterdir():
                if entry.name.startswith("."):
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    stack.append(entry)
                elif entry.is_file() and entry.name.endswith(self._extension):
                    found.append(entry)
        return sorted(found)

    def build(self, content_root: Path) -> list[OutputEntry]:
        """Parse every output file under *content_root*.

        Returns an empty list when *content_root* does not exist yet.
        Duplicate ids keep the first file in path order.
        """
        if not content_root.is_dir():
            logger.info(
                "Content directory %s does not exist yet", content_root
            )
            return []

        entries: dict[str, OutputEntry] = {}
        for path in self.discover(content_root):
            entry = self._parse_entry(path, content_root)
            if entry is None:
                continue
            if entry.id in entries:
                logger.warning(
                    "Duplicate id %s in %s (already at %s); ignoring",
                    entry.id,
                    entry.filepath,
                    entries[entry.id].filepath,
                )
                continue
            entries[entry.id] = entry

        logger.info(
            "Output map: %d tracked file(s) under %s",
            len(entries),
            content_root,
        )
        return list(entries.values())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _parse_entry(
        self, path: Path, content_root: Path
    ) -> OutputEntry | None:
        rel = path.relative_to(content_root).as_posix()
        try:
            text, _ = read_file_with_encoding(path)
            fields, _ = parse(text)
        except Exception as exc:
            logger.warning("Failed to parse %s: %s", rel, exc)
            return None

        is_bundle = path.name in self._index_names
        record_id, source = self._resolve_id(fields, path, is_bundle)
        if record_id is None:
            logger.warning("File %s has no recoverable id, skipping", rel)
            return None
        if source is IdSource.FILENAME:
            logger.info(
                "Recovered id %s for %s from its filename", record_id, rel
            )

        return OutputEntry(
            id=record_id,
            filepath=rel,
            last_modified=_first(fields, "last_edited_time", "lastmod"),
            structural_kind=(
                StructuralKind.BUNDLE if is_bundle else StructuralKind.FLAT
            ),
            asset_expiry=_first(fields, "EXPIRY_TIME"),
            last_sync_timestamp=_first(fields, "UPDATE_TIME"),
            id_source=source,
        )

    @staticmethod
    def _resolve_id(
        fields: dict[str, Any], path: Path, is_bundle: bool
    ) -> tuple[str | None, IdSource]:
        record_id = normalize_notion_id(fields.get("id"))
        if record_id:
            return record_id, IdSource.HEADER

        metadata = fields.get("NOTION_METADATA")
        if isinstance(metadata, dict):
            record_id = normalize_notion_id(metadata.get("id"))
            if record_id:
                return record_id, IdSource.METADATA

        name = path.parent.name if is_bundle else path.name
        record_id = extract_id_from_filename(name)
        if record_id is None and is_bundle:
            record_id = extract_id_from_filename(path.name)
        return record_id, IdSource.FILENAME


def _first(fields: dict[str, Any], *keys: str) -> datetime | str | None:
    """First non-empty timestamp among *keys*.

    YAML loads unquoted timestamps as ``datetime`` or ``date`` objects;
    dates are turned back into ISO strings.
    """
    for key in keys:
        value = fields.get(key)
        if not value:
            continue
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return value.isoformat()
        return str(value)
    return None
