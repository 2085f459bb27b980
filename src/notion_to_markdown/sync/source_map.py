"""Source map builder: the remote side of reconciliation.

Collects every page under the configured database and page mounts into
``SourceRecord`` objects. One unreachable database never stops the others;
its id is kept in ``failed_collections`` so the engine can hold back
deletions under that mount's folder.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Protocol

from ..config_schema import DatabaseMount, PageMount, PublishConfig
from ..converters.properties import get_page_title
from ..validators import normalize_notion_id
from .classifier import should_process
from .models import CollectionKind, SourceRecord

logger = logging.getLogger(__name__)


class SourceClient(Protocol):
    """The subset of ``NotionClient`` the builder needs."""

    def iter_database(self, database_id: str) -> Iterator[dict[str, Any]]: ...

    def retrieve_page(self, page_id: str) -> dict[str, Any]: ...


class SourceMapBuilder:
    """Build the list of source records for one run.

    Args:
        client: Remote content source. Retries are the client's concern.
        publish: Rules feeding ``SourceRecord.should_process``.
    """

    def __init__(self, client: SourceClient, publish: PublishConfig) -> None:
        self._client = client
        self._publish = publish
        self.failed_collections: list[str] = []

    def build(
        self,
        database_mounts: Iterable[DatabaseMount],
        page_mounts: Iterable[PageMount],
    ) -> list[SourceRecord]:
        """Query every mount and return unique source records.

        Database pagination is drained fully before moving on. Duplicate
        ids keep their first occurrence.
        """
        self.failed_collections = []
        records: dict[str, SourceRecord] = {}

        for mount in database_mounts:
            logger.info("Building source map for database %s", mount.database_id)
            try:
                pages = list(self._client.iter_database(mount.database_id))
            except Exception as exc:
                logger.error(
                    "Failed to query database %s: %s", mount.database_id, exc
                )
                self.failed_collections.append(mount.database_id)
                continue
            for page in pages:
                record = self._to_record(
                    page,
                    origin=mount.database_id,
                    kind="database",
                    target_folder=mount.target_folder,
                    content_type=mount.content_type,
                )
                if record is not None:
                    self._add(records, record)

        for mount in page_mounts:
            logger.info("Building source map for page %s", mount.page_id)
            try:
                page = self._client.retrieve_page(mount.page_id)
            except Exception as exc:
                logger.error(
                    "Failed to retrieve page %s: %s", mount.page_id, exc
                )
                record_id = normalize_notion_id(mount.page_id)
                if record_id is None:
                    continue
                # No payload: existing output for this page stays untouched
                self._add(
                    records,
                    SourceRecord(
                        id=record_id,
                        origin_collection=mount.page_id,
                        collection_kind="page",
                        content_type=mount.content_type,
                        target_folder=mount.target_folder,
                        should_process=True,
                        raw_payload=None,
                    ),
                )
                continue
            record = self._to_record(
                page,
                origin=mount.page_id,
                kind="page",
                target_folder=mount.target_folder,
                content_type=mount.content_type,
            )
            if record is not None:
                self._add(records, record)

        logger.info(
            "Source map: %d record(s), %d failed collection(s)",
            len(records),
            len(self.failed_collections),
        )
        return list(records.values())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _to_record(
        self,
        page: dict[str, Any],
        origin: str,
        kind: CollectionKind,
        target_folder: str,
        content_type: str | None,
    ) -> SourceRecord | None:
        if page.get("object") != "page":
            return None
        record_id = normalize_notion_id(page.get("id"))
        if record_id is None:
            logger.warning("Skipping page with invalid id %r", page.get("id"))
            return None
        archived = bool(page.get("archived") or page.get("in_trash"))
        return SourceRecord(
            id=record_id,
            title=get_page_title(page),
            last_modified=page.get("last_edited_time"),
            origin_collection=origin,
            collection_kind=kind,
            content_type=content_type,
            target_folder=target_folder,
            should_process=not archived and should_process(page, self._publish),
            raw_payload=page,
        )

    @staticmethod
    def _add(records: dict[str, SourceRecord], record: SourceRecord) -> None:
        if record.id in records:
            logger.warning(
                "Duplicate record %s from %s ignored (already seen from %s)",
                record.id,
                record.origin_collection,
                records[record.id].origin_collection,
            )
            return
        records[record.id] = record
