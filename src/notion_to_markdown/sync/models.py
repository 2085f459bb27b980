"""Pydantic models for the Notion to Markdown sync engine.

Defines the data contracts shared by the map builders, the reconciler and
the engine:

- ``SourceRecord``: One remote page as seen in this run.
- ``OutputEntry``: One Markdown file already on disk.
- ``OutputPath``: Where a record's output belongs.
- ``ActionPlan``: What the reconciler decided.
- ``AssetRecord``: One downloaded asset in the sidecar index.
- ``SyncAction``, ``SyncResult``, ``SyncReport``: Run outcome.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

CollectionKind = Literal["database", "page"]


class StructuralKind(str, Enum):
    """How a record's output is laid out on disk."""

    FLAT = "flat"
    BUNDLE = "bundle"


class IdSource(str, Enum):
    """Where an output file's id was recovered from."""

    HEADER = "header"
    METADATA = "metadata"
    FILENAME = "filename"


class SourceRecord(BaseModel):
    """A page fetched from Notion in the current run.

    Attributes:
        id: Canonical dashed page id.
        title: Plain-text title.
        last_modified: ``last_edited_time`` as reported by Notion.
        origin_collection: Id of the database or page mount it came from.
        collection_kind: ``"database"`` or ``"page"``.
        content_type: Layout content type (``posts``, ``page``, ...).
        target_folder: Folder under the content root for this mount.
        should_process: Whether the page passes the publish rules.
        raw_payload: Page object from the API. ``None`` when the page could
            not be retrieved this run.
    """

    id: str
    title: str = ""
    last_modified: datetime | str | None = None
    origin_collection: str
    collection_kind: CollectionKind
    content_type: str | None = None
    target_folder: str = "."
    should_process: bool = True
    raw_payload: dict[str, Any] | None = None

    model_config = {"frozen": True}


class OutputEntry(BaseModel):
    """A previously generated Markdown file.

    Attributes:
        id: Canonical dashed page id.
        filepath: POSIX path relative to the content root.
        last_modified: Source modification time recorded in the header.
        structural_kind: ``flat`` or ``bundle``.
        asset_expiry: Earliest expiry of remote asset URLs still embedded.
        last_sync_timestamp: When the file was last written.
        id_source: Where ``id`` was recovered from.
    """

    id: str
    filepath: str
    last_modified: datetime | str | None = None
    structural_kind: StructuralKind = StructuralKind.FLAT
    asset_expiry: datetime | str | None = None
    last_sync_timestamp: datetime | str | None = None
    id_source: IdSource = IdSource.HEADER

    model_config = {"frozen": True}


class OutputPath(BaseModel):
    """Derived location of a record's output, relative to the content root."""

    container_directory: str
    index_file_path: str
    index_file_name: str
    slug: str
    is_bundle: bool

    model_config = {"frozen": True}

    @property
    def structural_kind(self) -> StructuralKind:
        return StructuralKind.BUNDLE if self.is_bundle else StructuralKind.FLAT


class Rename(BaseModel):
    """An output that must move from *old_path* to *new_path*."""

    old_path: str
    new_path: str
    structural: bool = False

    model_config = {"frozen": True}


class PlannedUpdate(BaseModel):
    """A record whose existing output must be regenerated.

    Attributes:
        record: The current source record.
        entry: The output entry being superseded.
        reason: ``modified``, ``rename``, ``layout`` or ``assets_expired``.
    """

    record: SourceRecord
    entry: OutputEntry
    reason: str

    model_config = {"frozen": True}


class ActionPlan(BaseModel):
    """Result of reconciling source records against output entries."""

    to_create: list[SourceRecord] = Field(default_factory=list)
    to_update: list[PlannedUpdate] = Field(default_factory=list)
    unchanged: list[SourceRecord] = Field(default_factory=list)
    to_delete: list[OutputEntry] = Field(default_factory=list)
    renames: dict[str, Rename] = Field(default_factory=dict)
    skipped: list[SourceRecord] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        """True when nothing needs to be written or removed."""
        return not (self.to_create or self.to_update or self.to_delete)


class AssetRecord(BaseModel):
    """One downloaded asset tracked in the sidecar index.

    Attributes:
        content_id: MD5 of the stable part of the source URL.
        local_path: POSIX path relative to the project root.
        content_hash: SHA-256 of the file bytes.
        last_fetched: ISO 8601 UTC timestamp of the download.
        owner_id: Id of the page that embeds the asset.
        source_url: Stable part of the URL, for diagnostics.
    """

    content_id: str
    local_path: str
    content_hash: str
    last_fetched: str
    owner_id: str
    source_url: str = ""

    model_config = {"frozen": True}


class SyncAction(str, Enum):
    """Possible outcomes for one record in a sync run."""

    CREATE = "create"
    UPDATE = "update"
    RENAME = "rename"
    UNCHANGED = "unchanged"
    DELETE = "delete"
    SKIP = "skip"


class SyncResult(BaseModel):
    """Result of syncing one record.

    Attributes:
        record_id: Page id.
        path: Output path relative to the content root.
        action: What was (or, on dry runs, would be) done.
        success: Whether the operation succeeded.
        error: Error message if the operation failed.
        detail: Extra context (update reason, old path of a rename).
    """

    record_id: str
    path: str
    action: SyncAction
    success: bool = True
    error: str | None = None
    detail: str | None = None

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full sync run.

    Attributes:
        dry_run: Whether this was a dry-run (no changes applied).
        results: List of individual sync results.
        failed_collections: Mount ids whose listing failed this run.
        assets_downloaded: Number of assets fetched.
        assets_reused: Number of assets served from the local index.
        assets_removed: Number of orphaned assets cleaned up.
        started_at: ISO 8601 timestamp when sync started.
        completed_at: ISO 8601 timestamp when sync completed.
    """

    dry_run: bool = False
    results: list[SyncResult] = []
    failed_collections: list[str] = []
    assets_downloaded: int = 0
    assets_reused: int = 0
    assets_removed: int = 0
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _with_action(self, action: SyncAction) -> list[SyncResult]:
        return [r for r in self.results if r.action == action]

    @property
    def created(self) -> list[SyncResult]:
        """Results where action is CREATE."""
        return self._with_action(SyncAction.CREATE)

    @property
    def updated(self) -> list[SyncResult]:
        """Results where action is UPDATE."""
        return self._with_action(SyncAction.UPDATE)

    @property
    def renamed(self) -> list[SyncResult]:
        """Results where action is RENAME."""
        return self._with_action(SyncAction.RENAME)

    @property
    def unchanged(self) -> list[SyncResult]:
        """Results where action is UNCHANGED."""
        return self._with_action(SyncAction.UNCHANGED)

    @property
    def deleted(self) -> list[SyncResult]:
        """Results where action is DELETE."""
        return self._with_action(SyncAction.DELETE)

    @property
    def skipped(self) -> list[SyncResult]:
        """Results where action is SKIP."""
        return self._with_action(SyncAction.SKIP)

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """Format a human-readable summary of the sync run.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            "Notion sync report" + (" (dry run)" if self.dry_run else ""),
            f"  Created:    {len(self.created)}",
            f"  Updated:    {len(self.updated)}",
            f"  Renamed:    {len(self.renamed)}",
            f"  Unchanged:  {len(self.unchanged)}",
            f"  Deleted:    {len(self.deleted)}",
            f"  Skipped:    {len(self.skipped)}",
            f"  Errors:     {len(self.errors)}",
            f"  Total:      {len(self.results)}",
        ]
        if self.failed_collections:
            lines.append(
                f"  Failed collections: {', '.join(self.failed_collections)}"
            )
        return "\n".join(lines)
