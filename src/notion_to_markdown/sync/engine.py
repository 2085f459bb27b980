"""Sync engine that orchestrates a full Notion to Markdown run.

The ``SyncEngine`` ties together the map builders, the reconciler, the
asset tracker and the renderer. It:

1. Loads the asset index.
2. Builds the source map (Notion) and the output map (content tree).
3. Reconciles them into an ``ActionPlan``.
4. Writes created and updated records, downloading their assets.
5. Moves renamed outputs and deletes outputs with no source record.
6. Cleans up assets whose owning page is gone.
7. Builds and returns a ``SyncReport``.

Error handling is per-record: a single page failure does not abort the
run and never touches that page's existing output.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from ..config_schema import UnifiedConfig
from ..converters.blocks import (
    AssetReference,
    earliest_expiry,
    extract_asset_references,
    render_blocks,
)
from ..converters.front_matter import serialize
from ..converters.properties import build_front_matter
from ..core.async_utils import (
    gather_limited,
    init_semaphore,
    run_sync,
    run_sync_limited,
)
from ..core.errors import PathCollisionError
from ..file_handler import remove_path, write_bytes_atomic, write_file
from ..validators import compact_id
from .assets import AssetTracker, asset_filename, content_identity, stable_url
from .models import (
    ActionPlan,
    OutputEntry,
    OutputPath,
    SourceRecord,
    StructuralKind,
    SyncAction,
    SyncReport,
    SyncResult,
)
from .naming import PathMapper, normalize_folder
from .output_map import OutputMapBuilder
from .reconciler import reconcile
from .source_map import SourceClient, SourceMapBuilder
from .state import INDEX_FILENAME, AssetIndex

logger = logging.getLogger(__name__)

REUSED = "reused"
DOWNLOADED = "downloaded"
FAILED = "failed"


class ContentClient(SourceClient, Protocol):
    """The subset of ``NotionClient`` the engine needs."""

    def get_block_tree(self, block_id: str) -> list[dict[str, Any]]: ...

    def download(self, url: str) -> bytes: ...


class SyncEngine:
    """Run one incremental sync from Notion into the content tree.

    Args:
        client: Notion client (or any object with the same methods).
        config: Resolved configuration.
        project_root: Base for the relative ``output`` paths. Defaults to
            ``config.output.root`` resolved against the working directory.
    """

    def __init__(
        self,
        client: ContentClient,
        config: UnifiedConfig,
        project_root: Path | None = None,
    ) -> None:
        self.client = client
        self.config = config

        root = Path(config.output.root)
        if project_root is not None:
            root = project_root / root
        self.project_root = root.resolve()
        self.content_root = self.project_root / config.output.content_dir
        self.asset_dir = self.project_root / config.output.asset_dir

        self.mapper = PathMapper(config.layout, config.output.extension)
        self.index = AssetIndex(self.asset_dir / INDEX_FILENAME)
        self.assets = AssetTracker(
            self.index, self.asset_dir, self.project_root
        )
        self.source_builder = SourceMapBuilder(client, config.publish)
        self.output_builder = OutputMapBuilder(
            config.layout.index_file_names(), config.output.extension
        )
        self._tracked: set[str] = set()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def run(
        self, dry_run: bool = False, now: datetime | None = None
    ) -> SyncReport:
        """Execute a full sync cycle.

        Args:
            dry_run: If ``True``, compute actions but do not execute them.
            now: Run time (defaults to the current UTC time).

        Returns:
            A ``SyncReport`` summarising what was (or would be) done.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        now = now or datetime.now(timezone.utc)
        init_semaphore(self.config.notion.max_parallel_requests)

        await run_sync(self.index.load)
        records = await run_sync(
            self.source_builder.build,
            self.config.mount.databases,
            self.config.mount.pages,
        )
        failed_collections = list(self.source_builder.failed_collections)
        entries = await run_sync(self.output_builder.build, self.content_root)
        self._tracked = {e.filepath for e in entries}

        plan = reconcile(records, entries, self.mapper, now=now)
        if plan.is_empty:
            logger.info("Output is up to date; nothing to write or delete")
        held_back = self._held_back_deletions(plan, failed_collections)

        if dry_run:
            results = self._preview(plan, held_back)
            return SyncReport(
                dry_run=True,
                results=results,
                failed_collections=failed_collections,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc).isoformat(),
            )

        results: list[SyncResult] = []
        stats = {DOWNLOADED: 0, REUSED: 0, FAILED: 0}
        claimed: dict[str, str] = {}
        for record in plan.unchanged:
            claimed[self._derive(record).index_file_path] = record.id

        for record in plan.to_create:
            results.append(
                await self._write_record(
                    record, None, SyncAction.CREATE, None, claimed, stats, now
                )
            )

        for update in plan.to_update:
            action = (
                SyncAction.RENAME
                if update.record.id in plan.renames
                else SyncAction.UPDATE
            )
            results.append(
                await self._write_record(
                    update.record,
                    update.entry,
                    action,
                    update.reason,
                    claimed,
                    stats,
                    now,
                )
            )

        for record in plan.unchanged:
            results.append(
                SyncResult(
                    record_id=record.id,
                    path=self._derive(record).index_file_path,
                    action=SyncAction.UNCHANGED,
                )
            )
        for record in plan.skipped:
            results.append(
                SyncResult(
                    record_id=record.id,
                    path="",
                    action=SyncAction.SKIP,
                    detail="not retrieved",
                )
            )

        keep = self._tracked | set(claimed)
        for entry in plan.to_delete:
            if entry.id in held_back:
                results.append(
                    SyncResult(
                        record_id=entry.id,
                        path=entry.filepath,
                        action=SyncAction.SKIP,
                        detail="collection unavailable",
                    )
                )
                continue
            results.append(await self._delete_entry(entry, keep))

        active = {r.id for r in records if r.should_process} | held_back
        removed = await run_sync(self.assets.cleanup_orphaned, active)

        return SyncReport(
            dry_run=False,
            results=results,
            failed_collections=failed_collections,
            assets_downloaded=stats[DOWNLOADED],
            assets_reused=stats[REUSED],
            assets_removed=removed,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )

    # ------------------------------------------------------------------
    # Planning helpers
    # ------------------------------------------------------------------

    def _derive(self, record: SourceRecord) -> OutputPath:
        return self.mapper.derive_path(
            record.title,
            record.id,
            record.collection_kind,
            record.target_folder,
            record.content_type,
        )

    def _held_back_deletions(
        self, plan: ActionPlan, failed_collections: list[str]
    ) -> set[str]:
        """Ids of deletions under the folder of a database that failed."""
        if not failed_collections:
            return set()
        failed = {compact_id(c) for c in failed_collections}
        folders = [
            normalize_folder(m.target_folder)
            for m in self.config.mount.databases
            if compact_id(m.database_id) in failed
        ]
        held: set[str] = set()
        for entry in plan.to_delete:
            for folder in folders:
                if not folder or entry.filepath.startswith(folder + "/"):
                    held.add(entry.id)
                    break
        if held:
            logger.warning(
                "Holding back %d deletion(s) because a collection failed",
                len(held),
            )
        return held

    def _preview(
        self, plan: ActionPlan, held_back: set[str]
    ) -> list[SyncResult]:
        results: list[SyncResult] = []
        for record in plan.to_create:
            results.append(
                SyncResult(
                    record_id=record.id,
                    path=self._derive(record).index_file_path,
                    action=SyncAction.CREATE,
                )
            )
        for update in plan.to_update:
            rename = plan.renames.get(update.record.id)
            results.append(
                SyncResult(
                    record_id=update.record.id,
                    path=self._derive(update.record).index_file_path,
                    action=SyncAction.RENAME if rename else SyncAction.UPDATE,
                    detail=rename.old_path if rename else update.reason,
                )
            )
        for record in plan.unchanged:
            results.append(
                SyncResult(
                    record_id=record.id,
                    path=self._derive(record).index_file_path,
                    action=SyncAction.UNCHANGED,
                )
            )
        for record in plan.skipped:
            results.append(
                SyncResult(
                    record_id=record.id,
                    path="",
                    action=SyncAction.SKIP,
                    detail="not retrieved",
                )
            )
        for entry in plan.to_delete:
            results.append(
                SyncResult(
                    record_id=entry.id,
                    path=entry.filepath,
                    action=(
                        SyncAction.SKIP
                        if entry.id in held_back
                        else SyncAction.DELETE
                    ),
                    detail=(
                        "collection unavailable"
                        if entry.id in held_back
                        else None
                    ),
                )
            )
        return results

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def _write_record(
        self,
        record: SourceRecord,
        old_entry: OutputEntry | None,
        action: SyncAction,
        reason: str | None,
        claimed: dict[str, str],
        stats: dict[str, int],
        now: datetime,
    ) -> SyncResult:
        """Render and write one record; failures become error results."""
        derived = self._derive(record)
        path = derived.index_file_path
        detail = (
            old_entry.filepath
            if action == SyncAction.RENAME and old_entry
            else reason
        )
        try:
            other = claimed.get(path)
            if other is not None and other != record.id:
                raise PathCollisionError(path, record.id, other)
            claimed[path] = record.id

            blocks = await run_sync_limited(
                self.client.get_block_tree, record.id
            )
            refs = extract_asset_references(blocks)
            asset_map, remaining, superseded = await self._materialize_assets(
                record.id, refs, derived, stats
            )

            body = render_blocks(blocks, asset_map)
            fields = build_front_matter(
                record.raw_payload or {}, self.config.properties, now
            )
            expiry = earliest_expiry(remaining)
            if expiry:
                fields["EXPIRY_TIME"] = expiry
            text = serialize(fields, body)

            await run_sync(write_file, self.content_root / path, text)
            logger.info("Wrote %s (%s)", path, action.value)
        except Exception as exc:
            logger.error("Failed to sync record %s: %s", record.id, exc)
            return SyncResult(
                record_id=record.id,
                path=path,
                action=action,
                success=False,
                error=str(exc),
                detail=detail,
            )

        if superseded:
            try:
                await run_sync(self.assets.release, superseded)
            except OSError as exc:
                logger.warning(
                    "Wrote %s but could not remove old asset copies: %s",
                    path,
                    exc,
                )

        if old_entry is not None and old_entry.filepath != path:
            try:
                await run_sync(
                    self._remove_output,
                    old_entry,
                    (self._tracked | set(claimed)) - {old_entry.filepath},
                )
            except OSError as exc:
                logger.error(
                    "Wrote %s but could not remove old output %s: %s",
                    path,
                    old_entry.filepath,
                    exc,
                )
                return SyncResult(
                    record_id=record.id,
                    path=path,
                    action=action,
                    success=False,
                    error=f"old output not removed: {exc}",
                    detail=detail,
                )

        return SyncResult(
            record_id=record.id, path=path, action=action, detail=detail
        )

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def _asset_target(self, derived: OutputPath) -> tuple[Path, str]:
        """Directory for a record's assets and the link prefix to use."""
        if derived.is_bundle:
            return self.content_root / derived.container_directory, ""
        prefix = self.config.output.asset_url_prefix.rstrip("/")
        return self.asset_dir, prefix + "/"

    async def _materialize_assets(
        self,
        owner_id: str,
        refs: list[AssetReference],
        derived: OutputPath,
        stats: dict[str, int],
    ) -> tuple[dict[str, str], list[AssetReference], list[Path]]:
        """Make local copies of *refs* concurrently.

        Returns:
            ``(asset_map, remaining, superseded)``: remote URL -> local link
            for every asset now on disk, the references still pointing at a
            remote URL because their download failed, and earlier copies
            left behind by assets that moved to *derived*'s directory.
        """
        if not refs:
            return {}, [], []
        target_dir, link_prefix = self._asset_target(derived)
        superseded: list[Path] = []
        outcomes = await gather_limited(
            [
                self._fetch_asset(owner_id, ref, target_dir, superseded)
                for ref in refs
            ]
        )

        asset_map: dict[str, str] = {}
        remaining: list[AssetReference] = []
        for ref, (filename, outcome) in zip(refs, outcomes):
            stats[outcome] += 1
            if filename is None:
                remaining.append(ref)
            else:
                asset_map[ref.url] = f"{link_prefix}{filename}"
        return asset_map, remaining, superseded

    async def _fetch_asset(
        self,
        owner_id: str,
        ref: AssetReference,
        target_dir: Path,
        superseded: list[Path],
    ) -> tuple[str | None, str]:
        """Ensure one asset exists in *target_dir*.

        Holds the per-identity lock across check, download and record.
        A failed download leaves the index untouched. When the owner's copy
        lives elsewhere it is copied over and the old path is appended to
        *superseded*.
        """
        cid = content_identity(ref.url)
        async with self.assets.lock(cid):
            dest = target_dir / asset_filename(ref.url, owner_id)

            if not self.assets.should_fetch(ref.url, owner_id):
                existing = self.assets.existing_path(ref.url, owner_id)
                if existing is not None:
                    if existing.parent.resolve() == target_dir.resolve():
                        return existing.name, REUSED
                    # Same asset, new location (layout change or move)
                    await run_sync(target_dir.mkdir, parents=True, exist_ok=True)
                    await run_sync(shutil.copy2, existing, dest)
                    await run_sync(
                        self.assets.record_fetch, cid, dest, owner_id, ref.url
                    )
                    superseded.append(existing)
                    return dest.name, REUSED

            try:
                data = await run_sync_limited(self.client.download, ref.url)
                await run_sync(write_bytes_atomic, dest, data)
            except Exception as exc:
                logger.warning(
                    "Failed to download asset %s for %s: %s",
                    stable_url(ref.url),
                    owner_id,
                    exc,
                )
                return None, FAILED

            await run_sync(
                self.assets.record_fetch, cid, dest, owner_id, ref.url
            )
            logger.debug("Downloaded asset %s", dest)
            return dest.name, DOWNLOADED

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def _remove_output(self, entry: OutputEntry, keep: set[str]) -> None:
        """Remove an entry's output without touching any path in *keep*.

        A bundle index takes its whole directory with it, unless that
        directory is the content root or holds another kept path.
        """
        path = self.content_root / entry.filepath
        if entry.structural_kind != StructuralKind.BUNDLE:
            remove_path(path)
            return

        container_rel = Path(entry.filepath).parent.as_posix()
        shared = container_rel in ("", ".") or any(
            k.startswith(container_rel + "/") and k != entry.filepath
            for k in keep
        )
        if shared:
            remove_path(path)
        else:
            remove_path(path.parent)

    async def _delete_entry(
        self, entry: OutputEntry, keep: set[str]
    ) -> SyncResult:
        try:
            await run_sync(self._remove_output, entry, keep - {entry.filepath})
        except OSError as exc:
            logger.error("Failed to delete %s: %s", entry.filepath, exc)
            return SyncResult(
                record_id=entry.id,
                path=entry.filepath,
                action=SyncAction.DELETE,
                success=False,
                error=str(exc),
            )
        logger.info("Deleted %s", entry.filepath)
        return SyncResult(
            record_id=entry.id, path=entry.filepath, action=SyncAction.DELETE
        )
