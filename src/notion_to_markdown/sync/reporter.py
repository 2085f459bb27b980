"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport, SyncResult

from .models import SyncAction

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _describe(r: SyncResult) -> str:
    if r.action == SyncAction.RENAME and r.detail:
        return f"  {r.detail} -> {r.path}"
    if r.detail:
        return f"  {r.path} ({r.detail})"
    return f"  {r.path}"


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Unchanged and skipped records are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = "Notion sync report"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} records: "
        f"{len(report.created)} created, {len(report.updated)} updated, "
        f"{len(report.renamed)} renamed, {len(report.deleted)} deleted, "
        f"{len(report.errors)} errors"
    )
    lines.append(
        f"Assets: {report.assets_downloaded} downloaded, "
        f"{report.assets_reused} reused, {report.assets_removed} removed"
    )
    lines.append("")

    sections = [
        ("Created:", report.created),
        ("Updated:", report.updated),
        ("Renamed:", report.renamed),
        ("Deleted:", report.deleted),
    ]
    for title, results in sections:
        ok = [r for r in results if r.success]
        if not ok:
            continue
        lines.append(title)
        lines.extend(_describe(r) for r in ok)
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.path or r.record_id}: {r.error}")
        lines.append("")

    if report.failed_collections:
        lines.append("Failed collections (deletions held back):")
        for collection in report.failed_collections:
            lines.append(f"  {collection}")
        lines.append("")

    if report.unchanged:
        lines.append(f"Unchanged: {len(report.unchanged)} records")
    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} records")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by action type.

    Each proposed action is shown as ``[ACTION]`` followed by its paths.

    Args:
        report: A dry-run sync report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append("")

    groups: dict[SyncAction, list[SyncResult]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r)

    display_order = [
        SyncAction.CREATE,
        SyncAction.UPDATE,
        SyncAction.RENAME,
        SyncAction.DELETE,
    ]

    for action in display_order:
        if action not in groups:
            continue
        lines.append(f"[{action.value.upper()}]")
        lines.extend(_describe(r) for r in groups[action])
        lines.append("")

    unchanged = len(groups.get(SyncAction.UNCHANGED, []))
    if unchanged > 0:
        lines.append(f"Unchanged: {unchanged} records")
    skipped = len(groups.get(SyncAction.SKIP, []))
    if skipped > 0:
        lines.append(f"Skipped: {skipped} records (not retrieved this run)")

    if not any(a in groups for a in display_order):
        lines.append("No changes needed.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with run info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "record_id": r.record_id,
            "path": r.path,
            "action": r.action.value,
            "success": r.success,
        }
        if r.detail:
            entry["detail"] = r.detail
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "created": len(report.created),
            "updated": len(report.updated),
            "renamed": len(report.renamed),
            "unchanged": len(report.unchanged),
            "deleted": len(report.deleted),
            "skipped": len(report.skipped),
            "errors": len(report.errors),
        },
        "assets": {
            "downloaded": report.assets_downloaded,
            "reused": report.assets_reused,
            "removed": report.assets_removed,
        },
        "failed_collections": list(report.failed_collections),
        "results": results_list,
    }
