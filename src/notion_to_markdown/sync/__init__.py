"""Incremental Notion to Markdown sync engine.

Public API for synchronising Notion pages and database rows into a local
content tree of Markdown files with YAML front matter.

Architecture
------------
Both sides are rebuilt every run and joined on page id, never on
filename. The only state carried between runs is the asset index, which
maps each downloaded image's content identity to its local file.

Modules:

- ``engine``      -- ``SyncEngine``: orchestrates a full sync run.
- ``source_map``  -- ``SourceMapBuilder``: records from Notion mounts.
- ``output_map``  -- ``OutputMapBuilder``: records found on disk.
- ``reconciler``  -- ``reconcile``: pure diff into an ``ActionPlan``.
- ``naming``      -- ``PathMapper``: slug and flat/bundle path rules.
- ``classifier``  -- ``should_process``: publish-readiness rules.
- ``assets``      -- ``AssetTracker``: at-most-once asset downloads.
- ``state``       -- ``AssetIndex``: JSON sidecar persistence.
- ``models``      -- data contracts.
- ``reporter``    -- human-readable and JSON report formatting.

Usage example
-------------
::

    import asyncio
    from notion_to_markdown.config import load_config
    from notion_to_markdown.core.client import NotionClient
    from notion_to_markdown.sync import SyncEngine, format_sync_report

    config = load_config({})  # token and mounts from the environment
    engine = SyncEngine(NotionClient(config.notion), config)

    # Dry-run first to preview changes
    preview = asyncio.run(engine.run(dry_run=True))
    print(format_sync_report(preview))

    report = asyncio.run(engine.run())
    print(format_sync_report(report))
"""

from .assets import AssetTracker
from .engine import SyncEngine
from .models import (
    ActionPlan,
    AssetRecord,
    OutputEntry,
    OutputPath,
    SourceRecord,
    SyncAction,
    SyncReport,
    SyncResult,
)
from .naming import PathMapper, slugify
from .output_map import OutputMapBuilder
from .reconciler import reconcile
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .source_map import SourceMapBuilder
from .state import AssetIndex

__all__ = [
    "ActionPlan",
    "AssetIndex",
    "AssetRecord",
    "AssetTracker",
    "OutputEntry",
    "OutputMapBuilder",
    "OutputPath",
    "PathMapper",
    "SourceMapBuilder",
    "SourceRecord",
    "SyncAction",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "format_dry_run_preview",
    "format_sync_report",
    "reconcile",
    "report_to_json",
    "slugify",
]
