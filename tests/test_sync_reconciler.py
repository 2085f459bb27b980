"""Tests for the pure reconciler."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from notion_to_markdown.config_schema import LayoutConfig
from notion_to_markdown.sync.models import (
    OutputEntry,
    SourceRecord,
    StructuralKind,
)
from notion_to_markdown.sync.naming import PathMapper
from notion_to_markdown.sync.reconciler import normalize_timestamp, reconcile

A = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
B = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
C = "cccccccc-cccc-cccc-cccc-cccccccccccc"
TS = "2024-01-02T03:04:00.000Z"

MAPPER = PathMapper(LayoutConfig())


def _record(
    record_id: str,
    title: str = "Post",
    last_modified: str = TS,
    should_process: bool = True,
    payload: bool = True,
    **overrides: Any,
) -> SourceRecord:
    data = {
        "id": record_id,
        "title": title,
        "last_modified": last_modified,
        "origin_collection": "db",
        "collection_kind": "database",
        "target_folder": "posts",
        "should_process": should_process,
        "raw_payload": {"id": record_id} if payload else None,
    }
    data.update(overrides)
    return SourceRecord(**data)


def _entry_for(record: SourceRecord, **overrides: Any) -> OutputEntry:
    """Output entry sitting exactly where *record* would be written."""
    derived = MAPPER.derive_path(
        record.title, record.id, record.collection_kind, record.target_folder
    )
    data = {
        "id": record.id,
        "filepath": derived.index_file_path,
        "last_modified": record.last_modified,
        "structural_kind": derived.structural_kind,
    }
    data.update(overrides)
    return OutputEntry(**data)


# ---------------------------------------------------------------------------
# normalize_timestamp
# ---------------------------------------------------------------------------


class TestNormalizeTimestamp:
    """Tests for normalize_timestamp()."""

    def test_z_and_offset_are_equal(self):
        assert normalize_timestamp(
            "2024-01-01T00:00:00.000Z"
        ) == normalize_timestamp("2024-01-01T00:00:00+00:00")

    def test_datetime_and_string_are_equal(self):
        dt = datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)
        assert normalize_timestamp(dt) == normalize_timestamp(TS)

    def test_naive_taken_as_utc(self):
        assert normalize_timestamp("2024-01-01T00:00:00").tzinfo is not None

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unusable(self, value):
        assert normalize_timestamp(value) is None


# ---------------------------------------------------------------------------
# reconcile
# ---------------------------------------------------------------------------


class TestReconcile:
    """Tests for reconcile() classification."""

    def test_new_record_created(self):
        plan = reconcile([_record(A)], [], MAPPER)
        assert [r.id for r in plan.to_create] == [A]
        assert not plan.is_empty

    def test_matching_entry_unchanged(self):
        record = _record(A)
        plan = reconcile([record], [_entry_for(record)], MAPPER)
        assert [r.id for r in plan.unchanged] == [A]
        assert plan.is_empty

    def test_timestamp_formats_compare_as_instants(self):
        record = _record(A)
        entry = _entry_for(
            record,
            last_modified=datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc),
        )
        assert [r.id for r in reconcile([record], [entry], MAPPER).unchanged] == [A]

    def test_modified_record_updated(self):
        record = _record(A)
        entry = _entry_for(record, last_modified="2023-12-31T00:00:00.000Z")
        plan = reconcile([record], [entry], MAPPER)
        assert [(u.record.id, u.reason) for u in plan.to_update] == [
            (A, "modified")
        ]
        assert plan.to_update[0].entry == entry

    def test_missing_output_timestamp_counts_as_modified(self):
        record = _record(A)
        entry = _entry_for(record, last_modified=None)
        assert reconcile([record], [entry], MAPPER).to_update[0].reason == "modified"

    def test_title_change_is_rename(self):
        old = _record(A, title="Old Title")
        new = _record(A, title="New Title")
        entry = _entry_for(old)

        plan = reconcile([new], [entry], MAPPER)

        assert plan.to_update[0].reason == "rename"
        rename = plan.renames[A]
        assert rename.old_path == entry.filepath
        assert rename.new_path.startswith("posts/new-title-")
        assert rename.structural is False
        assert plan.to_delete == []

    def test_flat_to_bundle_is_layout_change(self):
        record = _record(A)
        flat = PathMapper(
            LayoutConfig(use_bundle=False, content_types={})
        ).derive_path(record.title, A, "database", "posts")
        entry = OutputEntry(
            id=A,
            filepath=flat.index_file_path,
            last_modified=TS,
            structural_kind=StructuralKind.FLAT,
        )

        plan = reconcile([record], [entry], MAPPER)

        assert plan.to_update[0].reason == "layout"
        assert plan.renames[A].structural is True

    def test_orphaned_entry_deleted(self):
        record = _record(A)
        orphan = OutputEntry(id=C, filepath="posts/gone/index.md")
        plan = reconcile([record], [_entry_for(record), orphan], MAPPER)
        assert plan.to_delete == [orphan]

    def test_unprocessed_record_output_deleted(self):
        record = _record(A, should_process=False)
        entry = _entry_for(record)
        plan = reconcile([record], [entry], MAPPER)
        assert plan.to_delete == [entry]
        assert plan.unchanged == [] and plan.to_create == []

    def test_payloadless_record_protects_output(self):
        record = _record(A, payload=False)
        entry = _entry_for(_record(A))
        plan = reconcile([record], [entry], MAPPER)
        assert [r.id for r in plan.skipped] == [A]
        assert plan.to_delete == []
        assert plan.to_update == [] and plan.to_create == []

    def test_expired_assets_force_update(self):
        record = _record(A)
        entry = _entry_for(record, asset_expiry="2024-01-02T04:00:00.000Z")
        before = datetime(2024, 1, 2, 3, 30, tzinfo=timezone.utc)
        after = datetime(2024, 1, 2, 4, 0, tzinfo=timezone.utc)

        assert reconcile([record], [entry], MAPPER, now=before).unchanged
        plan = reconcile([record], [entry], MAPPER, now=after)
        assert plan.to_update[0].reason == "assets_expired"

    def test_every_processed_record_lands_in_exactly_one_list(self):
        records = [
            _record(A),
            _record(B, title="Changed"),
            _record(C, payload=False),
            _record("dddddddd-dddd-dddd-dddd-dddddddddddd"),
        ]
        entries = [
            _entry_for(records[0]),
            _entry_for(_record(B, title="Before")),
        ]

        plan = reconcile(records, entries, MAPPER)

        buckets = (
            [r.id for r in plan.to_create]
            + [u.record.id for u in plan.to_update]
            + [r.id for r in plan.unchanged]
            + [r.id for r in plan.skipped]
        )
        assert sorted(buckets) == sorted(r.id for r in records)
        assert len(buckets) == len(set(buckets))

    def test_deterministic_order(self):
        records = [_record(C), _record(A), _record(B)]
        plan_1 = reconcile(records, [], MAPPER)
        plan_2 = reconcile(list(reversed(records)), [], MAPPER)
        assert [r.id for r in plan_1.to_create] == [A, B, C]
        assert plan_1 == plan_2


class TestReconcileScenarios:
    """End-to-end planning scenarios over two runs."""

    def test_draft_ready_and_removed_records(self):
        """Draft A never appears, ready B is stable, removed C is deleted."""
        draft = _record(A, should_process=False)
        ready = _record(B)
        stale = OutputEntry(id=C, filepath="posts/c/index.md", last_modified=TS)

        first = reconcile([draft, ready], [stale], MAPPER)
        assert [r.id for r in first.to_create] == [B]
        assert [e.id for e in first.to_delete] == [C]

        second = reconcile([draft, ready], [_entry_for(ready)], MAPPER)
        assert [r.id for r in second.unchanged] == [B]
        assert second.is_empty

    def test_idempotent_after_apply(self):
        """Applying a plan and reconciling again yields nothing to do."""
        records = [_record(A), _record(B, title="Second")]
        plan = reconcile(records, [], MAPPER)
        written = [_entry_for(r) for r in plan.to_create]
        assert reconcile(records, written, MAPPER).is_empty
