"""Pure reconciliation of source records against output entries.

Joins the two maps on record id, never on filename, and classifies every
processed record:

* no output yet -> ``to_create``
* output at a different path than the one derived now -> ``renames`` and
  ``to_update`` (reason ``rename``, or ``layout`` when flat/bundle flipped)
* timestamps differ -> ``to_update`` (reason ``modified``)
* embedded asset URLs have expired -> ``to_update`` (``assets_expired``)
* otherwise -> ``unchanged``

Output entries matched by no processed record go to ``to_delete``.
Processed records without a payload go to ``skipped``; their ids still
count as matched so a transient fetch failure never deletes output.

No I/O happens here; inputs are sorted by id so the plan is deterministic.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from .models import (
    ActionPlan,
    OutputEntry,
    PlannedUpdate,
    Rename,
    SourceRecord,
)
from .naming import PathMapper

logger = logging.getLogger(__name__)


def normalize_timestamp(value: datetime | date | str | None) -> datetime | None:
    """Convert *value* to an aware UTC ``datetime`` for comparison.

    ``"2024-01-01T00:00:00.000Z"`` and ``"2024-01-01T00:00:00+00:00"``
    normalize to the same instant. Naive values are taken as UTC.
    Unparseable strings give ``None``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def reconcile(
    records: list[SourceRecord],
    entries: list[OutputEntry],
    mapper: PathMapper,
    now: datetime | None = None,
) -> ActionPlan:
    """Diff *records* against *entries*.

    Args:
        records: Source map for this run.
        entries: Output map for this run.
        mapper: Derives each record's expected output path.
        now: When given, entries whose ``asset_expiry`` is at or before
            *now* are updated even if unchanged upstream.

    Returns:
        The ``ActionPlan``.
    """
    by_id: dict[str, OutputEntry] = {}
    for entry in sorted(entries, key=lambda e: (e.id, e.filepath)):
        by_id.setdefault(entry.id, entry)

    now_utc = normalize_timestamp(now) if now is not None else None

    to_create: list[SourceRecord] = []
    to_update: list[PlannedUpdate] = []
    unchanged: list[SourceRecord] = []
    skipped: list[SourceRecord] = []
    renames: dict[str, Rename] = {}
    matched: set[str] = set()

    for record in sorted(records, key=lambda r: r.id):
        if not record.should_process:
            continue
        matched.add(record.id)

        if record.raw_payload is None:
            logger.warning(
                "Record %s has no payload this run; leaving its output as is",
                record.id,
            )
            skipped.append(record)
            continue

        entry = by_id.get(record.id)
        if entry is None:
            to_create.append(record)
            continue

        derived = mapper.derive_path(
            record.title,
            record.id,
            record.collection_kind,
            record.target_folder,
            record.content_type,
        )
        if derived.index_file_path != entry.filepath:
            structural = derived.structural_kind != entry.structural_kind
            renames[record.id] = Rename(
                old_path=entry.filepath,
                new_path=derived.index_file_path,
                structural=structural,
            )
            to_update.append(
                PlannedUpdate(
                    record=record,
                    entry=entry,
                    reason="layout" if structural else "rename",
                )
            )
            continue

        source_ts = normalize_timestamp(record.last_modified)
        output_ts = normalize_timestamp(entry.last_modified)
        if source_ts is None or output_ts is None or source_ts != output_ts:
            to_update.append(
                PlannedUpdate(record=record, entry=entry, reason="modified")
            )
            continue

        expiry = normalize_timestamp(entry.asset_expiry)
        if now_utc is not None and expiry is not None and expiry <= now_utc:
            to_update.append(
                PlannedUpdate(
                    record=record, entry=entry, reason="assets_expired"
                )
            )
            continue

        unchanged.append(record)

    to_delete = [
        entry
        for entry_id, entry in sorted(by_id.items())
        if entry_id not in matched
    ]

    plan = ActionPlan(
        to_create=to_create,
        to_update=to_update,
        unchanged=unchanged,
        to_delete=to_delete,
        renames=renames,
        skipped=skipped,
    )
    logger.info(
        "Plan: %d create, %d update (%d rename), %d unchanged, "
        "%d delete, %d skipped",
        len(to_create),
        len(to_update),
        len(renames),
        len(unchanged),
        len(to_delete),
        len(skipped),
    )
    return plan
