"""Tests for the source map builder."""

from __future__ import annotations

from typing import Any, Dict, Iterator, List

import pytest

from notion_to_markdown.config_schema import DatabaseMount, PageMount, PublishConfig
from notion_to_markdown.core.errors import NotionAPIError
from notion_to_markdown.sync.source_map import SourceMapBuilder

DB_A = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
DB_B = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"


def _pid(n: int) -> str:
    return f"{n:08d}-0000-0000-0000-000000000000"


class FakeSourceClient:
    """In-memory database rows and pages; ids listed in *failing* raise."""

    def __init__(
        self,
        databases: Dict[str, List[Dict[str, Any]]] | None = None,
        pages: Dict[str, Dict[str, Any]] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self.databases = databases or {}
        self.pages = pages or {}
        self.failing = failing or set()

    def iter_database(self, database_id: str) -> Iterator[Dict[str, Any]]:
        if database_id in self.failing:
            raise NotionAPIError(503, "service_unavailable", "down")
        yield from self.databases.get(database_id, [])

    def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        if page_id in self.failing or page_id not in self.pages:
            raise NotionAPIError(404, "object_not_found", "gone")
        return self.pages[page_id]


class TestSourceMapBuilder:
    """Tests for SourceMapBuilder.build()."""

    def test_database_rows_become_records(self, make_page):
        client = FakeSourceClient(
            databases={
                DB_A: [
                    make_page(_pid(1), title="First", status="Ready"),
                    make_page(_pid(2), title="Second", status="Draft"),
                ]
            }
        )
        builder = SourceMapBuilder(client, PublishConfig())

        records = builder.build(
            [DatabaseMount(database_id=DB_A, target_folder="posts")], []
        )

        assert [r.id for r in records] == [_pid(1), _pid(2)]
        first, second = records
        assert first.title == "First"
        assert first.last_modified == "2024-01-02T03:04:00.000Z"
        assert first.origin_collection == DB_A
        assert first.collection_kind == "database"
        assert first.target_folder == "posts"
        assert first.should_process is True
        assert first.raw_payload is not None
        assert second.should_process is False

    def test_page_mount(self, make_page):
        page = make_page(_pid(3).replace("-", ""), title="About")
        client = FakeSourceClient(pages={_pid(3): page})
        builder = SourceMapBuilder(client, PublishConfig())

        records = builder.build(
            [], [PageMount(page_id=_pid(3), target_folder="about")]
        )

        assert len(records) == 1
        assert records[0].id == _pid(3)
        assert records[0].collection_kind == "page"

    def test_failed_database_recorded_others_continue(self, make_page):
        client = FakeSourceClient(
            databases={DB_B: [make_page(_pid(1))]}, failing={DB_A}
        )
        builder = SourceMapBuilder(client, PublishConfig())

        records = builder.build(
            [DatabaseMount(database_id=DB_A), DatabaseMount(database_id=DB_B)],
            [],
        )

        assert [r.id for r in records] == [_pid(1)]
        assert builder.failed_collections == [DB_A]

    def test_failed_page_mount_gives_payloadless_record(self):
        builder = SourceMapBuilder(FakeSourceClient(), PublishConfig())

        records = builder.build([], [PageMount(page_id=_pid(4).replace("-", ""))])

        assert len(records) == 1
        assert records[0].id == _pid(4)
        assert records[0].raw_payload is None
        assert records[0].should_process is True

    def test_archived_pages_not_processed(self, make_page):
        trashed = make_page(_pid(2))
        trashed["in_trash"] = True
        client = FakeSourceClient(
            databases={DB_A: [make_page(_pid(1), archived=True), trashed]}
        )
        records = SourceMapBuilder(client, PublishConfig()).build(
            [DatabaseMount(database_id=DB_A)], []
        )
        assert [r.should_process for r in records] == [False, False]

    def test_non_page_objects_and_bad_ids_skipped(self, make_page):
        bad = make_page("not-an-id")
        client = FakeSourceClient(
            databases={DB_A: [{"object": "database", "id": DB_B}, bad]}
        )
        records = SourceMapBuilder(client, PublishConfig()).build(
            [DatabaseMount(database_id=DB_A)], []
        )
        assert records == []

    def test_duplicates_keep_first(self, make_page):
        client = FakeSourceClient(
            databases={
                DB_A: [make_page(_pid(1), title="From A")],
                DB_B: [make_page(_pid(1), title="From B")],
            }
        )
        records = SourceMapBuilder(client, PublishConfig()).build(
            [DatabaseMount(database_id=DB_A), DatabaseMount(database_id=DB_B)],
            [],
        )
        assert len(records) == 1
        assert records[0].title == "From A"

    def test_failed_collections_reset_each_build(self, make_page):
        client = FakeSourceClient(failing={DB_A})
        builder = SourceMapBuilder(client, PublishConfig())
        builder.build([DatabaseMount(database_id=DB_A)], [])
        client.failing = set()
        builder.build([DatabaseMount(database_id=DB_A)], [])
        assert builder.failed_collections == []


@pytest.mark.live
def test_live_database():
    """Smoke test against a real workspace (NOTION_TOKEN, NOTION_TEST_DB)."""
    import os

    from notion_to_markdown.config_schema import NotionConfig
    from notion_to_markdown.core.client import NotionClient

    config = NotionConfig(token=os.environ["NOTION_TOKEN"])
    builder = SourceMapBuilder(NotionClient(config), PublishConfig())
    records = builder.build(
        [DatabaseMount(database_id=os.environ["NOTION_TEST_DB"])], []
    )
    assert builder.failed_collections == []
    assert all(r.raw_payload for r in records)
