"""Tests for content-addressed asset tracking."""

from __future__ import annotations

from pathlib import Path

import pytest

from notion_to_markdown.sync.assets import (
    AssetTracker,
    asset_extension,
    asset_filename,
    content_identity,
    stable_url,
)
from notion_to_markdown.sync.state import INDEX_FILENAME, AssetIndex

OWNER = "0123abcd-0000-0000-0000-000000000001"
OTHER = "9999ffff-0000-0000-0000-000000000002"

BASE = "https://prod-files-secure.s3.us-west-2.amazonaws.com/ws/file/photo.png"
SIGNED_1 = (
    BASE
    + "?X-Amz-Algorithm=AWS4&X-Amz-Expires=3600&X-Amz-Signature=aaa&width=200"
)
SIGNED_2 = (
    BASE
    + "?width=200&X-Amz-Signature=bbb&X-Amz-Expires=3600&X-Amz-Algorithm=AWS4"
)


@pytest.fixture
def tracker(tmp_path: Path) -> AssetTracker:
    asset_dir = tmp_path / "static" / "images"
    index = AssetIndex(asset_dir / INDEX_FILENAME)
    index.load()
    return AssetTracker(index, asset_dir, tmp_path)


def _store(tracker: AssetTracker, url: str, owner: str, data=b"img") -> Path:
    path = tracker._asset_dir / asset_filename(url, owner)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    tracker.record_fetch(content_identity(url), path, owner, url)
    return path


# ---------------------------------------------------------------------------
# Identity and naming
# ---------------------------------------------------------------------------


class TestContentIdentity:
    """Tests for content_identity() and stable_url()."""

    def test_resigned_urls_share_identity(self):
        assert content_identity(SIGNED_1) == content_identity(SIGNED_2)

    def test_different_paths_differ(self):
        other = SIGNED_1.replace("photo.png", "other.png")
        assert content_identity(SIGNED_1) != content_identity(other)

    def test_content_params_matter(self):
        assert content_identity(BASE + "?width=100") != content_identity(
            BASE + "?width=200"
        )

    def test_host_case_insensitive(self):
        assert content_identity(BASE) == content_identity(
            BASE.replace("prod-files-secure", "PROD-FILES-SECURE")
        )

    def test_unparseable_url_hashed_whole(self):
        assert len(content_identity("not a url")) == 32

    def test_stable_url_strips_signing(self):
        assert stable_url(SIGNED_1) == BASE + "?width=200"


class TestAssetFilename:
    """Tests for asset_filename() and asset_extension()."""

    def test_format(self):
        name = asset_filename(SIGNED_1, OWNER)
        assert name == f"notion-0123abcd-{content_identity(SIGNED_1)[:8]}.png"

    def test_stable_across_resigning(self):
        assert asset_filename(SIGNED_1, OWNER) == asset_filename(SIGNED_2, OWNER)

    @pytest.mark.parametrize(
        "url, ext",
        [
            ("https://x.com/a/b.JPEG?sig=1", "jpeg"),
            ("https://x.com/a/b", "jpg"),
            ("https://x.com/a/b.gif", "gif"),
        ],
    )
    def test_extension(self, url, ext):
        assert asset_extension(url) == ext


# ---------------------------------------------------------------------------
# Tracker queries
# ---------------------------------------------------------------------------


class TestShouldFetch:
    """Tests for AssetTracker.should_fetch()."""

    def test_never_seen(self, tracker):
        assert tracker.should_fetch(SIGNED_1, OWNER)

    def test_indexed_for_same_owner(self, tracker):
        _store(tracker, SIGNED_1, OWNER)
        assert not tracker.should_fetch(SIGNED_2, OWNER)

    def test_indexed_for_other_owner(self, tracker):
        _store(tracker, SIGNED_1, OTHER)
        assert tracker.should_fetch(SIGNED_1, OWNER)

    def test_file_missing(self, tracker):
        path = _store(tracker, SIGNED_1, OWNER)
        path.unlink()
        assert tracker.should_fetch(SIGNED_1, OWNER)
        assert tracker.existing_path(SIGNED_1, OWNER) is None

    def test_each_owner_keeps_its_own_copy(self, tracker):
        _store(tracker, SIGNED_1, OWNER)
        _store(tracker, SIGNED_1, OTHER)
        assert not tracker.should_fetch(SIGNED_2, OWNER)
        assert not tracker.should_fetch(SIGNED_2, OTHER)
        assert len(tracker.index) == 2


class TestRecordFetch:
    """Tests for AssetTracker.record_fetch()."""

    def test_persists_relative_path_and_hash(self, tracker, tmp_path):
        path = _store(tracker, SIGNED_1, OWNER, b"bytes")

        reloaded = AssetIndex(tracker.index.path)
        reloaded.load()
        record = reloaded.get(content_identity(SIGNED_1), OWNER)
        assert record.local_path == f"static/images/{path.name}"
        assert record.content_hash == AssetIndex.bytes_hash(path)
        assert record.owner_id == OWNER
        assert record.source_url == BASE + "?width=200"

    def test_existing_path_resolves(self, tracker):
        path = _store(tracker, SIGNED_1, OWNER)
        assert tracker.existing_path(SIGNED_2, OWNER) == path
        assert tracker.existing_path(SIGNED_2, OTHER) is None

    def test_find_existing_includes_unindexed_prefixed_files(self, tracker):
        indexed = _store(tracker, SIGNED_1, OWNER)
        stray = tracker._asset_dir / "notion-0123abcd-deadbeef.png"
        stray.write_bytes(b"x")
        found = tracker.find_existing(OWNER)
        assert set(found) == {indexed, stray}


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------


class TestCleanupOrphaned:
    """Tests for AssetTracker.cleanup_orphaned()."""

    def test_removes_inactive_owner_assets(self, tracker):
        keep = _store(tracker, SIGNED_1, OWNER)
        gone_url = BASE.replace("photo", "gone")
        gone = _store(tracker, gone_url, OTHER)

        removed = tracker.cleanup_orphaned({OWNER})

        assert removed == 1
        assert keep.exists()
        assert not gone.exists()
        reloaded = AssetIndex(tracker.index.path)
        reloaded.load()
        assert content_identity(gone_url) not in reloaded
        assert content_identity(SIGNED_1) in reloaded

    def test_active_owner_never_touched(self, tracker):
        path = _store(tracker, SIGNED_1, OWNER)
        assert tracker.cleanup_orphaned({OWNER.replace("-", "")}) == 0
        assert path.exists()

    def test_unindexed_orphans_removed_by_prefix(self, tracker):
        _store(tracker, SIGNED_1, OWNER)
        stray_active = tracker._asset_dir / "notion-0123abcd-11111111.png"
        stray_orphan = tracker._asset_dir / "notion-9999ffff-22222222.png"
        unrelated = tracker._asset_dir / "logo.png"
        for p in (stray_active, stray_orphan, unrelated):
            p.write_bytes(b"x")

        removed = tracker.cleanup_orphaned({OWNER})

        assert removed == 1
        assert stray_active.exists()
        assert not stray_orphan.exists()
        assert unrelated.exists()
        assert (tracker._asset_dir / INDEX_FILENAME).exists()

    def test_shared_identity_keeps_active_owner(self, tracker):
        mine = _store(tracker, SIGNED_1, OWNER)
        theirs = _store(tracker, SIGNED_1, OTHER)

        removed = tracker.cleanup_orphaned({OWNER})

        assert removed == 1
        assert mine.exists()
        assert not theirs.exists()
        reloaded = AssetIndex(tracker.index.path)
        reloaded.load()
        cid = content_identity(SIGNED_1)
        assert reloaded.get(cid, OWNER) is not None
        assert reloaded.get(cid, OTHER) is None

    def test_file_still_referenced_is_kept(self, tracker):
        path = _store(tracker, SIGNED_1, OWNER)
        tracker.record_fetch(content_identity(SIGNED_1), path, OTHER, SIGNED_1)

        assert tracker.cleanup_orphaned({OTHER}) == 0
        assert path.exists()

    def test_missing_asset_dir(self, tmp_path):
        index = AssetIndex(tmp_path / "none" / INDEX_FILENAME)
        tracker = AssetTracker(index, tmp_path / "none", tmp_path)
        assert tracker.cleanup_orphaned(set()) == 0


class TestRelease:
    """Tests for AssetTracker.release()."""

    def test_unreferenced_copy_removed(self, tracker, tmp_path):
        old = _store(tracker, SIGNED_1, OWNER)
        bundle = tmp_path / "content" / "post" / old.name
        bundle.parent.mkdir(parents=True)
        bundle.write_bytes(old.read_bytes())
        tracker.record_fetch(content_identity(SIGNED_1), bundle, OWNER, SIGNED_1)

        assert tracker.release([old]) == 1
        assert not old.exists()
        assert bundle.exists()

    def test_referenced_copy_kept(self, tracker):
        path = _store(tracker, SIGNED_1, OWNER)
        assert tracker.release([path]) == 0
        assert path.exists()

    def test_missing_path_ignored(self, tracker, tmp_path):
        assert tracker.release([tmp_path / "gone.png"]) == 0


async def test_lock_is_per_identity(tracker):
    cid = content_identity(SIGNED_1)
    assert tracker.lock(cid) is tracker.lock(content_identity(SIGNED_2))
    assert tracker.lock(cid) is not tracker.lock("other")
