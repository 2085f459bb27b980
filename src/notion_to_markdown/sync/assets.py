"""Content-addressed tracking of downloaded assets.

Signed Notion URLs change on every API call, so assets are keyed by a
*content identity*: an MD5 over the URL's host, path and non-signing query
parameters. The identity survives re-signing, which lets a later run see
that the asset is already on disk.

Downloaded files are named ``notion-{owner8}-{content8}.{ext}`` where
``owner8`` is the first 8 hex digits of the embedding page id. The prefix
lets ``cleanup_orphaned`` attribute files that predate the index.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import parse_qsl, urlparse

from ..core.async_utils import KeyedLocks
from ..validators import compact_id
from .models import AssetRecord
from .state import AssetIndex

logger = logging.getLogger(__name__)

# Query parameters that carry signatures or expiry rather than content
VOLATILE_PARAMS = frozenset(
    {"expires", "signature", "key-pair-id", "policy"}
)
VOLATILE_PREFIXES = ("x-amz-",)

DEFAULT_EXTENSION = "jpg"

_EXTENSION_PATTERN = re.compile(r"\.([A-Za-z0-9]{1,5})$")
_ASSET_NAME_PATTERN = re.compile(r"^notion-([0-9a-f]{8})-")


def _is_volatile(param: str) -> bool:
    name = param.lower()
    return name in VOLATILE_PARAMS or name.startswith(VOLATILE_PREFIXES)


def stable_url(url: str) -> str:
    """Return *url* without signing parameters or fragment."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return url
    params = sorted(
        (k, v)
        for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_volatile(k)
    )
    query = "&".join(f"{k}={v}" for k, v in params)
    base = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"
    return f"{base}?{query}" if query else base


def content_identity(url: str) -> str:
    """MD5 hex digest of the stable part of *url*.

    Unparseable URLs are hashed whole.
    """
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return hashlib.md5(url.encode("utf-8")).hexdigest()
    params = sorted(
        f"{k}={v}"
        for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if not _is_volatile(k)
    )
    parts = [(parsed.hostname or "").lower(), parsed.path, *params]
    return hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()


def owner_prefix(owner_id: str) -> str:
    return compact_id(owner_id)[:8]


def asset_extension(url: str) -> str:
    """File extension taken from the URL path, ``jpg`` when absent."""
    name = PurePosixPath(urlparse(url).path).name
    match = _EXTENSION_PATTERN.search(name)
    return match.group(1).lower() if match else DEFAULT_EXTENSION


def asset_filename(url: str, owner_id: str) -> str:
    """Deterministic local filename for an asset embedded by *owner_id*."""
    content8 = content_identity(url)[:8]
    return f"notion-{owner_prefix(owner_id)}-{content8}.{asset_extension(url)}"


class AssetTracker:
    """Decide which assets need downloading and record completed fetches.

    Args:
        index: Loaded sidecar index. Saved after every mutation.
        asset_dir: Shared asset directory (absolute).
        project_root: Root that ``AssetRecord.local_path`` is relative to.
    """

    def __init__(
        self, index: AssetIndex, asset_dir: Path, project_root: Path
    ) -> None:
        self._index = index
        self._asset_dir = asset_dir
        self._root = project_root
        self._locks = KeyedLocks()

    @property
    def index(self) -> AssetIndex:
        return self._index

    content_identity = staticmethod(content_identity)
    asset_filename = staticmethod(asset_filename)

    def lock(self, content_id: str) -> asyncio.Lock:
        """Lock serializing check, download and record for one identity."""
        return self._locks.get(content_id)

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self._root.resolve()).as_posix()
        except ValueError:
            return path.resolve().as_posix()

    def absolute(self, local_path: str) -> Path:
        """Resolve an indexed ``local_path`` against the project root."""
        path = Path(local_path)
        return path if path.is_absolute() else self._root / path

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def should_fetch(self, url: str, owner_id: str) -> bool:
        """Return ``False`` only if an indexed copy exists for *owner_id*.

        Never seen, file missing and a copy held only by other owners all
        mean a download is needed.
        """
        return self.existing_path(url, owner_id) is None

    def existing_path(self, url: str, owner_id: str) -> Path | None:
        """Absolute path of *owner_id*'s indexed copy of *url*, if on disk."""
        record = self._index.get(content_identity(url), owner_id)
        if record is None:
            return None
        path = self.absolute(record.local_path)
        return path if path.is_file() else None

    def find_existing(self, owner_id: str) -> list[Path]:
        """Previously downloaded assets of *owner_id* still on disk.

        Includes indexed files wherever they live and unindexed files in the
        shared asset directory carrying the owner's name prefix.
        """
        owner = compact_id(owner_id)
        found: dict[Path, None] = {}
        for record in self._index.entries():
            if compact_id(record.owner_id) != owner:
                continue
            path = self.absolute(record.local_path)
            if path.is_file():
                found[path] = None
        if self._asset_dir.is_dir():
            pattern = f"notion-{owner_prefix(owner_id)}-*"
            for path in sorted(self._asset_dir.glob(pattern)):
                if path.is_file():
                    found[path] = None
        return list(found)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def record_fetch(
        self,
        content_id: str,
        local_path: Path,
        owner_id: str,
        source_url: str = "",
    ) -> AssetRecord:
        """Upsert the record for a completed download and persist the index.

        Args:
            content_id: Identity from ``content_identity``.
            local_path: Where the bytes were written.
            owner_id: Page that embeds the asset.
            source_url: Original URL; only its stable part is kept.

        Returns:
            The stored record.
        """
        record = AssetRecord(
            content_id=content_id,
            local_path=self._relative(local_path),
            content_hash=AssetIndex.bytes_hash(local_path),
            last_fetched=datetime.now(timezone.utc).isoformat(),
            owner_id=owner_id,
            source_url=stable_url(source_url) if source_url else "",
        )
        self._index.update(record)
        self._index.save()
        return record

    def release(self, paths: list[Path]) -> int:
        """Delete superseded copies that no index record references.

        Used after an owner's asset moved to a new directory and the page
        linking to the new copy has been written.

        Returns:
            Number of files removed.
        """
        removed = 0
        for path in paths:
            if not path.is_file() or self._index.references(path, self._root):
                continue
            logger.debug("Removing superseded asset copy: %s", path)
            path.unlink()
            removed += 1
        return removed

    def cleanup_orphaned(self, active_owner_ids: list[str] | set[str]) -> int:
        """Delete assets whose owner is not in *active_owner_ids*.

        Indexed assets are matched by full owner id. Unindexed
        ``notion-{prefix}-*`` files in the asset directory are removed only
        when their prefix matches no active owner. Assets of active owners
        are never touched.

        Returns:
            Number of files removed.
        """
        active = {compact_id(o) for o in active_owner_ids}
        active_prefixes = {a[:8] for a in active}
        removed = 0

        stale = [
            r
            for r in self._index.entries()
            if compact_id(r.owner_id) not in active
        ]
        for record in stale:
            self._index.remove(record.content_id, record.owner_id)
        for record in stale:
            path = self.absolute(record.local_path)
            # Another record may still point at the same file
            if path.is_file() and not self._index.references(path, self._root):
                logger.debug("Removing orphaned asset: %s", path)
                path.unlink()
                removed += 1
        changed = bool(stale)

        if self._asset_dir.is_dir():
            protected = {
                self.absolute(r.local_path).resolve()
                for r in self._index.entries()
            }
            for path in sorted(self._asset_dir.iterdir()):
                if not path.is_file() or path.name.startswith("."):
                    continue
                match = _ASSET_NAME_PATTERN.match(path.name)
                if not match or match.group(1) in active_prefixes:
                    continue
                if path.resolve() in protected:
                    continue
                logger.debug("Removing orphaned asset: %s", path)
                path.unlink()
                removed += 1

        if changed:
            self._index.save()
        if removed:
            logger.info("Cleaned up %d orphaned asset(s)", removed)
        return removed
