"""Config-driven output path derivation.

Turns a page title and id into a stable, human-readable output location.

Resolution:

1. **Slug** -- the title folded to ASCII, lowercased, with every run of
   other characters collapsed to a single ``-``.
2. **Name** -- ``{slug}-{32 hex id}`` so identical titles never collide.
3. **Layout** -- a special-page title match wins over the content type,
   which wins over the layout defaults.
4. **Path** -- flat ``{target}/{name}{ext}`` or bundle
   ``{target}/{name}/{index_file}``.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import PurePosixPath

from ..config_schema import LayoutConfig
from ..validators import compact_id
from .models import CollectionKind, OutputPath

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")

UNTITLED_SLUG = "untitled"


def slugify(title: str) -> str:
    """Convert *title* to a filesystem-safe slug.

    ``"Hello, World!"`` becomes ``"hello-world"``. Titles with no usable
    characters become ``"untitled"``.
    """
    text = unicodedata.normalize("NFKD", title or "")
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = _NON_ALNUM.sub("-", text).strip("-")
    return text or UNTITLED_SLUG


def normalize_folder(folder: str | None) -> str:
    """Normalize *folder* to a relative POSIX path ("" for the root)."""
    if not folder:
        return ""
    text = folder.replace("\\", "/").strip("/")
    parts = [p for p in PurePosixPath(text).parts if p not in (".", "")]
    return "/".join(parts)


def default_content_type(collection_kind: CollectionKind) -> str:
    return "posts" if collection_kind == "database" else "page"


class PathMapper:
    """Derive output paths from titles, ids and layout rules.

    Args:
        layout: Bundle/flat layout configuration.
        extension: Extension for flat outputs (``.md``).
    """

    def __init__(self, layout: LayoutConfig, extension: str = ".md") -> None:
        self._layout = layout
        self._extension = extension

    @property
    def layout(self) -> LayoutConfig:
        return self._layout

    # ------------------------------------------------------------------
    # Layout resolution
    # ------------------------------------------------------------------

    def match_special_page(self, title: str) -> str | None:
        """Return the special-page key contained in *title*, if any.

        Matching ignores case and whitespace, so ``"About Me"`` matches the
        ``aboutme`` key. Longer keys are tried first.
        """
        squashed = _WHITESPACE.sub("", (title or "").lower())
        for key in sorted(self._layout.special_pages, key=len, reverse=True):
            if key.lower() in squashed:
                return key
        return None

    def resolve_layout(
        self,
        title: str,
        collection_kind: CollectionKind,
        content_type: str | None = None,
    ) -> tuple[bool, str]:
        """Return ``(use_bundle, index_file)`` for a record."""
        special_key = self.match_special_page(title)
        if special_key is not None:
            special = self._layout.special_pages[special_key]
            type_cfg = self._layout.content_types.get(special.content_type)
            use_bundle = special.use_bundle
            if use_bundle is None:
                use_bundle = (
                    type_cfg.use_bundle
                    if type_cfg
                    else self._layout.use_bundle
                )
            index_file = special.index_file or (
                type_cfg.index_file if type_cfg else self._layout.index_file
            )
            return use_bundle, index_file

        ctype = content_type or default_content_type(collection_kind)
        type_cfg = self._layout.content_types.get(ctype)
        if type_cfg is not None:
            return type_cfg.use_bundle, type_cfg.index_file
        return self._layout.use_bundle, self._layout.index_file

    # ------------------------------------------------------------------
    # Path derivation
    # ------------------------------------------------------------------

    def derive_path(
        self,
        title: str,
        record_id: str,
        collection_kind: CollectionKind,
        target_folder: str = ".",
        content_type: str | None = None,
    ) -> OutputPath:
        """Derive the output location for a record.

        Pure: the same inputs always produce the same ``OutputPath``.

        Args:
            title: Current page title.
            record_id: Page id (dashed or undashed).
            collection_kind: ``"database"`` or ``"page"``.
            target_folder: Folder relative to the content root; ``"."`` or
                ``""`` is the root itself.
            content_type: Explicit content type for the mount.

        Returns:
            ``OutputPath`` with POSIX paths relative to the content root.
        """
        slug = slugify(title)
        name = f"{slug}-{compact_id(record_id)}"
        folder = normalize_folder(target_folder)
        use_bundle, index_file = self.resolve_layout(
            title, collection_kind, content_type
        )

        if use_bundle:
            container = self._join(folder, name)
            index_path = f"{container}/{index_file}"
            index_name = index_file
        else:
            container = folder or "."
            index_name = f"{name}{self._extension}"
            index_path = self._join(folder, index_name)

        return OutputPath(
            container_directory=container,
            index_file_path=index_path,
            index_file_name=index_name,
            slug=slug,
            is_bundle=use_bundle,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _join(folder: str, name: str) -> str:
        return f"{folder}/{name}" if folder else name
