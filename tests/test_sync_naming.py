"""Tests for slugify() and PathMapper output path derivation."""

import pytest

from notion_to_markdown.config_schema import LayoutConfig
from notion_to_markdown.sync.models import StructuralKind
from notion_to_markdown.sync.naming import (
    PathMapper,
    normalize_folder,
    slugify,
)

PAGE_ID = "0123abcd-0123-4567-89ab-0123456789ab"
COMPACT = "0123abcd0123456789ab0123456789ab"


def _flat_layout(**overrides):
    data = {
        "use_bundle": False,
        "content_types": {
            "posts": {"use_bundle": False},
            "page": {"use_bundle": False},
        },
    }
    data.update(overrides)
    return LayoutConfig(**data)


# ---------------------------------------------------------------------------
# slugify
# ---------------------------------------------------------------------------


class TestSlugify:
    """Tests for slugify()."""

    @pytest.mark.parametrize(
        "title, expected",
        [
            ("Hello, World!", "hello-world"),
            ("  Leading and trailing  ", "leading-and-trailing"),
            ("Café crème", "cafe-creme"),
            ("multiple---dashes", "multiple-dashes"),
            ("2024 Review", "2024-review"),
            ("日本語", "untitled"),
            ("", "untitled"),
        ],
    )
    def test_slugify(self, title, expected):
        assert slugify(title) == expected

    def test_deterministic(self):
        assert slugify("Same Title") == slugify("Same Title")


class TestNormalizeFolder:
    """Tests for normalize_folder()."""

    @pytest.mark.parametrize(
        "folder, expected",
        [
            (".", ""),
            ("", ""),
            (None, ""),
            ("posts/", "posts"),
            ("./blog/2024", "blog/2024"),
            ("a\\b", "a/b"),
        ],
    )
    def test_normalize(self, folder, expected):
        assert normalize_folder(folder) == expected


# ---------------------------------------------------------------------------
# PathMapper
# ---------------------------------------------------------------------------


class TestDerivePath:
    """Tests for PathMapper.derive_path()."""

    def test_bundle_layout(self):
        mapper = PathMapper(LayoutConfig())
        path = mapper.derive_path("My Post", PAGE_ID, "database", "posts")

        assert path.container_directory == f"posts/my-post-{COMPACT}"
        assert path.index_file_path == f"posts/my-post-{COMPACT}/index.md"
        assert path.index_file_name == "index.md"
        assert path.slug == "my-post"
        assert path.structural_kind is StructuralKind.BUNDLE

    def test_flat_layout(self):
        mapper = PathMapper(_flat_layout())
        path = mapper.derive_path("My Post", PAGE_ID, "database", "posts")

        assert path.container_directory == "posts"
        assert path.index_file_path == f"posts/my-post-{COMPACT}.md"
        assert path.index_file_name == f"my-post-{COMPACT}.md"
        assert path.structural_kind is StructuralKind.FLAT

    def test_flat_at_content_root(self):
        mapper = PathMapper(_flat_layout())
        path = mapper.derive_path("Top", PAGE_ID, "page", ".")
        assert path.container_directory == "."
        assert path.index_file_path == f"top-{COMPACT}.md"

    def test_same_title_different_ids(self):
        mapper = PathMapper(LayoutConfig())
        a = mapper.derive_path("Same", PAGE_ID, "database")
        b = mapper.derive_path("Same", "f" * 32, "database")
        assert a.index_file_path != b.index_file_path

    def test_undashed_id_gives_same_path(self):
        mapper = PathMapper(LayoutConfig())
        assert mapper.derive_path("X", PAGE_ID, "page") == mapper.derive_path(
            "X", COMPACT, "page"
        )

    def test_custom_extension(self):
        mapper = PathMapper(_flat_layout(), extension=".markdown")
        path = mapper.derive_path("X", PAGE_ID, "page")
        assert path.index_file_path.endswith(".markdown")


class TestResolveLayout:
    """Special page > content type > defaults."""

    def test_content_type_default_by_collection_kind(self):
        layout = LayoutConfig(
            content_types={
                "posts": {"use_bundle": True, "index_file": "index.md"},
                "page": {"use_bundle": False},
            }
        )
        mapper = PathMapper(layout)
        assert mapper.resolve_layout("Post", "database") == (True, "index.md")
        assert mapper.resolve_layout("Page", "page")[0] is False

    def test_explicit_content_type(self):
        layout = LayoutConfig(
            content_types={"notes": {"use_bundle": True, "index_file": "_index.md"}}
        )
        mapper = PathMapper(layout)
        assert mapper.resolve_layout("N", "database", "notes") == (
            True,
            "_index.md",
        )

    def test_unknown_content_type_uses_defaults(self):
        mapper = PathMapper(LayoutConfig(use_bundle=False, content_types={}))
        assert mapper.resolve_layout("N", "database", "misc") == (
            False,
            "index.md",
        )

    def test_special_page_wins(self):
        layout = LayoutConfig(
            content_types={"posts": {"use_bundle": True}},
            special_pages={"about": {"content_type": "page", "use_bundle": False}},
        )
        mapper = PathMapper(layout)
        assert mapper.resolve_layout("About Us", "database")[0] is False

    def test_special_page_match_ignores_case_and_spaces(self):
        mapper = PathMapper(LayoutConfig())
        assert mapper.match_special_page("About Me") == "aboutme"
        assert mapper.match_special_page("PRIVACY policy") == "privacy"
        assert mapper.match_special_page("Weekly notes") is None

    def test_special_page_falls_back_to_its_content_type(self):
        layout = LayoutConfig(
            content_types={"page": {"use_bundle": False, "index_file": "x.md"}},
            special_pages={"contact": {"content_type": "page"}},
        )
        mapper = PathMapper(layout)
        assert mapper.resolve_layout("Contact", "database") == (False, "x.md")
