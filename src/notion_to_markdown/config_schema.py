"""Unified configuration schema for notion_to_markdown.

Defines Pydantic models for the config structure with dedicated sections
for the Notion connection, mounts, output locations, content layout,
publishing rules, front-matter property mapping, retry policy and logging.

Usage:
    from notion_to_markdown.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from .core.retry import RetryPolicy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class NotionConfig(BaseModel):
    """Notion API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply the token at runtime instead.
    """

    token: str | None = Field(
        default=None, description="Notion integration token"
    )
    base_url: str = Field(
        default="https://api.notion.com/v1",
        description="Notion API base URL",
    )
    api_version: str = Field(
        default="2022-06-28", description="Notion-Version header value"
    )
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum concurrent requests to Notion (1-50)",
    )
    page_size: int = Field(default=100, ge=1, le=100)

    model_config = {"frozen": True}


class DatabaseMount(BaseModel):
    """A Notion database whose rows are synced into *target_folder*."""

    database_id: str
    target_folder: str = "."
    content_type: str | None = None

    model_config = {"frozen": True}


class PageMount(BaseModel):
    """A single Notion page synced into *target_folder*."""

    page_id: str
    target_folder: str = "."
    content_type: str | None = None

    model_config = {"frozen": True}


class MountConfig(BaseModel):
    """What to sync."""

    databases: list[DatabaseMount] = Field(default_factory=list)
    pages: list[PageMount] = Field(default_factory=list)

    model_config = {"frozen": True}


class OutputConfig(BaseModel):
    """Where output lands, relative to *root*.

    Attributes:
        root: Project root (the Hugo site directory).
        content_dir: Markdown output tree, relative to *root*.
        asset_dir: Shared asset directory for flat outputs, relative to
            *root*. Also holds the asset sidecar index.
        asset_url_prefix: URL prefix under which *asset_dir* is served.
        extension: Output file extension.
    """

    root: str = "."
    content_dir: str = "content"
    asset_dir: str = "static/images"
    asset_url_prefix: str = "/images"
    extension: str = ".md"

    model_config = {"frozen": True}


class ContentTypeConfig(BaseModel):
    """Layout for one content type."""

    use_bundle: bool = True
    index_file: str = "index.md"

    model_config = {"frozen": True}


class SpecialPageConfig(BaseModel):
    """Layout override for pages whose title matches a special key."""

    content_type: str = "page"
    use_bundle: bool | None = None
    index_file: str | None = None

    model_config = {"frozen": True}


def _default_special_pages() -> dict[str, SpecialPageConfig]:
    return {
        key: SpecialPageConfig(content_type="page")
        for key in ("about", "aboutme", "disclaimer", "privacy", "contact")
    }


def _default_content_types() -> dict[str, ContentTypeConfig]:
    return {
        "posts": ContentTypeConfig(use_bundle=True, index_file="index.md"),
        "page": ContentTypeConfig(use_bundle=True, index_file="index.md"),
    }


class LayoutConfig(BaseModel):
    """Bundle (``slug/index.md``) versus flat (``slug.md``) layout rules.

    Resolution order: special page match, then content type, then the
    top-level defaults.
    """

    use_bundle: bool = True
    index_file: str = "index.md"
    special_pages: dict[str, SpecialPageConfig] = Field(
        default_factory=_default_special_pages
    )
    content_types: dict[str, ContentTypeConfig] = Field(
        default_factory=_default_content_types
    )

    model_config = {"frozen": True}

    def index_file_names(self) -> frozenset[str]:
        """Every filename that marks a bundle index."""
        names = {self.index_file}
        names.update(ct.index_file for ct in self.content_types.values())
        names.update(
            sp.index_file
            for sp in self.special_pages.values()
            if sp.index_file
        )
        return frozenset(names)


class PublishConfig(BaseModel):
    """Rules deciding whether a record is ready to publish.

    Attributes:
        excluded_statuses: Status names (case-insensitive) that keep a
            record out of the output.
        required_selects: Select property name -> allowed option names.
            A record is excluded only when the property is present and
            set to an option outside the allowed list.
        always_process_child_pages: Pages nested under another page skip
            the rules above.
    """

    excluded_statuses: list[str] = Field(
        default_factory=lambda: ["draft", "in progress"]
    )
    required_selects: dict[str, list[str]] = Field(default_factory=dict)
    always_process_child_pages: bool = True

    model_config = {"frozen": True}


PropertyKind = Literal[
    "title",
    "rich_text",
    "select",
    "multi_select",
    "date",
    "status",
    "number",
    "checkbox",
    "people",
]


class PropertyMapping(BaseModel):
    """Maps one Notion property into a front-matter key."""

    name: str
    type: PropertyKind

    model_config = {"frozen": True}


def _default_properties() -> dict[str, PropertyMapping]:
    return {
        "Name": PropertyMapping(name="title", type="title"),
        "Status": PropertyMapping(name="Status", type="status"),
        "Categories": PropertyMapping(
            name="Categories", type="multi_select"
        ),
        "Tags": PropertyMapping(name="Tags", type="multi_select"),
        "Author": PropertyMapping(name="Author", type="people"),
        "Publish Date": PropertyMapping(name="date", type="date"),
    }


class RetryConfig(BaseModel):
    """Backoff parameters for remote calls."""

    max_attempts: int = Field(default=5, ge=1, le=20)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=15.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    jitter_ratio: float = Field(default=0.1, ge=0, lt=1)

    model_config = {"frozen": True}

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
            jitter_ratio=self.jitter_ratio,
        )


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = "text"

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    notion: NotionConfig = Field(default_factory=NotionConfig)
    mount: MountConfig = Field(default_factory=MountConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    properties: dict[str, PropertyMapping] = Field(
        default_factory=_default_properties
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
