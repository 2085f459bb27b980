"""Conversion from Notion payloads to Markdown with YAML front matter."""

from .blocks import (
    AssetReference,
    earliest_expiry,
    extract_asset_references,
    render_blocks,
)
from .front_matter import parse, serialize
from .properties import build_front_matter, extract_property, get_page_title

__all__ = [
    "AssetReference",
    "build_front_matter",
    "earliest_expiry",
    "extract_asset_references",
    "extract_property",
    "get_page_title",
    "parse",
    "render_blocks",
    "serialize",
]
