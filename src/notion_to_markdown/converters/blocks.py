"""Notion block tree to Markdown renderer.

Covers the common block types. Unknown block types render to nothing.
Image blocks are rendered from ``asset_map`` when a local copy exists, so
the caller decides which remote URLs get replaced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Hosts whose URLs are signed and expire, so the asset must be downloaded
HOSTED_ASSET_DOMAINS = (
    "amazonaws.com",
    "notion.so",
    "notion.site",
    "notion-static.com",
)

ADMONITION_EMOJI = {
    "⚠️": "warning",
    "💡": "tip",
    "ℹ️": "note",
}

INDENT = "  "


@dataclass(frozen=True)
class AssetReference:
    """An image embedded in a page.

    Attributes:
        url: URL as returned by the API (possibly signed).
        expiry_time: ISO 8601 expiry of a signed URL, if any.
        block_id: Id of the image block.
    """

    url: str
    expiry_time: str | None = None
    block_id: str = ""


def is_hosted_url(url: str) -> bool:
    """Return ``True`` for URLs served from Notion's own storage."""
    host = (urlparse(url).hostname or "").lower()
    return any(
        host == domain or host.endswith("." + domain)
        for domain in HOSTED_ASSET_DOMAINS
    )


# ---------------------------------------------------------------------------
# Rich text
# ---------------------------------------------------------------------------


def render_rich_text(rich_text: Iterable[Mapping[str, Any]] | None) -> str:
    """Render a rich text array with basic inline annotations."""
    parts: list[str] = []
    for rt in rich_text or []:
        text = rt.get("plain_text", "")
        if not text:
            continue
        if rt.get("type") == "equation":
            parts.append(f"${text}$")
            continue
        ann = rt.get("annotations") or {}
        if ann.get("code"):
            text = f"`{text}`"
        if ann.get("bold"):
            text = f"**{text}**"
        if ann.get("italic"):
            text = f"_{text}_"
        if ann.get("strikethrough"):
            text = f"~~{text}~~"
        href = rt.get("href")
        if href:
            text = f"[{text}]({href})"
        parts.append(text)
    return "".join(parts)


def _plain(rich_text: Iterable[Mapping[str, Any]] | None) -> str:
    return "".join(rt.get("plain_text", "") for rt in rich_text or [])


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------


def _file_url(data: Mapping[str, Any]) -> str:
    kind = data.get("type")
    if kind in ("file", "external"):
        return (data.get(kind) or {}).get("url", "")
    return ""


def _render_image(
    block: Mapping[str, Any], asset_map: Mapping[str, str]
) -> str:
    data = block.get("image") or {}
    url = _file_url(data)
    if not url:
        return ""
    caption = _plain(data.get("caption"))
    return f"![{caption}]({asset_map.get(url, url)})"


def _render_callout(block: Mapping[str, Any]) -> str:
    data = block.get("callout") or {}
    emoji = (data.get("icon") or {}).get("emoji", "")
    text = render_rich_text(data.get("rich_text"))
    admonition = ADMONITION_EMOJI.get(emoji)
    if admonition:
        return f"> [!{admonition}] {emoji}\n> {text}"
    return f"> {emoji} {text}".replace(">  ", "> ")


def render_block(
    block: Mapping[str, Any],
    asset_map: Mapping[str, str],
    numbered_index: int = 1,
) -> str:
    """Render a single block (without its children)."""
    kind = block.get("type", "")
    data = block.get(kind) or {}
    text = render_rich_text(data.get("rich_text"))

    match kind:
        case "paragraph":
            return text
        case "heading_1":
            return f"# {text}"
        case "heading_2":
            return f"## {text}"
        case "heading_3":
            return f"### {text}"
        case "bulleted_list_item":
            return f"- {text}"
        case "numbered_list_item":
            return f"{numbered_index}. {text}"
        case "to_do":
            mark = "x" if data.get("checked") else " "
            return f"- [{mark}] {text}"
        case "toggle":
            return f"- {text}"
        case "quote":
            return "\n".join(f"> {line}" for line in text.split("\n"))
        case "callout":
            return _render_callout(block)
        case "code":
            language = data.get("language", "")
            if language == "plain text":
                language = ""
            return f"```{language}\n{_plain(data.get('rich_text'))}\n```"
        case "equation":
            return f"$$\n{data.get('expression', '')}\n$$"
        case "divider":
            return "---"
        case "image":
            return _render_image(block, asset_map)
        case "bookmark" | "embed" | "link_preview":
            url = data.get("url", "")
            caption = _plain(data.get("caption")) or url
            return f"[{caption}]({url})" if url else ""
        case "child_page":
            return ""
        case _:
            logger.debug("Skipping unsupported block type %r", kind)
            return ""


_LIST_KINDS = frozenset(
    {"bulleted_list_item", "numbered_list_item", "to_do", "toggle"}
)


def render_blocks(
    blocks: list[Mapping[str, Any]],
    asset_map: Mapping[str, str] | None = None,
) -> str:
    """Render a block tree (as returned by ``get_block_tree``) to Markdown.

    Children are indented two spaces under their parent. Consecutive list
    items are kept together; other blocks are separated by a blank line.

    Args:
        blocks: Top-level blocks, each optionally carrying ``children``.
        asset_map: Remote URL -> local reference for downloaded images.

    Returns:
        Markdown body text.
    """
    assets = asset_map or {}
    out: list[str] = []
    # (siblings, depth, position, list number) frames
    stack: list[tuple[list[Mapping[str, Any]], int, int, int]] = [
        (blocks, 0, 0, 0)
    ]
    while stack:
        siblings, depth, pos, number = stack.pop()
        if pos >= len(siblings):
            continue
        block = siblings[pos]
        kind = block.get("type", "")
        number = number + 1 if kind == "numbered_list_item" else 0
        stack.append((siblings, depth, pos + 1, number))

        rendered = render_block(block, assets, number or 1)
        if rendered:
            prefix = INDENT * depth
            lines = [
                prefix + line if line else line
                for line in rendered.split("\n")
            ]
            prev_kind = siblings[pos - 1].get("type") if pos > 0 else None
            tight = kind in _LIST_KINDS and prev_kind in _LIST_KINDS
            if out and not tight and depth == 0:
                out.append("")
            out.append("\n".join(lines))

        children = block.get("children") or []
        if children:
            stack.append((children, depth + 1, 0, 0))

    return "\n".join(out).strip("\n") + "\n" if out else ""


def extract_asset_references(
    blocks: list[Mapping[str, Any]],
) -> list[AssetReference]:
    """Collect downloadable images from a block tree, in document order.

    Notion-hosted ``file`` images are always included; ``external`` images
    only when they point at Notion's own storage.
    """
    refs: list[AssetReference] = []
    seen: set[str] = set()
    pending: list[Mapping[str, Any]] = list(reversed(blocks))
    while pending:
        block = pending.pop()
        if block.get("type") == "image":
            data = block.get("image") or {}
            url = _file_url(data)
            hosted = data.get("type") == "file" or (
                url and is_hosted_url(url)
            )
            if url and hosted and url not in seen:
                seen.add(url)
                expiry = (data.get(data.get("type", "")) or {}).get(
                    "expiry_time"
                )
                refs.append(
                    AssetReference(
                        url=url,
                        expiry_time=expiry,
                        block_id=block.get("id", ""),
                    )
                )
        pending.extend(reversed(block.get("children") or []))
    return refs


def _parse_time(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def earliest_expiry(references: Iterable[AssetReference]) -> str | None:
    """Return the earliest ``expiry_time`` among *references*, or ``None``."""
    best: tuple[datetime, str] | None = None
    for ref in references:
        if not ref.expiry_time:
            continue
        parsed = _parse_time(ref.expiry_time)
        if parsed is None:
            logger.debug("Ignoring unparseable expiry %r", ref.expiry_time)
            continue
        if best is None or parsed < best[0]:
            best = (parsed, ref.expiry_time)
    return best[1] if best else None
