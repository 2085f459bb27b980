"""Notion property extraction and front-matter construction.

Notion property payloads vary per database schema. Extraction dispatches on
the property ``type`` over a closed set of known kinds; unknown kinds yield
``None`` and are left out of the front matter.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from ..config_schema import PropertyMapping

logger = logging.getLogger(__name__)

PUBLISHED_STATUS = "Published"


def plain_text(rich_text: list[dict[str, Any]] | None) -> str:
    """Concatenate the ``plain_text`` of a rich text array."""
    if not rich_text:
        return ""
    return "".join(rt.get("plain_text", "") for rt in rich_text)


def _title(prop: dict) -> Any:
    return plain_text(prop.get("title")) or None


def _rich_text(prop: dict) -> Any:
    return plain_text(prop.get("rich_text")) or None


def _select(prop: dict) -> Any:
    option = prop.get("select")
    return option.get("name") if option else None


def _multi_select(prop: dict) -> Any:
    options = prop.get("multi_select") or []
    names = [o.get("name") for o in options if o.get("name")]
    return names or None


def _date(prop: dict) -> Any:
    value = prop.get("date")
    return value.get("start") if value else None


def _status(prop: dict) -> Any:
    option = prop.get("status")
    return option.get("name") if option else None


def _number(prop: dict) -> Any:
    return prop.get("number")


def _checkbox(prop: dict) -> Any:
    return bool(prop.get("checkbox", False))


def _people(prop: dict) -> Any:
    people = prop.get("people") or []
    names = [p.get("name") or "Unknown" for p in people]
    return names or None


_EXTRACTORS: dict[str, Callable[[dict], Any]] = {
    "title": _title,
    "rich_text": _rich_text,
    "select": _select,
    "multi_select": _multi_select,
    "date": _date,
    "status": _status,
    "number": _number,
    "checkbox": _checkbox,
    "people": _people,
}


def extract_property(prop: Mapping[str, Any] | None) -> Any:
    """Return the plain Python value of one Notion property.

    Args:
        prop: Property object, e.g. ``{"type": "select", "select": {...}}``.

    Returns:
        ``str``, ``list[str]``, number, ``bool`` or ``None`` for empty
        values and unknown property kinds.
    """
    if not prop:
        return None
    extractor = _EXTRACTORS.get(prop.get("type", ""))
    if extractor is None:
        return None
    return extractor(dict(prop))


def get_page_title(page: Mapping[str, Any]) -> str:
    """Return the plain-text title of a page, or ``"Untitled"``."""
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            title = plain_text(prop.get("title")).strip()
            if title:
                return title
    return "Untitled"


def build_front_matter(
    page: Mapping[str, Any],
    property_map: Mapping[str, PropertyMapping],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the front-matter fields for *page*.

    Always includes ``title``, ``date``, ``lastmod``, ``draft``, ``id``,
    ``last_edited_time``, ``NOTION_METADATA`` and ``UPDATE_TIME``. Mapped
    properties are added under their configured names.
    """
    now = now or datetime.now(timezone.utc)
    fields: dict[str, Any] = {
        "title": get_page_title(page),
        "date": page.get("created_time"),
        "lastmod": page.get("last_edited_time"),
        "draft": True,
    }

    for key, prop in (page.get("properties") or {}).items():
        mapping = property_map.get(key)
        if mapping is None or not isinstance(prop, dict):
            continue
        kind = prop.get("type")
        if kind == "title":
            continue
        if kind != mapping.type:
            logger.debug(
                "Property %r is %s, mapped as %s", key, kind, mapping.type
            )
        value = extract_property(prop)
        if value is None:
            continue
        fields[mapping.name] = value
        if kind == "status" and value == PUBLISHED_STATUS:
            fields["draft"] = False
        if kind == "people":
            fields["authors"] = value

    fields["id"] = page.get("id")
    fields["last_edited_time"] = page.get("last_edited_time")
    fields["NOTION_METADATA"] = {
        "object": page.get("object"),
        "id": page.get("id"),
        "created_time": page.get("created_time"),
        "last_edited_time": page.get("last_edited_time"),
        "parent": page.get("parent"),
        "archived": page.get("archived", False),
        "url": page.get("url"),
    }
    fields["UPDATE_TIME"] = now.isoformat()
    return fields
