"""Publish-readiness classification of Notion pages.

A page is processed unless its properties say otherwise:

* Pages nested under another page are always processed (when
  ``always_process_child_pages`` is set).
* A ``status`` property whose value is in ``excluded_statuses`` (compared
  case-insensitively) excludes the page.
* Each ``required_selects`` entry excludes the page only when that select
  property is present with a value outside the allowed set.

Missing properties never exclude a page.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..config_schema import PublishConfig
from ..converters.properties import extract_property

logger = logging.getLogger(__name__)


def is_child_page(page: Mapping[str, Any]) -> bool:
    """Return ``True`` when *page*'s parent is another page."""
    parent = page.get("parent") or {}
    return parent.get("type") == "page_id"


def _status_value(properties: Mapping[str, Any]) -> str | None:
    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("type") == "status":
            value = extract_property(prop)
            if value:
                return str(value)
    return None


def should_process(page: Mapping[str, Any], publish: PublishConfig) -> bool:
    """Decide whether *page* belongs in the output.

    Args:
        page: Page object from the API.
        publish: Publishing rules.

    Returns:
        ``False`` only when a present property explicitly rules the page
        out.
    """
    if publish.always_process_child_pages and is_child_page(page):
        return True

    properties = page.get("properties") or {}

    status = _status_value(properties)
    excluded = {s.lower() for s in publish.excluded_statuses}
    if status is not None and status.lower() in excluded:
        logger.debug("Page %s excluded by status %r", page.get("id"), status)
        return False

    for name, allowed in publish.required_selects.items():
        prop = properties.get(name)
        if not isinstance(prop, dict):
            continue
        value = extract_property(prop)
        if value is None:
            continue
        values = value if isinstance(value, list) else [value]
        allowed_lower = {a.lower() for a in allowed}
        if not any(str(v).lower() in allowed_lower for v in values):
            logger.debug(
                "Page %s excluded by %s=%r", page.get("id"), name, value
            )
            return False

    return True
