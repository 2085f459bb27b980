"""
Input validation functions for notion-to-markdown.

Provides validation and normalization for Notion record ids, which show up
in three shapes: dashed UUIDs from the API, undashed hex in share URLs and
mount configuration, and hex embedded at the end of output filenames.
"""

import re

_HEX_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

# "my-post-0123...cdef.md" or a bundle directory "my-post-0123...cdef"
_FILENAME_ID_PATTERN = re.compile(
    r"[-_]([0-9a-fA-F]{32})(?:\.[A-Za-z0-9]+)?$"
)

# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Database id")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def compact_id(record_id: str) -> str:
    """Return *record_id* lowercased with dashes removed."""
    return record_id.replace("-", "").strip().lower()


def format_notion_id(hex_id: str) -> str:
    """Insert dashes into a 32-character hex id (8-4-4-4-12)."""
    h = hex_id.lower()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:]}"


def validate_notion_id(record_id: str) -> tuple[bool, str]:
    """
    Validate a Notion page or database id.

    Args:
        record_id: Id in dashed or undashed form

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not record_id or not record_id.strip():
        return (
            False,
            format_validation_error("Notion id", "cannot be empty"),
        )

    if not _HEX_ID_PATTERN.match(compact_id(record_id)):
        return (
            False,
            format_validation_error(
                f"Notion id '{record_id}'",
                "must be 32 hexadecimal characters (dashes optional)",
            ),
        )

    return (True, "")


def normalize_notion_id(record_id: object) -> str | None:
    """Return the canonical dashed form of *record_id*, or ``None``.

    Accepts anything a YAML header might yield (a hex string that happens
    to be all digits loads as an ``int``).
    """
    if record_id is None:
        return None
    text = str(record_id)
    valid, _ = validate_notion_id(text)
    if not valid:
        return None
    return format_notion_id(compact_id(text))


def extract_id_from_filename(name: str) -> str | None:
    """Recover a canonical id from a filename or bundle directory name.

    Args:
        name: Basename such as ``"my-post-<32 hex>.md"``.

    Returns:
        Dashed id, or ``None`` if *name* carries no embedded id.
    """
    match = _FILENAME_ID_PATTERN.search(name)
    if not match:
        return None
    return format_notion_id(match.group(1))
