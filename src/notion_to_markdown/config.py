"""Runtime configuration resolution.

Combines the YAML config (already merged by ``config_loader``), environment
variables, ``.env`` values and CLI overrides into one validated
``UnifiedConfig``.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    NOTION_TOKEN: Notion integration token (required)
    NOTION_DATABASE_IDS: Database mounts as ``id:folder,id:folder`` (optional)
    NOTION_PAGE_IDS: Page mounts as ``id:folder,id:folder`` (optional)
    NOTION_MAX_PARALLEL_REQUESTS: Max concurrent requests (optional, default: 5)
    NOTION_CONTENT_DIR: Output content directory (optional, default: content)
"""

import logging
import os
from typing import Any

from pydantic import ValidationError

from .config_schema import (
    DatabaseMount,
    MountConfig,
    PageMount,
    UnifiedConfig,
    build_config,
)
from .validators import validate_notion_id

logger = logging.getLogger(__name__)


def parse_mount_list(value: str) -> list[tuple[str, str]]:
    """Parse ``"id:folder,id2:folder2"`` into ``[(id, folder), ...]``.

    A missing folder maps to the content root (``"."``). Empty items are
    ignored.
    """
    mounts: list[tuple[str, str]] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        record_id, _, folder = item.partition(":")
        mounts.append((record_id.strip(), folder.strip() or "."))
    return mounts


def _env_int(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def validate_config(config: UnifiedConfig) -> None:
    """Validate a resolved configuration and raise ValueError if invalid.

    Args:
        config: Fully merged configuration.

    Raises:
        ValueError: If the token is missing, a mount id is malformed, or
            nothing is mounted.
    """
    token = config.notion.token
    if not token or not token.strip():
        raise ValueError(
            "Notion token not found. Set NOTION_TOKEN environment variable, "
            "pass --token CLI argument, or add 'notion.token' to config.yml."
        )

    for db in config.mount.databases:
        valid, reason = validate_notion_id(db.database_id)
        if not valid:
            raise ValueError(f"Invalid database mount: {reason}")
    for page in config.mount.pages:
        valid, reason = validate_notion_id(page.page_id)
        if not valid:
            raise ValueError(f"Invalid page mount: {reason}")

    if not config.mount.databases and not config.mount.pages:
        raise ValueError(
            "Nothing to sync. Set NOTION_DATABASE_IDS or NOTION_PAGE_IDS, "
            "or add 'mount.databases' / 'mount.pages' to config.yml."
        )


def load_config(
    raw: dict[str, Any] | None = None,
    token: str | None = None,
    content_dir: str | None = None,
) -> UnifiedConfig:
    """Resolve configuration with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        raw: Merged YAML dict from ``load_hierarchical_config()``.
        token: CLI token override.
        content_dir: CLI content directory override.

    Returns:
        Validated ``UnifiedConfig``.

    Raises:
        ValueError: If the resulting configuration is incomplete or invalid.
    """
    data: dict[str, Any] = {k: v for k, v in (raw or {}).items()}

    notion = dict(data.get("notion") or {})
    final_token = token or os.getenv("NOTION_TOKEN") or notion.get("token")
    if final_token:
        notion["token"] = final_token.strip()
    max_parallel = _env_int("NOTION_MAX_PARALLEL_REQUESTS", 1, 50)
    if max_parallel is not None:
        notion["max_parallel_requests"] = max_parallel
    data["notion"] = notion

    output = dict(data.get("output") or {})
    final_content_dir = content_dir or os.getenv("NOTION_CONTENT_DIR")
    if final_content_dir:
        output["content_dir"] = final_content_dir
    data["output"] = output

    try:
        config = build_config(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from None

    # Env mounts replace YAML mounts of the same kind
    db_env = os.getenv("NOTION_DATABASE_IDS")
    page_env = os.getenv("NOTION_PAGE_IDS")
    if db_env or page_env:
        databases = (
            [
                DatabaseMount(database_id=i, target_folder=f)
                for i, f in parse_mount_list(db_env)
            ]
            if db_env
            else list(config.mount.databases)
        )
        pages = (
            [
                PageMount(page_id=i, target_folder=f)
                for i, f in parse_mount_list(page_env)
            ]
            if page_env
            else list(config.mount.pages)
        )
        config = config.model_copy(
            update={"mount": MountConfig(databases=databases, pages=pages)}
        )

    validate_config(config)

    logger.debug(
        "Configuration resolved: %d database mount(s), %d page mount(s)",
        len(config.mount.databases),
        len(config.mount.pages),
    )
    return config
