"""Shared pytest fixtures for notion-to-markdown tests."""

from typing import Any
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from notion_to_markdown.config_schema import NotionConfig, UnifiedConfig

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Notion workspace",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Notion workspace"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def notion_config():
    """A NotionConfig with a dummy token."""
    return NotionConfig(token="secret_test_token", page_size=2)


@pytest.fixture
def mock_notion_client(notion_config):
    """Create a mock NotionClient instance for testing."""
    from notion_to_markdown.core.client import NotionClient

    client = MagicMock(spec=NotionClient)
    client.config = notion_config
    return client


@pytest.fixture
def unified_config():
    """Zero-config UnifiedConfig with a token."""
    return UnifiedConfig(notion={"token": "secret_test_token"})


@pytest.fixture
def make_page():
    """Factory fixture building Notion page objects."""

    def _make(
        page_id: str,
        title: str = "Hello World",
        last_edited: str = "2024-01-02T03:04:00.000Z",
        status: str | None = None,
        parent: dict[str, Any] | None = None,
        archived: bool = False,
        **properties: Any,
    ) -> dict[str, Any]:
        props: dict[str, Any] = {
            "Name": {
                "id": "title",
                "type": "title",
                "title": [{"type": "text", "plain_text": title}],
            }
        }
        if status is not None:
            props["Status"] = {
                "id": "st",
                "type": "status",
                "status": {"name": status},
            }
        props.update(properties)
        return {
            "object": "page",
            "id": page_id,
            "created_time": "2024-01-01T00:00:00.000Z",
            "last_edited_time": last_edited,
            "parent": parent
            or {"type": "database_id", "database_id": "d" * 32},
            "archived": archived,
            "url": f"https://www.notion.so/{page_id.replace('-', '')}",
            "properties": props,
        }

    return _make
