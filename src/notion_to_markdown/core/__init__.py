"""Core Notion access shared by the sync engine and the CLI."""

from .async_utils import run_sync
from .client import NotionClient
from .errors import NotionAPIError, PathCollisionError
from .retry import RetryPolicy, with_retry

__all__ = [
    "NotionAPIError",
    "NotionClient",
    "PathCollisionError",
    "RetryPolicy",
    "run_sync",
    "with_retry",
]
