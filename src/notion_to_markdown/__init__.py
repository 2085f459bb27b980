"""Incremental Notion to Markdown synchronization."""

__version__ = "0.1.0"
