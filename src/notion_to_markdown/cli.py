"""Command-line entry point: one sync run per invocation.

Exit codes: 0 when the run completed (even if some records failed),
1 when it could not start (bad configuration, missing token, Notion
unreachable or rejecting the token).
"""

import argparse
import asyncio
import json
import logging
import sys

import requests
from dotenv import load_dotenv

from . import __version__
from .config import load_config
from .config_loader import load_hierarchical_config
from .core.client import NotionClient
from .core.errors import NotionAPIError
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notion-to-markdown",
        description="Sync Notion pages and databases into Markdown files with YAML front matter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .notion_sync/config.yml)
  notion-to-markdown

  # Preview what would change
  notion-to-markdown --dry-run

  # Explicit config file and JSON report
  notion-to-markdown --config site/notion.yml --json

Note: the report is written to stdout, logs to stderr.
        """,
    )
    parser.add_argument(
        "--config",
        help="Config file path (takes precedence over NOTION_SYNC_CONFIG and discovered files)",
    )
    parser.add_argument(
        "--token",
        help="Override Notion token (takes precedence over NOTION_TOKEN env var and config files)"
        " (visible in process list -- prefer NOTION_TOKEN env var for security)",
    )
    parser.add_argument(
        "--content-dir",
        help="Override the output content directory (default: content)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show planned changes without writing anything",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the report as JSON",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"notion-to-markdown version {__version__}",
    )
    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse arguments, run one sync and print the report.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        raw = load_hierarchical_config(args.config)
        config = load_config(
            raw, token=args.token, content_dir=args.content_dir
        )
    except (ValueError, FileNotFoundError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        debug_format=args.log_format or config.logging.format,
        level=config.logging.level,
    )

    client = NotionClient(config.notion, config.retry.to_policy())

    logger.info("Validating Notion connection...")
    try:
        bot = client.validate_connection()
    except (NotionAPIError, requests.RequestException) as exc:
        logger.error("Failed to connect to Notion: %s", exc)
        print(
            f"Error: Notion connection failed: {exc}. Check NOTION_TOKEN.",
            file=sys.stderr,
        )
        return 1
    logger.info("Connected to Notion as %s", bot)

    engine = SyncEngine(client, config)

    try:
        report = asyncio.run(engine.run(dry_run=args.dry_run))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130

    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_sync_report(report))

    if report.errors:
        logger.warning(
            "%d record(s) failed; see the report for details",
            len(report.errors),
        )
    return 0


def main() -> None:
    """Console script entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
