"""YAML front-matter codec for output files."""

from __future__ import annotations

from typing import Any

import frontmatter
import yaml


def serialize(fields: dict[str, Any], body: str) -> str:
    """Render ``---``-delimited YAML front matter followed by *body*."""
    header = yaml.safe_dump(
        fields,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )
    body = body.strip("\n")
    return f"---\n{header}---\n\n{body}\n" if body else f"---\n{header}---\n"


def parse(text: str) -> tuple[dict[str, Any], str]:
    """Split *text* into ``(fields, body)``.

    Text without a front-matter block yields empty fields and the whole
    text as body.

    Raises:
        yaml.YAMLError: If the header block is not valid YAML.
    """
    post = frontmatter.loads(text)
    metadata = post.metadata if isinstance(post.metadata, dict) else {}
    return dict(metadata), post.content
