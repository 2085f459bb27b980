"""
YAML config file discovery and merging.

Config files are looked up by convention, may pull fragments in with
``!include``, and may reference the environment with shell-style
``${VAR}`` expressions. The result is a plain dict handed to
``config.load_config`` for validation.

Usage:
    from notion_to_markdown.config_loader import load_hierarchical_config

    raw = load_hierarchical_config("site/notion.yml")
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "NOTION_SYNC_CONFIG"
PROJECT_DIR = ".notion_sync"
GLOBAL_DIR = Path(".config") / "notion_sync"

# ---------------------------------------------------------------------------
# Environment expressions
# ---------------------------------------------------------------------------

# ${VAR}, ${VAR:-fallback} or ${VAR:?message}
_ENV_EXPR = re.compile(r"\$\{(?P<name>[^}:]+?)(?::(?P<op>[-?])(?P<arg>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand environment expressions inside *value*.

    ``${VAR}`` becomes the variable's value, or ``""`` when unset.
    ``${VAR:-fallback}`` uses *fallback* when VAR is unset or empty.
    ``${VAR:?message}`` raises ``ValueError`` with *message* in that case.
    A ``${`` without a closing brace is kept as written.
    """

    def _expand(match: re.Match) -> str:
        name = match.group("name")
        current = os.environ.get(name, "")
        if current:
            return current
        op, arg = match.group("op"), match.group("arg")
        if op == "-":
            return arg
        if op == "?":
            raise ValueError(
                f"Required environment variable {name} is not set: "
                f"{arg or 'no value'}"
            )
        return ""

    return _ENV_EXPR.sub(_expand, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Apply ``interpolate_env_vars`` to every string in *obj*."""
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(val) for val in obj]
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include <relative or absolute path>``.

    The tag is registered on this subclass only, so ``yaml.safe_load``
    elsewhere keeps rejecting it. ``chain`` lists the files currently being
    loaded, outermost first.
    """

    def __init__(self, stream, chain: tuple[Path, ...] = ()) -> None:
        super().__init__(stream)
        self.chain = chain


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node))
    current = loader.chain[-1]
    if not target.is_absolute():
        target = current.parent / target
    target = target.resolve()

    if target in loader.chain:
        cycle = " -> ".join(str(p) for p in (*loader.chain, target))
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.is_file():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {current})"
        )
    return _load_yaml_with_includes(target, _chain=loader.chain)


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path, *, _chain: tuple[Path, ...] = ()
) -> Any:
    """Parse one YAML file, resolving ``!include`` tags recursively."""
    path = Path(path).resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh, chain=(*_chain, path))
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def _candidate_paths(explicit: str | Path | None) -> list[Path]:
    paths: list[Path] = []
    if explicit is not None:
        chosen = Path(explicit).expanduser().resolve()
        if not chosen.exists():
            raise FileNotFoundError(f"Config file not found: {chosen}")
        paths.append(chosen)

    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        paths.append(Path(from_env).expanduser().resolve())

    project = Path.cwd() / PROJECT_DIR
    paths.extend([project / "config.yml", project / "config.yaml"])
    paths.append(Path.home() / GLOBAL_DIR / "config.yml")
    return paths


def discover_config_files(explicit: str | Path | None = None) -> list[Path]:
    """Existing config files, highest precedence first.

    Order: *explicit* (``--config``), ``$NOTION_SYNC_CONFIG``,
    ``./.notion_sync/config.yml``, ``./.notion_sync/config.yaml``,
    ``~/.config/notion_sync/config.yml``. Duplicates are listed once.

    Raises:
        FileNotFoundError: If *explicit* is given but does not exist.
    """
    found: list[Path] = []
    for path in _candidate_paths(explicit):
        if path.exists() and path not in found:
            found.append(path)
    return found


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(
    explicit: str | Path | None = None,
) -> dict[str, Any]:
    """Load every discovered config file into one dict.

    Files are applied from lowest to highest precedence and a top-level
    section from a later file replaces the whole section from an earlier
    one. Environment expressions are expanded once, after merging.

    Returns:
        The merged dict; empty when no config file exists.

    Raises:
        yaml.YAMLError: If a file is not valid YAML.
        FileNotFoundError: For a missing *explicit* path or include.
        ValueError: For a circular include or a missing required variable.
    """
    paths = discover_config_files(explicit)
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    origin: dict[str, Path] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )
            continue
        for section, value in data.items():
            if section in origin:
                logger.debug(
                    "Section %r from %s replaces %s",
                    section,
                    path,
                    origin[section],
                )
            merged[section] = value
            origin[section] = path

    return _interpolate_recursive(merged)
