"""
Hierarchical configuration loader for pagesync.

Finds config files by convention, expands ``!include`` directives and
``${VAR}`` references, and merges the files with "project wins" semantics.

Usage:
    from pagesync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(docs_root=Path("docs"))
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PAGESYNC_CONFIG"
PROJECT_CONFIG_NAMES = ("pagesync.yml", "pagesync.yaml")

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` becomes the value of VAR, or an empty string when unset.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * A literal ``${`` without a closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        default = match.group(2)
        return default if default is not None else ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk nested dicts/lists and interpolate env vars in every string."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support (dedicated SafeLoader subclass)
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    A subclass keeps the global ``yaml.SafeLoader`` untouched.  Each load
    carries an include stack used to detect circular includes.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Handle ``!include relative/or/absolute.yml`` directives."""
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        # loader.name is the path of the file currently being parsed
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in [*stack, target])
        raise ValueError(f"Circular include detected: {chain}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(target, _include_stack=[*stack, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load one YAML file with the ``ConfigLoader``."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files(docs_root: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``PAGESYNC_CONFIG`` env var (explicit single path)
        2. ``pagesync.yml`` / ``pagesync.yaml`` in *docs_root*
        3. ``.pagesync/config.yml`` / ``.pagesync/config.yaml`` in CWD
        4. ``~/.config/pagesync/config.yml`` (XDG global)

    Only paths that exist on disk are returned, without duplicates.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser())

    if docs_root is not None:
        candidates.extend(docs_root / name for name in PROJECT_CONFIG_NAMES)

    cwd = Path.cwd()
    candidates.append(cwd / ".pagesync" / "config.yml")
    candidates.append(cwd / ".pagesync" / "config.yaml")

    candidates.append(Path.home() / ".config" / "pagesync" / "config.yml")

    found: list[Path] = []
    for candidate in candidates:
        resolved = candidate.resolve()
        if resolved.exists() and resolved not in found:
            found.append(resolved)
    return found


# ---------------------------------------------------------------------------
# 3a. Config bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# pagesync configuration
#
# Space settings can also be set via environment variables:
#   PAGESYNC_SPACE_KEY, PAGESYNC_ROOT_PAGE_ID, PAGESYNC_STATE_FILE
#
# space:
#   key: DOCS
#   root_page_id: "123456"
#
# sync:
#   state_file: .pagesync/state.json
#   delete_orphans: true
#   index_file_name: index.md
#   default_root_title: Home
#   lock: true
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(docs_root: Path) -> Path:
    """Return the project config file, writing a commented starter if absent.

    Args:
        docs_root: Documentation root the project config lives in.

    Returns:
        Path to the existing or newly created ``pagesync.yml``.
    """
    for name in PROJECT_CONFIG_NAMES:
        existing = docs_root / name
        if existing.exists():
            logger.debug("Config file already exists: %s", existing)
            return existing

    config_path = docs_root / PROJECT_CONFIG_NAMES[0]
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config(docs_root: Path | None = None) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest precedence to highest; each file's
    top-level keys replace (not deep-merge) those from earlier files.
    Env var interpolation runs after the merge.

    Returns an empty dict when no config files exist (zero-config).

    Raises:
        yaml.YAMLError, OSError, ValueError: A discovered file is unreadable.
    """
    paths = discover_config_files(docs_root)
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-mapping root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
