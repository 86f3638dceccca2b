"""Runtime settings for a pagesync run.

Resolves the handful of values a run needs from CLI args, environment
variables, .env files and the YAML config.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PAGESYNC_SPACE_KEY: Remote space key (required)
    PAGESYNC_ROOT_PAGE_ID: Remote page the tree is published under (optional)
    PAGESYNC_STATE_FILE: State file path, relative to the docs root (optional)
    PAGESYNC_DELETE_ORPHANS: Delete pages whose document disappeared (optional, default: true)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config_schema import DEFAULT_STATE_FILE, UnifiedConfig
from .validators import validate_space_key

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    space_key: str
    docs_root: Path
    root_page_id: str | None = None
    state_file: str = DEFAULT_STATE_FILE
    delete_orphans: bool = True
    index_file_name: str = "index.md"
    default_root_title: str = "Home"
    lock: bool = True

    @property
    def state_path(self) -> Path:
        """Absolute location of the state file."""
        path = Path(self.state_file).expanduser()
        if path.is_absolute():
            return path
        return self.docs_root / path


def validate_settings(settings: Settings) -> None:
    """Validate settings values and raise ValueError if invalid.

    Raises:
        ValueError: If the space key is malformed or the state file is empty.
    """
    settings.space_key = settings.space_key.strip()
    ok, message = validate_space_key(settings.space_key)
    if not ok:
        raise ValueError(message)

    if not settings.state_file.strip():
        raise ValueError("State file path cannot be empty.")

    if settings.root_page_id is not None:
        settings.root_page_id = settings.root_page_id.strip() or None


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_settings(
    docs_root: Path,
    space_key: str | None = None,
    root_page_id: str | None = None,
    state_file: str | None = None,
    delete_orphans: bool | None = None,
    unified: UnifiedConfig | None = None,
) -> Settings:
    """Load run settings with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        docs_root: Documentation root directory.
        space_key: Override space key (takes precedence over env and YAML).
        root_page_id: Override root page id.
        state_file: Override state file path.
        delete_orphans: Override orphan deletion (``None`` = not given).
        unified: Parsed YAML config; defaults apply when omitted.

    Returns:
        Validated Settings instance.

    Raises:
        ValueError: If no space key is found in any source, or it is invalid.
    """
    cfg = unified or UnifiedConfig()

    final_space = (
        space_key or os.getenv("PAGESYNC_SPACE_KEY") or cfg.space.key
    )
    if not final_space:
        raise ValueError(
            "Space key not found. Set PAGESYNC_SPACE_KEY environment variable, "
            "pass --space, or add 'space.key' to pagesync.yml."
        )

    final_root = (
        root_page_id
        or os.getenv("PAGESYNC_ROOT_PAGE_ID")
        or cfg.space.root_page_id
    )
    final_state_file = (
        state_file or os.getenv("PAGESYNC_STATE_FILE") or cfg.sync.state_file
    )

    if delete_orphans is not None:
        final_delete = delete_orphans
    else:
        env_delete = _get_bool_env("PAGESYNC_DELETE_ORPHANS")
        final_delete = (
            env_delete if env_delete is not None else cfg.sync.delete_orphans
        )

    settings = Settings(
        space_key=final_space,
        docs_root=docs_root,
        root_page_id=final_root,
        state_file=final_state_file,
        delete_orphans=final_delete,
        index_file_name=cfg.sync.index_file_name,
        default_root_title=cfg.sync.default_root_title,
        lock=cfg.sync.lock,
    )

    validate_settings(settings)
    if not settings.delete_orphans:
        logger.info("Orphan deletion disabled for space %s", settings.space_key)

    return settings
