"""Unified configuration schema for pagesync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the target space, sync behaviour and logging.

Usage:
    from pagesync.config_loader import load_hierarchical_config
    from pagesync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".pagesync/state.json"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SpaceConfig(BaseModel):
    """Target space settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    key: str | None = Field(default=None, description="Remote space key")
    root_page_id: str | None = Field(
        default=None,
        description="Remote id of the page the local tree is published under",
    )
    root_page_title: str | None = Field(
        default=None, description="Title of the remote root page"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync behaviour settings."""

    state_file: str = Field(
        default=DEFAULT_STATE_FILE,
        description="Path of the persisted sync state, relative to the docs root",
    )
    delete_orphans: bool = Field(
        default=True,
        description="Delete remote pages whose local document disappeared",
    )
    index_file_name: str = Field(
        default="index.md",
        description="File name that marks a directory's own page",
    )
    default_root_title: str = Field(
        default="Home",
        description="Root title when the docs root has no index document",
    )
    lock: bool = Field(
        default=True,
        description="Refuse to run while another run holds the state lock",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    space: SpaceConfig = Field(default_factory=SpaceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    Unknown top-level sections are ignored with a warning.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(k for k in raw_data if k not in known)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", ", ".join(unknown)
        )

    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known}
    )
