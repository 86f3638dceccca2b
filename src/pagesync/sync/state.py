"""Sync state persistence layer.

Tracks, per target space, which local relative path maps to which remote
page, together with the content hash, title and parent recorded at the
last successful action.  The state file lives at ``.pagesync/state.json``
under the documentation root unless configured otherwise.

Key design choices:

* **Immutable models** -- ``SyncState`` and ``PageState`` are frozen; every
  change produces a new object (``with_page`` / ``without_page``).
* **Atomic writes** -- ``SyncStateStore.save()`` writes to a temp file then
  calls ``os.replace()`` so readers never see partial data.
* **Reads never fail** -- a missing, unreadable, foreign-space or
  newer-version file loads as an empty state with a warning.  Writes do
  fail, with ``SyncStateError``.
* **Forward readable** -- unknown fields in the file are ignored.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..config_schema import DEFAULT_STATE_FILE
from ..errors import StateLockedError, SyncStateError
from ..validators import normalize_relative_path

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1

# An unreadable lock marker younger than this belongs to a run still taking it.
UNREADABLE_LOCK_GRACE_SECONDS = 10.0

_KEEP = object()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PageState(BaseModel):
    """Persisted record of one synced page.

    Attributes:
        remote_id: Remote page id.  ``None`` only transiently, before the
            first successful create.
        content_hash: Content fingerprint pushed at the last sync.
        title: Page title at the last sync.
        parent_id: Remote parent id at the last sync (``None`` = top level).
        version: Starts at 1, incremented on every update.
        last_modified: ISO 8601 timestamp of the last change.
        last_synced: ISO 8601 timestamp of the last sync.
    """

    remote_id: str | None
    content_hash: str
    title: str
    parent_id: str | None = None
    version: int = Field(default=1, ge=1)
    last_modified: str = Field(default_factory=_utc_now)
    last_synced: str = Field(default_factory=_utc_now)

    model_config = {"frozen": True, "extra": "ignore"}

    @classmethod
    def create(
        cls,
        remote_id: str,
        content_hash: str,
        title: str,
        parent_id: str | None,
    ) -> PageState:
        """State for a freshly created page."""
        return cls(
            remote_id=remote_id,
            content_hash=content_hash,
            title=title,
            parent_id=parent_id,
            version=1,
        )

    def updated(
        self,
        content_hash: str | None = None,
        title: str | None = None,
        parent_id: object = _KEEP,
    ) -> PageState:
        """Copy with the given changes applied and ``version`` incremented.

        ``parent_id`` may be set to ``None`` explicitly (moved to the top
        level), so omission is signalled by a sentinel instead.
        """
        now = _utc_now()
        return self.model_copy(
            update={
                "content_hash": (
                    self.content_hash if content_hash is None else content_hash
                ),
                "title": self.title if title is None else title,
                "parent_id": (
                    self.parent_id if parent_id is _KEEP else parent_id
                ),
                "version": self.version + 1,
                "last_modified": now,
                "last_synced": now,
            }
        )


class SyncState(BaseModel):
    """State of one target space.

    Attributes:
        version: Format version of the persisted file.
        space_key: Space this state belongs to.
        root_page_id: Remote page the tree is published under.
        last_sync: ISO 8601 timestamp of the last completed run.
        pages: Page states keyed by normalized relative path.
    """

    version: int = CURRENT_VERSION
    space_key: str
    root_page_id: str | None = None
    last_sync: str | None = None
    pages: dict[str, PageState] = {}

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("pages")
    @classmethod
    def _normalize_keys(cls, pages: dict[str, PageState]) -> dict[str, PageState]:
        normalized: dict[str, PageState] = {}
        for key, page in pages.items():
            path = normalize_relative_path(key)
            if path in normalized:
                raise ValueError(f"Duplicate page path after normalization: {path}")
            normalized[path] = page
        return normalized

    @classmethod
    def empty(cls, space_key: str, root_page_id: str | None = None) -> SyncState:
        return cls(space_key=space_key, root_page_id=root_page_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_page(self, relative_path: str) -> PageState | None:
        return self.pages.get(relative_path)

    def get_page_by_remote_id(self, remote_id: str) -> PageState | None:
        for page in self.pages.values():
            if page.remote_id == remote_id:
                return page
        return None

    def path_for_remote_id(self, remote_id: str) -> str | None:
        for path, page in sorted(self.pages.items()):
            if page.remote_id == remote_id:
                return path
        return None

    def has_page(self, relative_path: str) -> bool:
        return relative_path in self.pages

    def has_content_changed(self, relative_path: str, content_hash: str) -> bool:
        """True when the path is untracked or its stored hash differs."""
        page = self.pages.get(relative_path)
        return page is None or page.content_hash != content_hash

    def tracked_paths(self) -> list[str]:
        return sorted(self.pages)

    def tracked_remote_ids(self) -> set[str]:
        return {p.remote_id for p in self.pages.values() if p.remote_id}

    # ------------------------------------------------------------------
    # Functional updates
    # ------------------------------------------------------------------

    def with_page(self, relative_path: str, page: PageState) -> SyncState:
        path = normalize_relative_path(relative_path)
        return self.model_copy(update={"pages": {**self.pages, path: page}})

    def without_page(self, relative_path: str) -> SyncState:
        pages = dict(self.pages)
        pages.pop(normalize_relative_path(relative_path), None)
        return self.model_copy(update={"pages": pages})

    def with_last_sync(self, timestamp: str | None = None) -> SyncState:
        return self.model_copy(
            update={"last_sync": timestamp or _utc_now()}
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, text: str) -> SyncState:
        return cls.model_validate_json(text)


class SyncStateStore:
    """Load and save the sync state file.

    Args:
        state_file: Path of the JSON state file.
    """

    def __init__(self, state_file: Path) -> None:
        self.state_file = Path(state_file)

    @classmethod
    def for_directory(
        cls, docs_root: Path, state_file: str = DEFAULT_STATE_FILE
    ) -> SyncStateStore:
        """Store for the default state file under *docs_root*."""
        return cls(Path(docs_root) / state_file)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, space_key: str, root_page_id: str | None = None) -> SyncState:
        """Load the persisted state for *space_key*.

        Never raises.  Returns an empty state when the file is missing,
        unreadable, malformed, written for another space, or written by a
        newer format version.
        """
        if not self.state_file.exists():
            logger.debug(
                "State file %s not found, starting with empty state",
                self.state_file,
            )
            return SyncState.empty(space_key, root_page_id)

        try:
            raw = json.loads(self.state_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(
                "Could not read state file %s (%s), starting with empty state",
                self.state_file,
                exc,
            )
            return SyncState.empty(space_key, root_page_id)

        if not isinstance(raw, dict):
            logger.warning(
                "State file %s does not hold an object, starting with empty state",
                self.state_file,
            )
            return SyncState.empty(space_key, root_page_id)

        version = raw.get("version", CURRENT_VERSION)
        if not isinstance(version, int) or version > CURRENT_VERSION:
            logger.warning(
                "State file version %s is newer than supported version %d, "
                "starting with empty state",
                version,
                CURRENT_VERSION,
            )
            return SyncState.empty(space_key, root_page_id)

        try:
            state = SyncState.model_validate(raw)
        except ValidationError as exc:
            logger.warning(
                "State file %s is malformed (%d errors), starting with empty state",
                self.state_file,
                exc.error_count(),
            )
            return SyncState.empty(space_key, root_page_id)

        if state.space_key != space_key:
            logger.warning(
                "State file space '%s' does not match configured space '%s', "
                "starting with empty state",
                state.space_key,
                space_key,
            )
            return SyncState.empty(space_key, root_page_id)

        if state.root_page_id is None and root_page_id is not None:
            state = state.model_copy(update={"root_page_id": root_page_id})

        logger.info(
            "Loaded sync state with %d tracked pages, last sync: %s",
            len(state.pages),
            state.last_sync or "never",
        )
        return state

    def save(self, state: SyncState) -> None:
        """Persist the complete *state* atomically.

        Creates the parent directory when missing.

        Raises:
            SyncStateError: The state could not be written.
        """
        directory = self.state_file.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(directory), prefix=".state-", suffix=".tmp"
            )
        except OSError as exc:
            logger.error("Failed to save state file %s: %s", self.state_file, exc)
            raise SyncStateError(f"Failed to save sync state: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(state.to_json())
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.state_file)
        except BaseException as exc:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(exc, OSError):
                logger.error(
                    "Failed to save state file %s: %s", self.state_file, exc
                )
                raise SyncStateError(f"Failed to save sync state: {exc}") from exc
            raise

        logger.debug(
            "Saved sync state with %d tracked pages to %s",
            len(state.pages),
            self.state_file,
        )

    # ------------------------------------------------------------------
    # Checkpointed updates
    # ------------------------------------------------------------------

    def update_page(
        self, state: SyncState, relative_path: str, page: PageState
    ) -> SyncState:
        """Record *page* under *relative_path* and save immediately."""
        updated = state.with_page(relative_path, page)
        self.save(updated)
        return updated

    def remove_page(self, state: SyncState, relative_path: str) -> SyncState:
        """Drop *relative_path* from the state and save immediately."""
        updated = state.without_page(relative_path)
        self.save(updated)
        return updated

    def reset(self) -> bool:
        """Delete the state file.  Returns False if there was none."""
        if not self.state_file.exists():
            return False
        self.state_file.unlink()
        logger.info("Deleted state file: %s", self.state_file)
        return True

    def exists(self) -> bool:
        return self.state_file.exists()

    def lock(self) -> StateLock:
        return StateLock(self.state_file)


# ---------------------------------------------------------------------------
# Run lock
# ---------------------------------------------------------------------------


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class StateLock:
    """Pid marker guarding one state file against concurrent runs.

    The marker ``<state_file>.lock`` is a pid file written aside and
    hard-linked into place, so it appears complete or not at all.  A marker
    whose pid is no longer running is stale and gets reclaimed; an
    unreadable one is reclaimed only once it is older than
    ``UNREADABLE_LOCK_GRACE_SECONDS``.

    Usage::

        with StateLock(store.state_file):
            ...
    """

    def __init__(self, state_file: Path) -> None:
        state_file = Path(state_file)
        self.lock_path = state_file.with_name(state_file.name + ".lock")
        self._held = False

    def acquire(self) -> None:
        """Create the marker.

        Raises:
            StateLockedError: Another live process holds the marker.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            if self._place_marker():
                self._held = True
                logger.debug("Acquired lock %s", self.lock_path)
                return

            owner = self._read_owner()
            if owner is None:
                if self._marker_age() < UNREADABLE_LOCK_GRACE_SECONDS:
                    raise StateLockedError(str(self.lock_path), None)
            elif owner != os.getpid() and _pid_alive(owner):
                raise StateLockedError(str(self.lock_path), owner)
            logger.warning(
                "Removing stale lock %s (pid %s)", self.lock_path, owner
            )
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass
        raise StateLockedError(str(self.lock_path), self._read_owner())

    def _place_marker(self) -> bool:
        """Link a fully written pid file into place.

        The marker never exists without its pid, so other runs cannot
        mistake a lock that is being taken for an empty, stale one.
        Returns False when a marker already exists.
        """
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.lock_path.parent), prefix=".lock-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(str(os.getpid()))
            os.link(tmp_path, self.lock_path)
        except FileExistsError:
            return False
        finally:
            os.unlink(tmp_path)
        return True

    def _marker_age(self) -> float:
        try:
            return time.time() - self.lock_path.stat().st_mtime
        except OSError:
            return 0.0

    def release(self) -> None:
        if not self._held:
            return
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass
        self._held = False
        logger.debug("Released lock %s", self.lock_path)

    @property
    def held(self) -> bool:
        return self._held

    def _read_owner(self) -> int | None:
        try:
            return int(self.lock_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> StateLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
