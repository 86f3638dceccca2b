"""Shared pytest fixtures for pagesync tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from pagesync.hierarchy.builder import HierarchyBuilder
from pagesync.hierarchy.models import DocumentRecord
from pagesync.sync.state import PageState, SyncState, SyncStateStore

_ENV_VARS = (
    "PAGESYNC_SPACE_KEY",
    "PAGESYNC_ROOT_PAGE_ID",
    "PAGESYNC_STATE_FILE",
    "PAGESYNC_DELETE_ORPHANS",
    "PAGESYNC_CONFIG",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate every test from the developer's environment and config files."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


def doc(
    relative_path: str,
    title: str | None = None,
    weight: int = 0,
    is_index: bool = False,
    content_hash: str | None = None,
    remote_id_hint: str | None = None,
) -> DocumentRecord:
    """Build a DocumentRecord with a title and hash derived from its path."""
    name = Path(relative_path).stem
    return DocumentRecord(
        relative_path=relative_path,
        title=title or name,
        weight=weight,
        is_index=is_index,
        content_hash=content_hash or f"hash-{relative_path}",
        remote_id_hint=remote_id_hint,
        body=f"body of {relative_path}",
    )


def page(
    remote_id: str | None,
    content_hash: str,
    title: str,
    parent_id: str | None = None,
    version: int = 1,
) -> PageState:
    return PageState(
        remote_id=remote_id,
        content_hash=content_hash,
        title=title,
        parent_id=parent_id,
        version=version,
    )


@pytest.fixture
def builder() -> HierarchyBuilder:
    return HierarchyBuilder()


@pytest.fixture
def guide_docs() -> list[DocumentRecord]:
    """Root index with weight 1 plus a guide directory without an index."""
    return [
        doc("index.md", title="Home", weight=1, is_index=True),
        doc("guide/b.md", title="b"),
        doc("guide/a.md", title="a"),
    ]


@pytest.fixture
def empty_state() -> SyncState:
    return SyncState.empty("DOCS", "100")


@pytest.fixture
def store(tmp_path: Path) -> SyncStateStore:
    return SyncStateStore(tmp_path / ".pagesync" / "state.json")


class FakeClient:
    """In-memory RemotePageClient recording every call.

    Remote ids are handed out sequentially from 1000.  Titles listed in
    ``fail_titles`` make the matching create/update call raise.
    """

    def __init__(self, fail_titles: set[str] | None = None) -> None:
        self.fail_titles = fail_titles or set()
        self.pages: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self._next_id = 1000

    def _check(self, title: str) -> None:
        if title in self.fail_titles:
            raise RuntimeError(f"remote rejected {title}")

    def create_page(self, space_key, title, body, parent_id):
        self.calls.append(("create", title, parent_id))
        self._check(title)
        remote_id = str(self._next_id)
        self._next_id += 1
        self.pages[remote_id] = {
            "title": title,
            "body": body,
            "parent_id": parent_id,
            "space_key": space_key,
        }
        return remote_id

    def update_page(self, remote_id, title, body):
        self.calls.append(("update", remote_id, title))
        self._check(title)
        self.pages.setdefault(remote_id, {}).update(title=title, body=body)

    def delete_page(self, remote_id):
        self.calls.append(("delete", remote_id))
        self.pages.pop(remote_id, None)

    def move_page(self, remote_id, parent_id):
        self.calls.append(("move", remote_id, parent_id))
        self.pages.setdefault(remote_id, {})["parent_id"] = parent_id


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()
