"""Tests for pagesync.sync.executor -- applying plans through a client.

Covers:
- Placeholder parents resolved from ids returned by earlier creates
- State checkpointed after every successful action
- Per-action failures do not stop the run; dependants fail fast
- State write failures abort the run
- Dry run touches neither client nor state
- Run lock
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from conftest import FakeClient, doc, page
from pagesync.config import Settings
from pagesync.errors import StateLockedError, SyncStateError
from pagesync.hierarchy.builder import HierarchyBuilder
from pagesync.sync.executor import SyncExecutor
from pagesync.sync.models import SyncActionType
from pagesync.sync.planner import SyncPlanner

ROOT_REMOTE = "100"


def _plan(docs, state):
    return SyncPlanner().plan(
        HierarchyBuilder().build(docs), state, root_remote_id=ROOT_REMOTE
    )


class TestExecute:
    """Tests for a normal run."""

    def test_creates_resolve_placeholders(self, guide_docs, empty_state, store, client):
        """Children are created under the id their parent just received."""
        result = SyncExecutor(client, store).execute(
            _plan(guide_docs, empty_state), empty_state
        )

        assert result.success
        assert result.created_count == 3
        assert client.calls == [
            ("create", "Home", ROOT_REMOTE),
            ("create", "a", "1000"),
            ("create", "b", "1000"),
        ]
        assert client.pages["1001"]["body"] == "body of guide/a.md"
        assert client.pages["1001"]["space_key"] == "DOCS"

    def test_state_records_created_pages(self, guide_docs, empty_state, store, client):
        """Created pages are recorded and persisted."""
        result = SyncExecutor(client, store).execute(
            _plan(guide_docs, empty_state), empty_state
        )
        state = result.updated_state
        a = state.get_page("guide/a.md")
        assert a.remote_id == "1001"
        assert a.parent_id == "1000"
        assert a.content_hash == "hash-guide/a.md"
        assert a.version == 1
        assert state.last_sync is not None
        assert store.load("DOCS") == state

    def test_checkpoint_after_each_action(self, guide_docs, empty_state, store, client):
        """State is saved after every successful action."""
        saved_counts: list[int] = []
        original_save = store.save

        def recording_save(state):
            saved_counts.append(len(state.pages))
            original_save(state)

        with patch.object(store, "save", side_effect=recording_save):
            SyncExecutor(client, store).execute(
                _plan(guide_docs, empty_state), empty_state
            )
        # One save per create, plus the final last_sync save.
        assert saved_counts == [1, 2, 3, 3]

    def test_update_move_delete(self, guide_docs, empty_state, store, client):
        """Changed, moved and orphaned pages each reach the client."""
        executor = SyncExecutor(client, store)
        state = executor.execute(
            _plan(guide_docs, empty_state), empty_state
        ).updated_state

        a = state.get_page("guide/a.md")
        state = state.with_page(
            "guide/a.md",
            a.model_copy(update={"content_hash": "stale", "parent_id": "999"}),
        ).with_page("old.md", page("42", "X", "Old", parent_id=ROOT_REMOTE))
        client.calls.clear()

        result = executor.execute(_plan(guide_docs, state), state)

        assert result.success
        assert client.calls == [
            ("update", "1001", "a"),
            ("move", "1001", "1000"),
            ("delete", "42"),
        ]
        final = result.updated_state
        assert final.get_page("guide/a.md").version == 3
        assert final.get_page("guide/a.md").parent_id == "1000"
        assert final.get_page("guide/a.md").content_hash == "hash-guide/a.md"
        assert not final.has_page("old.md")
        assert (result.updated_count, result.moved_count, result.deleted_count) == (
            1,
            1,
            1,
        )

    def test_recreate_keeps_version_increasing(self, empty_state, store, client):
        """Re-creating an entry that lost its remote id bumps its version."""
        state = empty_state.with_page(
            "a.md", page(None, "old", "a", parent_id=ROOT_REMOTE, version=4)
        )
        plan = _plan([doc("a.md", title="a")], state)
        assert plan.actions[0].reason == "Missing remote id"

        result = SyncExecutor(client, store).execute(plan, state)

        stored = result.updated_state.get_page("a.md")
        assert stored.remote_id == "1000"
        assert stored.version == 5
        assert stored.content_hash == "hash-a.md"
        assert store.load("DOCS").get_page("a.md").version == 5

    def test_from_settings(self, tmp_path, empty_state, client):
        """Settings supply the state file location and the lock switch."""
        settings = Settings(space_key="DOCS", docs_root=tmp_path, lock=False)
        executor = SyncExecutor.from_settings(client, settings)
        assert executor.store.state_file == tmp_path / ".pagesync" / "state.json"
        assert executor.use_lock is False

        lock = executor.store.lock()
        lock.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock.lock_path.write_text("4242")
        with patch("pagesync.sync.state._pid_alive", return_value=True):
            result = executor.execute(
                _plan([doc("a.md", title="a")], empty_state), empty_state
            )
        assert result.success

    def test_second_run_makes_no_calls(self, guide_docs, empty_state, store, client):
        """An unchanged tree makes no remote calls."""
        executor = SyncExecutor(client, store)
        state = executor.execute(
            _plan(guide_docs, empty_state), empty_state
        ).updated_state
        client.calls.clear()

        result = executor.execute(_plan(guide_docs, state), state)
        assert client.calls == []
        assert result.skipped_count == 3


class TestFailures:
    """Tests for partial-failure semantics."""

    def test_failed_parent_fails_children(self, guide_docs, empty_state, store):
        """Children of a failed create fail without a remote call."""
        client = FakeClient(fail_titles={"Home"})
        result = SyncExecutor(client, store).execute(
            _plan(guide_docs, empty_state), empty_state
        )

        assert result.success is False
        assert [r.success for r in result.action_results] == [False, False, False]
        assert "remote rejected Home" in result.action_results[0].error_message
        assert "Parent page was not created" in result.action_results[1].error_message
        # Children were never sent to the remote side.
        assert client.calls == [("create", "Home", ROOT_REMOTE)]
        assert result.updated_state.pages == {}

    def test_failure_does_not_stop_independent_actions(
        self, empty_state, store
    ):
        """Unrelated actions still run after a failure."""
        client = FakeClient(fail_titles={"a"})
        docs = [doc("a.md", title="a"), doc("b.md", title="b")]
        result = SyncExecutor(client, store).execute(
            _plan(docs, empty_state), empty_state
        )

        assert result.success is False
        assert result.created_count == 1
        assert result.failed_count == 1
        assert result.updated_state.tracked_paths() == ["b.md"]
        assert store.load("DOCS").tracked_paths() == ["b.md"]

    def test_failed_create_is_retried_next_run(self, empty_state, store):
        """A failed create is planned again on the next run."""
        docs = [doc("a.md", title="a")]
        failing = FakeClient(fail_titles={"a"})
        state = SyncExecutor(failing, store).execute(
            _plan(docs, empty_state), empty_state
        ).updated_state

        plan = _plan(docs, state)
        assert [a.type for a in plan.actions] == [SyncActionType.CREATE]

    def test_state_write_failure_aborts(self, guide_docs, empty_state, store, client):
        """A failed checkpoint stops the run."""
        with patch.object(store, "save", side_effect=SyncStateError("disk full")):
            with pytest.raises(SyncStateError):
                SyncExecutor(client, store).execute(
                    _plan(guide_docs, empty_state), empty_state
                )
        # The first remote create happened; nothing after it did.
        assert len(client.calls) == 1

    def test_abort_carries_partial_result(
        self, guide_docs, empty_state, store, client
    ):
        """A checkpoint failure reports which actions finished before it."""
        original_save = store.save
        outcomes = [original_save, SyncStateError("disk full")]

        def flaky_save(state):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            outcome(state)

        with patch.object(store, "save", side_effect=flaky_save):
            with pytest.raises(SyncStateError) as exc_info:
                SyncExecutor(client, store).execute(
                    _plan(guide_docs, empty_state), empty_state
                )

        result = exc_info.value.result
        assert result.success is False
        assert result.error_message == "disk full"
        assert [(r.relative_path, r.success) for r in result.action_results] == [
            ("index.md", True),
            ("guide/a.md", False),
        ]
        assert store.load("DOCS").tracked_paths() == ["index.md"]

    def test_final_save_failure_carries_all_results(
        self, empty_state, store, client
    ):
        """A failing closing save still reports every recorded action."""
        docs = [doc("a.md", title="a")]
        plan = _plan(docs, empty_state)
        original_save = store.save
        saves: list[int] = []

        def failing_last_save(state):
            saves.append(1)
            if state.last_sync is not None:
                raise SyncStateError("read-only")
            original_save(state)

        with patch.object(store, "save", side_effect=failing_last_save):
            with pytest.raises(SyncStateError) as exc_info:
                SyncExecutor(client, store).execute(plan, empty_state)

        assert exc_info.value.result.created_count == 1
        assert len(saves) == 2


class TestDryRun:
    """Tests for dry-run execution."""

    def test_dry_run_has_no_side_effects(self, guide_docs, empty_state, store, client):
        """A dry run touches neither the remote side nor the state file."""
        plan = _plan(guide_docs, empty_state)
        result = SyncExecutor(client, store, dry_run=True).execute(
            plan, empty_state
        )

        assert result.success
        assert result.dry_run
        assert result.updated_state is None
        assert len(result.action_results) == 3
        assert client.calls == []
        assert not store.exists()


class TestLocking:
    """Tests for the run lock held during execution."""

    def test_lock_released_after_run(self, guide_docs, empty_state, store, client):
        """The lock file is removed once the run ends."""
        SyncExecutor(client, store).execute(
            _plan(guide_docs, empty_state), empty_state
        )
        assert not store.lock().lock_path.exists()

    def test_locked_state_refuses_to_run(self, guide_docs, empty_state, store, client):
        """A live lock holder blocks the run before any remote call."""
        lock = store.lock()
        lock.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock.lock_path.write_text("4242")
        with patch("pagesync.sync.state._pid_alive", return_value=True):
            with pytest.raises(StateLockedError):
                SyncExecutor(client, store).execute(
                    _plan(guide_docs, empty_state), empty_state
                )
        assert client.calls == []
