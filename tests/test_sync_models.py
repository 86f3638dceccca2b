"""Tests for pagesync.sync.models -- actions, plans and results.

Covers:
- ParentRef exactly-one contract and placeholder resolution
- SyncAction kind/field contract (violations raise ValidationError)
- describe() renderings
- SyncPlan counts, has_changes, placeholder ordering check, summary
- ActionResult / SyncResult success semantics and counts
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from conftest import doc
from pagesync.errors import PlanInvariantError
from pagesync.hierarchy.models import PageNode
from pagesync.sync.models import (
    ActionResult,
    ParentRef,
    SyncAction,
    SyncActionType,
    SyncPlan,
    SyncResult,
)
from pagesync.sync.state import SyncState


def _node(path: str = "guide/a.md", title: str = "A") -> PageNode:
    return PageNode(
        id=path, path=path, title=title, document=doc(path, title=title)
    )


# ---------------------------------------------------------------------------
# ParentRef
# ---------------------------------------------------------------------------


class TestParentRef:
    """Tests for the parent placeholder reference."""

    def test_existing(self):
        """An existing reference resolves to its remote id."""
        ref = ParentRef.existing("42")
        assert ref.is_pending is False
        assert ref.resolve({}) == "42"
        assert ref.describe() == "42"

    def test_pending_resolves_from_created_ids(self):
        """A pending reference resolves through the created-id map."""
        ref = ParentRef.pending(3)
        assert ref.is_pending
        assert ref.resolve({3: "900"}) == "900"
        assert ref.describe() == "<pending #3>"

    def test_pending_unresolved_raises(self):
        """Resolving a pending reference with no created id is a plan invariant error."""
        with pytest.raises(PlanInvariantError):
            ParentRef.pending(0).resolve({})

    def test_requires_exactly_one_target(self):
        """A reference names either a remote id or an action index."""
        with pytest.raises(ValidationError):
            ParentRef()
        with pytest.raises(ValidationError):
            ParentRef(remote_id="1", action_index=0)

    def test_negative_index_rejected(self):
        """Action indexes cannot be negative."""
        with pytest.raises(ValidationError):
            ParentRef(action_index=-1)


# ---------------------------------------------------------------------------
# SyncAction
# ---------------------------------------------------------------------------


class TestSyncActionContract:
    """Tests that an action's type decides which fields it may carry."""

    def test_create_factory(self):
        """The create factory fills type, node and hash."""
        node = _node()
        action = SyncAction.create(node, ParentRef.pending(0), "h1")
        assert action.type is SyncActionType.CREATE
        assert action.node is node
        assert action.remote_id is None
        assert action.content_hash == "h1"
        assert action.relative_path == "guide/a.md"
        assert action.reason == "New page"

    def test_create_with_remote_id_rejected(self):
        """A CREATE must not name a remote id."""
        with pytest.raises(ValidationError, match="must not carry a remote id"):
            SyncAction(
                type=SyncActionType.CREATE,
                title="A",
                relative_path="a.md",
                reason="x",
                node=_node("a.md"),
                remote_id="1",
                content_hash="h",
            )

    def test_create_without_node_rejected(self):
        """A CREATE needs a local node."""
        with pytest.raises(ValidationError, match="requires a local node"):
            SyncAction(
                type=SyncActionType.CREATE,
                title="A",
                relative_path="a.md",
                reason="x",
                content_hash="h",
            )

    def test_delete_with_node_rejected(self):
        """A DELETE must not carry a local node."""
        with pytest.raises(ValidationError, match="must not carry a local node"):
            SyncAction(
                type=SyncActionType.DELETE,
                title="A",
                relative_path="a.md",
                reason="x",
                node=_node("a.md"),
                remote_id="1",
            )

    def test_delete_requires_remote_id(self):
        """A DELETE needs a remote id."""
        with pytest.raises(ValidationError, match="requires a remote id"):
            SyncAction(
                type=SyncActionType.DELETE,
                title="A",
                relative_path="a.md",
                reason="x",
            )

    def test_update_requires_remote_id(self):
        """An UPDATE needs a remote id."""
        with pytest.raises(ValidationError):
            SyncAction(
                type=SyncActionType.UPDATE,
                title="A",
                relative_path="a.md",
                reason="x",
                node=_node("a.md"),
            )

    def test_update_cannot_carry_parent(self):
        """An UPDATE must not carry a parent reference."""
        with pytest.raises(ValidationError, match="must not carry a parent"):
            SyncAction(
                type=SyncActionType.UPDATE,
                title="A",
                relative_path="a.md",
                reason="x",
                node=_node("a.md"),
                remote_id="1",
                parent=ParentRef.existing("2"),
            )

    def test_move_factory(self):
        """The move factory records old and new parents."""
        action = SyncAction.move(_node(), "7", ParentRef.existing("3"), "2")
        assert action.type is SyncActionType.MOVE
        assert action.previous_parent_id == "2"
        assert action.parent.remote_id == "3"

    def test_skip_is_not_modifying(self):
        """SKIP is the only non-modifying action."""
        action = SyncAction.skip("A", "a.md", "1")
        assert action.is_modifying() is False
        assert SyncAction.delete("1", "A", "a.md").is_modifying() is True

    def test_frozen(self):
        """Actions are immutable."""
        action = SyncAction.delete("1", "A", "a.md")
        with pytest.raises(ValidationError):
            action.remote_id = "2"


class TestSyncActionDescribe:
    """Tests for one-line renderings."""

    def test_create(self):
        """CREATE shows title and path."""
        action = SyncAction.create(_node(), None, "h")
        assert action.describe() == "[CREATE] A (guide/a.md)"

    def test_update(self):
        """UPDATE shows title and path."""
        action = SyncAction.update(_node(), "5", "h")
        assert action.describe() == "[UPDATE] A (guide/a.md)"

    def test_delete(self):
        """DELETE shows title and remote id."""
        action = SyncAction.delete("42", "Old", "old/page.md")
        assert action.describe() == "[DELETE] Old (id: 42)"

    def test_move(self):
        """MOVE names the target parent or the space root."""
        action = SyncAction.move(_node(), "5", ParentRef.existing("9"), "8")
        assert action.describe() == "[MOVE] A to parent 9"
        to_top = SyncAction.move(_node(), "5", None, "8")
        assert to_top.describe() == "[MOVE] A to parent space root"

    def test_skip(self):
        """SKIP shows the reason."""
        action = SyncAction.skip("A", "a.md", "1", "Unchanged")
        assert action.describe() == "[SKIP] A (Unchanged)"


# ---------------------------------------------------------------------------
# SyncPlan
# ---------------------------------------------------------------------------


def _sample_plan() -> SyncPlan:
    root = _node("index.md", "Home")
    return SyncPlan(
        space_key="DOCS",
        root_page_id="100",
        total_local_pages=3,
        total_tracked_pages=2,
        actions=[
            SyncAction.create(root, ParentRef.existing("100"), "h0"),
            SyncAction.create(_node("a.md", "A"), ParentRef.pending(0), "h1"),
            SyncAction.update(_node("b.md", "B"), "5", "h2"),
            SyncAction.skip("C", "c.md", "6", node=_node("c.md", "C")),
            SyncAction.delete("42", "Old", "old.md"),
        ],
    )


class TestSyncPlan:
    """Tests for plan counts and invariants."""

    def test_counts(self):
        """Per-type counts match the action list."""
        plan = _sample_plan()
        assert plan.create_count == 2
        assert plan.update_count == 1
        assert plan.delete_count == 1
        assert plan.move_count == 0
        assert plan.skip_count == 1
        assert plan.modifying_count == 4
        assert plan.has_changes is True
        assert plan.is_empty is False

    def test_only_skips_has_no_changes(self):
        """A plan of skips has no changes."""
        plan = SyncPlan(
            space_key="DOCS", actions=[SyncAction.skip("A", "a.md", "1")]
        )
        assert plan.has_changes is False

    def test_empty(self):
        """The empty plan keeps its space and root."""
        plan = SyncPlan.empty("DOCS", "1")
        assert plan.is_empty
        assert plan.has_changes is False
        assert plan.root_page_id == "1"

    def test_forward_placeholder_rejected(self):
        """A placeholder must point at an earlier CREATE."""
        with pytest.raises(ValidationError, match="not an earlier CREATE"):
            SyncPlan(
                space_key="DOCS",
                actions=[
                    SyncAction.create(_node("a.md"), ParentRef.pending(1), "h"),
                    SyncAction.create(_node("b.md"), None, "h"),
                ],
            )

    def test_placeholder_to_non_create_rejected(self):
        """A placeholder cannot point at a non-CREATE action."""
        with pytest.raises(ValidationError):
            SyncPlan(
                space_key="DOCS",
                actions=[
                    SyncAction.update(_node("a.md"), "1", "h"),
                    SyncAction.create(_node("b.md"), ParentRef.pending(0), "h"),
                ],
            )

    def test_actions_of(self):
        """Actions filter by type in plan order."""
        plan = _sample_plan()
        assert [a.relative_path for a in plan.actions_of(SyncActionType.CREATE)] == [
            "index.md",
            "a.md",
        ]

    def test_summary(self):
        """The summary lists space, root and counts."""
        summary = _sample_plan().summary()
        assert "Space: DOCS" in summary
        assert "Root page: 100" in summary
        assert "Create: 2" in summary
        assert "Delete: 1" in summary
        assert "Total changes: 4" in summary


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestSyncResult:
    """Tests for aggregate execution results."""

    def _results(self) -> list[ActionResult]:
        create = SyncAction.create(_node("a.md"), None, "h")
        update = SyncAction.update(_node("b.md"), "5", "h")
        skip = SyncAction.skip("C", "c.md", "6")
        return [
            ActionResult.succeeded(create, "10", "h"),
            ActionResult.failed(update, "boom"),
            ActionResult.skipped(skip),
        ]

    def test_failure_of_modifying_action_fails_run(self):
        """A failed modifying action marks the run unsuccessful."""
        result = SyncResult.completed(
            self._results(),
            "2024-01-01T00:00:00+00:00",
            SyncState.empty("DOCS"),
        )
        assert result.success is False
        assert result.created_count == 1
        assert result.updated_count == 0
        assert result.skipped_count == 1
        assert result.failed_count == 1
        assert result.total_attempted == 2
        assert [r.relative_path for r in result.failed_actions] == ["b.md"]

    def test_all_successful(self):
        """A run with no failures succeeds."""
        results = [r for r in self._results() if r.success]
        result = SyncResult.completed(
            results, "2024-01-01T00:00:00+00:00", SyncState.empty("DOCS")
        )
        assert result.success is True

    def test_aborted(self):
        """An aborted result carries the error and no state."""
        result = SyncResult.aborted([], "2024-01-01T00:00:00+00:00", "disk full")
        assert result.success is False
        assert result.updated_state is None
        assert "Error: disk full" in result.summary()

    def test_dry_run(self):
        """A dry-run result mirrors every planned action."""
        plan = _sample_plan()
        result = SyncResult.for_dry_run(plan, "2024-01-01T00:00:00+00:00")
        assert result.success is True
        assert result.dry_run is True
        assert len(result.action_results) == len(plan.actions)
        assert all(r.dry_run for r in result.action_results)
        assert "(dry run)" in result.summary()

    def test_duration(self):
        """Duration is measured between the two timestamps."""
        result = SyncResult(
            success=True,
            started_at="2024-01-01T00:00:00+00:00",
            completed_at="2024-01-01T00:00:02.500000+00:00",
        )
        assert result.duration_seconds == pytest.approx(2.5)

    def test_summary_lists_failures(self):
        """The summary names each failed action."""
        result = SyncResult.completed(
            self._results(),
            "2024-01-01T00:00:00+00:00",
            SyncState.empty("DOCS"),
        )
        summary = result.summary()
        assert "Status: FAILED" in summary
        assert "b.md" in summary and "boom" in summary
