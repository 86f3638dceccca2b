"""Pydantic models for sync planning and execution.

Defines the data contracts shared by the planner, the executor and the
reporter:

- ``SyncActionType``: Enum of possible remote mutations.
- ``ParentRef``: Parent of a page, either an existing remote id or a
  placeholder pointing at an earlier CREATE in the same plan.
- ``SyncAction``: One planned mutation.  Its type decides which optional
  fields may be set; violations fail validation.
- ``SyncPlan``: Ordered actions plus derived counts.
- ``ActionResult``: Outcome of executing (or dry-running) one action.
- ``SyncResult``: Aggregate outcome of executing a plan.

All models are frozen (immutable).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, Field, SkipValidation, model_validator

from ..errors import PlanInvariantError
from ..hierarchy.models import PageNode
from .state import SyncState


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncActionType(str, Enum):
    """Possible remote mutations for one page."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MOVE = "move"
    SKIP = "skip"


class ParentRef(BaseModel):
    """Reference to a page's remote parent.

    Exactly one of the two fields is set:

    Attributes:
        remote_id: Id of a page that already exists remotely.
        action_index: Index, in the same plan, of the CREATE action whose
            resulting page is the parent.  The executor substitutes the
            real id once that CREATE has committed.
    """

    remote_id: str | None = None
    action_index: int | None = Field(default=None, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _exactly_one_target(self) -> ParentRef:
        if (self.remote_id is None) == (self.action_index is None):
            raise ValueError(
                "ParentRef needs exactly one of remote_id or action_index"
            )
        return self

    @classmethod
    def existing(cls, remote_id: str) -> ParentRef:
        return cls(remote_id=remote_id)

    @classmethod
    def pending(cls, action_index: int) -> ParentRef:
        return cls(action_index=action_index)

    @property
    def is_pending(self) -> bool:
        return self.action_index is not None

    def resolve(self, created_ids: Mapping[int, str]) -> str:
        """Return the concrete remote id, using ids of committed CREATEs.

        Raises:
            PlanInvariantError: The placeholder's CREATE has not committed.
        """
        if self.remote_id is not None:
            return self.remote_id
        try:
            return created_ids[self.action_index]  # type: ignore[index]
        except KeyError:
            raise PlanInvariantError(
                f"Parent placeholder #{self.action_index} was never created"
            ) from None

    def describe(self) -> str:
        if self.remote_id is not None:
            return self.remote_id
        return f"<pending #{self.action_index}>"


class SyncAction(BaseModel):
    """A single planned mutation.

    Field population by type:

    ======  ====  =========  ======  ===========
    type    node  remote_id  parent  content_hash
    ======  ====  =========  ======  ===========
    CREATE  yes   never      opt     yes
    UPDATE  yes   yes        never   opt
    DELETE  never yes        never   never
    MOVE    yes   yes        opt     never
    SKIP    opt   opt        never   never
    ======  ====  =========  ======  ===========

    ``parent`` of ``None`` on CREATE/MOVE means "top level of the space".
    """

    type: SyncActionType
    title: str
    relative_path: str
    reason: str
    node: SkipValidation[PageNode | None] = Field(default=None, repr=False)
    remote_id: str | None = None
    parent: ParentRef | None = None
    previous_parent_id: str | None = None
    content_hash: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _fields_match_type(self) -> SyncAction:
        kind = self.type
        problems: list[str] = []

        if kind in (
            SyncActionType.CREATE,
            SyncActionType.UPDATE,
            SyncActionType.MOVE,
        ):
            if self.node is None:
                problems.append("requires a local node")
        if kind is SyncActionType.DELETE and self.node is not None:
            problems.append("must not carry a local node")

        if kind is SyncActionType.CREATE and self.remote_id is not None:
            problems.append("must not carry a remote id")
        if kind in (
            SyncActionType.UPDATE,
            SyncActionType.DELETE,
            SyncActionType.MOVE,
        ):
            if self.remote_id is None:
                problems.append("requires a remote id")

        if kind is SyncActionType.CREATE and self.content_hash is None:
            problems.append("requires a content hash")
        if kind in (
            SyncActionType.DELETE,
            SyncActionType.MOVE,
            SyncActionType.SKIP,
        ):
            if self.content_hash is not None:
                problems.append("must not carry a content hash")

        if kind not in (SyncActionType.CREATE, SyncActionType.MOVE):
            if self.parent is not None:
                problems.append("must not carry a parent")
        if kind is not SyncActionType.MOVE and self.previous_parent_id:
            problems.append("must not carry a previous parent id")

        if problems:
            raise ValueError(
                f"{kind.value.upper()} action for '{self.relative_path}' "
                + "; ".join(problems)
            )
        return self

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        node: PageNode,
        parent: ParentRef | None,
        content_hash: str,
        reason: str = "New page",
    ) -> SyncAction:
        return cls(
            type=SyncActionType.CREATE,
            title=node.title,
            relative_path=node.relative_path,
            reason=reason,
            node=node,
            parent=parent,
            content_hash=content_hash,
        )

    @classmethod
    def update(
        cls,
        node: PageNode,
        remote_id: str,
        content_hash: str | None,
        reason: str = "Content changed",
    ) -> SyncAction:
        return cls(
            type=SyncActionType.UPDATE,
            title=node.title,
            relative_path=node.relative_path,
            reason=reason,
            node=node,
            remote_id=remote_id,
            content_hash=content_hash,
        )

    @classmethod
    def delete(
        cls,
        remote_id: str,
        title: str,
        relative_path: str,
        reason: str = "Orphaned page",
    ) -> SyncAction:
        return cls(
            type=SyncActionType.DELETE,
            title=title,
            relative_path=relative_path,
            reason=reason,
            remote_id=remote_id,
        )

    @classmethod
    def move(
        cls,
        node: PageNode,
        remote_id: str,
        new_parent: ParentRef | None,
        previous_parent_id: str | None,
    ) -> SyncAction:
        return cls(
            type=SyncActionType.MOVE,
            title=node.title,
            relative_path=node.relative_path,
            reason="Parent changed",
            node=node,
            remote_id=remote_id,
            parent=new_parent,
            previous_parent_id=previous_parent_id,
        )

    @classmethod
    def skip(
        cls,
        title: str,
        relative_path: str,
        remote_id: str | None,
        reason: str = "Unchanged",
        node: PageNode | None = None,
    ) -> SyncAction:
        return cls(
            type=SyncActionType.SKIP,
            title=title,
            relative_path=relative_path,
            reason=reason,
            node=node,
            remote_id=remote_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_modifying(self) -> bool:
        """Whether executing this action changes the remote side."""
        return self.type is not SyncActionType.SKIP

    def describe(self) -> str:
        """One-line human-readable rendering."""
        if self.type is SyncActionType.CREATE:
            return f"[CREATE] {self.title} ({self.relative_path})"
        if self.type is SyncActionType.UPDATE:
            return f"[UPDATE] {self.title} ({self.relative_path})"
        if self.type is SyncActionType.DELETE:
            return f"[DELETE] {self.title} (id: {self.remote_id})"
        if self.type is SyncActionType.MOVE:
            target = self.parent.describe() if self.parent else "space root"
            return f"[MOVE] {self.title} to parent {target}"
        return f"[SKIP] {self.title} ({self.reason})"


class SyncPlan(BaseModel):
    """Ordered list of sync actions for one space.

    Attributes:
        actions: Actions in execution order.
        space_key: Target space.
        root_page_id: Remote id the tree is published under.
        total_local_pages: Non-virtual nodes in the local hierarchy.
        total_tracked_pages: Pages recorded in the sync state.
    """

    actions: list[SyncAction] = []
    space_key: str
    root_page_id: str | None = None
    total_local_pages: int = 0
    total_tracked_pages: int = 0

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _placeholders_point_backwards(self) -> SyncPlan:
        for index, action in enumerate(self.actions):
            ref = action.parent
            if ref is None or ref.action_index is None:
                continue
            target = ref.action_index
            if (
                target >= index
                or self.actions[target].type is not SyncActionType.CREATE
            ):
                raise ValueError(
                    f"Action #{index} ({action.relative_path}) references "
                    f"#{target}, which is not an earlier CREATE"
                )
        return self

    @classmethod
    def empty(cls, space_key: str, root_page_id: str | None = None) -> SyncPlan:
        return cls(space_key=space_key, root_page_id=root_page_id)

    def actions_of(self, action_type: SyncActionType) -> list[SyncAction]:
        return [a for a in self.actions if a.type is action_type]

    def count(self, action_type: SyncActionType) -> int:
        return sum(1 for a in self.actions if a.type is action_type)

    @property
    def create_count(self) -> int:
        return self.count(SyncActionType.CREATE)

    @property
    def update_count(self) -> int:
        return self.count(SyncActionType.UPDATE)

    @property
    def delete_count(self) -> int:
        return self.count(SyncActionType.DELETE)

    @property
    def move_count(self) -> int:
        return self.count(SyncActionType.MOVE)

    @property
    def skip_count(self) -> int:
        return self.count(SyncActionType.SKIP)

    @property
    def modifying_count(self) -> int:
        return sum(1 for a in self.actions if a.is_modifying())

    @property
    def has_changes(self) -> bool:
        """True iff at least one non-SKIP action exists."""
        return self.modifying_count > 0

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def summary(self) -> str:
        """Format a human-readable summary of the plan.

        Returns:
            Multi-line summary string with counts by action type.
        """
        lines = [
            "Sync Plan",
            "=========",
            f"Space: {self.space_key}",
            f"Root page: {self.root_page_id or '(space root)'}",
            f"Local pages: {self.total_local_pages}",
            f"Tracked pages: {self.total_tracked_pages}",
            "",
            f"  Create: {self.create_count}",
            f"  Update: {self.update_count}",
            f"  Move:   {self.move_count}",
            f"  Delete: {self.delete_count}",
            f"  Skip:   {self.skip_count}",
            "",
            f"Total changes: {self.modifying_count}",
        ]
        return "\n".join(lines)


class ActionResult(BaseModel):
    """Outcome of executing one sync action.

    Attributes:
        action_type: Type of the executed action.
        title: Page title.
        relative_path: Local relative path.
        success: Whether the action succeeded.
        remote_id: Remote page id after the action, when known.
        content_hash: Content hash now stored for the page.
        error_message: Failure description.
        dry_run: True when nothing was actually executed.
    """

    action_type: SyncActionType
    title: str
    relative_path: str
    success: bool
    remote_id: str | None = None
    content_hash: str | None = None
    error_message: str | None = None
    dry_run: bool = False

    model_config = {"frozen": True}

    @classmethod
    def succeeded(
        cls,
        action: SyncAction,
        remote_id: str | None,
        content_hash: str | None = None,
    ) -> ActionResult:
        return cls(
            action_type=action.type,
            title=action.title,
            relative_path=action.relative_path,
            success=True,
            remote_id=remote_id,
            content_hash=content_hash,
        )

    @classmethod
    def failed(cls, action: SyncAction, error_message: str) -> ActionResult:
        return cls(
            action_type=action.type,
            title=action.title,
            relative_path=action.relative_path,
            success=False,
            remote_id=action.remote_id,
            error_message=error_message,
        )

    @classmethod
    def skipped(cls, action: SyncAction) -> ActionResult:
        return cls(
            action_type=SyncActionType.SKIP,
            title=action.title,
            relative_path=action.relative_path,
            success=True,
            remote_id=action.remote_id,
        )

    @classmethod
    def planned(cls, action: SyncAction) -> ActionResult:
        """Dry-run result: the action would run but nothing was executed."""
        return cls(
            action_type=action.type,
            title=action.title,
            relative_path=action.relative_path,
            success=True,
            remote_id=action.remote_id,
            content_hash=action.content_hash,
            dry_run=True,
        )


class SyncResult(BaseModel):
    """Aggregate outcome of executing a sync plan.

    Attributes:
        success: False if any non-SKIP action failed or the run aborted.
        action_results: One result per attempted action, in plan order.
        started_at: ISO 8601 timestamp when execution started.
        completed_at: ISO 8601 timestamp when execution finished.
        updated_state: State after execution (``None`` for dry runs and
            aborted runs).
        error_message: Reason the run aborted, if it did.
        dry_run: Whether this was a dry run.
    """

    success: bool
    action_results: list[ActionResult] = []
    started_at: str
    completed_at: str
    updated_state: SyncState | None = None
    error_message: str | None = None
    dry_run: bool = False

    model_config = {"frozen": True}

    @classmethod
    def completed(
        cls,
        action_results: list[ActionResult],
        started_at: str,
        updated_state: SyncState,
    ) -> SyncResult:
        return cls(
            success=not any(
                not r.success and r.action_type is not SyncActionType.SKIP
                for r in action_results
            ),
            action_results=action_results,
            started_at=started_at,
            completed_at=utc_now(),
            updated_state=updated_state,
        )

    @classmethod
    def aborted(
        cls,
        action_results: list[ActionResult],
        started_at: str,
        error_message: str,
    ) -> SyncResult:
        return cls(
            success=False,
            action_results=action_results,
            started_at=started_at,
            completed_at=utc_now(),
            error_message=error_message,
        )

    @classmethod
    def for_dry_run(cls, plan: SyncPlan, started_at: str) -> SyncResult:
        return cls(
            success=True,
            action_results=[ActionResult.planned(a) for a in plan.actions],
            started_at=started_at,
            completed_at=utc_now(),
            dry_run=True,
        )

    def _count_succeeded(self, action_type: SyncActionType) -> int:
        return sum(
            1
            for r in self.action_results
            if r.success and r.action_type is action_type
        )

    @property
    def successful_actions(self) -> list[ActionResult]:
        return [r for r in self.action_results if r.success]

    @property
    def failed_actions(self) -> list[ActionResult]:
        return [r for r in self.action_results if not r.success]

    @property
    def created_count(self) -> int:
        return self._count_succeeded(SyncActionType.CREATE)

    @property
    def updated_count(self) -> int:
        return self._count_succeeded(SyncActionType.UPDATE)

    @property
    def deleted_count(self) -> int:
        return self._count_succeeded(SyncActionType.DELETE)

    @property
    def moved_count(self) -> int:
        return self._count_succeeded(SyncActionType.MOVE)

    @property
    def skipped_count(self) -> int:
        return sum(
            1
            for r in self.action_results
            if r.action_type is SyncActionType.SKIP
        )

    @property
    def failed_count(self) -> int:
        return len(self.failed_actions)

    @property
    def total_attempted(self) -> int:
        return sum(
            1
            for r in self.action_results
            if r.action_type is not SyncActionType.SKIP
        )

    @property
    def duration_seconds(self) -> float:
        started = datetime.fromisoformat(self.started_at)
        completed = datetime.fromisoformat(self.completed_at)
        return (completed - started).total_seconds()

    def summary(self) -> str:
        """Format a human-readable summary of the execution.

        Returns:
            Multi-line summary string with counts and failures.
        """
        status = "SUCCESS" if self.success else "FAILED"
        if self.dry_run:
            status += " (dry run)"
        lines = [
            "Sync Result",
            "===========",
            f"Status: {status}",
            f"Duration: {self.duration_seconds:.2f}s",
            "",
            "Results:",
            f"  Created: {self.created_count}",
            f"  Updated: {self.updated_count}",
            f"  Moved:   {self.moved_count}",
            f"  Deleted: {self.deleted_count}",
            f"  Skipped: {self.skipped_count}",
            f"  Failed:  {self.failed_count}",
        ]
        if self.failed_actions:
            lines.append("")
            lines.append("Failures:")
            for r in self.failed_actions:
                lines.append(
                    f"  - {r.title} ({r.relative_path}): {r.error_message}"
                )
        if self.error_message:
            lines.append("")
            lines.append(f"Error: {self.error_message}")
        return "\n".join(lines)
