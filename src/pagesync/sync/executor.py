"""Reference executor: applies a ``SyncPlan`` through a remote client.

Actions run strictly in plan order.  Every successful mutation is
checkpointed to the state file before the next action starts, so an
interrupted run leaves state consistent with the actions that completed.

Error handling is per action: a failing remote call is recorded in the
result and the run continues.  Children whose parent CREATE failed fail
with a dependency error instead of being created in the wrong place.
State write failures (``SyncStateError``) abort the run; the raised error
carries a ``SyncResult`` for the actions recorded before the abort.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Protocol

from ..config import Settings
from ..errors import PlanInvariantError, SyncStateError
from .models import (
    ActionResult,
    SyncAction,
    SyncActionType,
    SyncPlan,
    SyncResult,
    utc_now,
)
from .state import PageState, SyncState, SyncStateStore

logger = logging.getLogger(__name__)


class RemotePageClient(Protocol):
    """Remote operations the executor needs.

    Implementations own authentication, retries and error mapping; any
    exception they raise marks the action as failed.
    """

    def create_page(
        self, space_key: str, title: str, body: str, parent_id: str | None
    ) -> str:
        """Create a page and return its remote id."""
        ...

    def update_page(self, remote_id: str, title: str, body: str) -> None:
        ...

    def delete_page(self, remote_id: str) -> None:
        ...

    def move_page(self, remote_id: str, parent_id: str | None) -> None:
        ...


class _DependencyFailed(Exception):
    """The parent this action depends on was not created."""


class SyncExecutor:
    """Execute sync plans against a remote client.

    Args:
        client: Remote page client.
        store: State store used for per-action checkpoints.
        dry_run: Report the plan without calling the client or writing
            state.
        use_lock: Hold the state file's pid lock for the whole run.
    """

    def __init__(
        self,
        client: RemotePageClient,
        store: SyncStateStore,
        dry_run: bool = False,
        use_lock: bool = True,
    ) -> None:
        self.client = client
        self.store = store
        self.dry_run = dry_run
        self.use_lock = use_lock

    @classmethod
    def from_settings(
        cls,
        client: RemotePageClient,
        settings: Settings,
        dry_run: bool = False,
    ) -> SyncExecutor:
        """Executor using the state file and lock setting of *settings*."""
        return cls(
            client,
            SyncStateStore(settings.state_path),
            dry_run=dry_run,
            use_lock=settings.lock,
        )

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def execute(self, plan: SyncPlan, state: SyncState) -> SyncResult:
        """Apply *plan*, starting from *state*.

        Returns:
            A ``SyncResult``.  ``updated_state`` holds the state after the
            last checkpoint.

        Raises:
            SyncStateError: A checkpoint could not be written.  Its
                ``result`` attribute holds the partial ``SyncResult``.
            StateLockedError: Another run holds the state lock.
        """
        started_at = utc_now()

        if self.dry_run:
            logger.info(
                "Dry run: %d actions planned, nothing executed",
                len(plan.actions),
            )
            return SyncResult.for_dry_run(plan, started_at)

        lock = self.store.lock() if self.use_lock else contextlib.nullcontext()
        with lock:
            return self._run(plan, state, started_at)

    def _run(
        self, plan: SyncPlan, state: SyncState, started_at: str
    ) -> SyncResult:
        logger.info(
            "Executing %d actions (%d modifying) for space %s",
            len(plan.actions),
            plan.modifying_count,
            plan.space_key,
        )
        results: list[ActionResult] = []
        created: dict[int, str] = {}
        failed_creates: set[int] = set()

        for index, action in enumerate(plan.actions):
            if action.type is SyncActionType.SKIP:
                results.append(ActionResult.skipped(action))
                continue

            try:
                state, result = self._apply(
                    plan, index, action, state, created, failed_creates
                )
            except PlanInvariantError:
                raise
            except SyncStateError as exc:
                results.append(ActionResult.failed(action, str(exc)))
                self._attach_partial_result(exc, results, started_at)
                raise
            except _DependencyFailed as exc:
                logger.error("Skipping %s: %s", action.relative_path, exc)
                result = ActionResult.failed(action, str(exc))
            except Exception as exc:
                logger.error(
                    "Failed to %s %s: %s",
                    action.type.value,
                    action.relative_path,
                    exc,
                )
                result = ActionResult.failed(action, str(exc))

            if not result.success and action.type is SyncActionType.CREATE:
                failed_creates.add(index)
            results.append(result)

        state = state.with_last_sync()
        try:
            self.store.save(state)
        except SyncStateError as exc:
            self._attach_partial_result(exc, results, started_at)
            raise

        result = SyncResult.completed(results, started_at, state)
        logger.info(
            "Sync finished: %d created, %d updated, %d moved, %d deleted, "
            "%d failed",
            result.created_count,
            result.updated_count,
            result.moved_count,
            result.deleted_count,
            result.failed_count,
        )
        return result

    @staticmethod
    def _attach_partial_result(
        exc: SyncStateError, results: list[ActionResult], started_at: str
    ) -> None:
        """Attach the results gathered so far to a checkpoint failure."""
        logger.error(
            "Aborting run after %d actions: %s", len(results), exc
        )
        exc.result = SyncResult.aborted(results, started_at, str(exc))

    # ------------------------------------------------------------------
    # Per-action handlers
    # ------------------------------------------------------------------

    def _apply(
        self,
        plan: SyncPlan,
        index: int,
        action: SyncAction,
        state: SyncState,
        created: dict[int, str],
        failed_creates: set[int],
    ) -> tuple[SyncState, ActionResult]:
        if action.type is SyncActionType.CREATE:
            parent_id = self._parent_id(action, created, failed_creates)
            remote_id = self.client.create_page(
                plan.space_key, action.title, _body(action), parent_id
            )
            created[index] = remote_id
            stored = state.get_page(action.relative_path)
            if stored is None:
                page = PageState.create(
                    remote_id, action.content_hash or "", action.title, parent_id
                )
            else:
                # Re-created over an entry that lost its remote id.
                page = stored.updated(
                    content_hash=action.content_hash or "",
                    title=action.title,
                    parent_id=parent_id,
                ).model_copy(update={"remote_id": remote_id})
            state = self.store.update_page(state, action.relative_path, page)
            logger.debug("Created %s as %s", action.relative_path, remote_id)
            return state, ActionResult.succeeded(
                action, remote_id, action.content_hash
            )

        remote_id = action.remote_id or ""

        if action.type is SyncActionType.UPDATE:
            self.client.update_page(remote_id, action.title, _body(action))
            stored = state.get_page(action.relative_path)
            page = (
                stored.updated(
                    content_hash=action.content_hash, title=action.title
                )
                if stored is not None
                else PageState.create(
                    remote_id, action.content_hash or "", action.title, None
                )
            )
            state = self.store.update_page(state, action.relative_path, page)
            logger.debug("Updated %s (%s)", action.relative_path, remote_id)
            return state, ActionResult.succeeded(
                action, remote_id, page.content_hash
            )

        if action.type is SyncActionType.MOVE:
            parent_id = self._parent_id(action, created, failed_creates)
            self.client.move_page(remote_id, parent_id)
            stored = state.get_page(action.relative_path)
            if stored is not None:
                state = self.store.update_page(
                    state,
                    action.relative_path,
                    stored.updated(parent_id=parent_id),
                )
            logger.debug(
                "Moved %s under %s", action.relative_path, parent_id
            )
            return state, ActionResult.succeeded(action, remote_id)

        # DELETE
        self.client.delete_page(remote_id)
        state = self.store.remove_page(state, action.relative_path)
        logger.debug("Deleted %s (%s)", action.relative_path, remote_id)
        return state, ActionResult.succeeded(action, remote_id)

    @staticmethod
    def _parent_id(
        action: SyncAction, created: dict[int, str], failed_creates: set[int]
    ) -> str | None:
        ref = action.parent
        if ref is None:
            return None
        if ref.is_pending and ref.action_index in failed_creates:
            raise _DependencyFailed(
                f"Parent page was not created (action #{ref.action_index} failed)"
            )
        return ref.resolve(created)


def _body(action: SyncAction) -> str:
    node = action.node
    if node is None or node.document is None:
        return ""
    return node.document.body

