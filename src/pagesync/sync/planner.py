"""Sync planner: local hierarchy + persisted state -> ordered ``SyncPlan``.

The planner is a pure function of its inputs.  It reads no files and makes
no remote calls, so ``plan``/``status`` commands can run it freely.

Ordering contract of the emitted plan:

1. One action per non-virtual node, in tree pre-order (parents before
   children, siblings in sorted order).  A tracked node may get both an
   UPDATE and a MOVE; the UPDATE comes first.
2. Then one action per tracked path that no longer has a local node:
   DELETE (or SKIP when deletion is disabled), deepest first along the
   state's recorded ``parent_id`` chain, so children go before parents.

A node whose parent is created in the same plan refers to it through a
``ParentRef`` placeholder holding the index of that CREATE action.
"""

from __future__ import annotations

import logging
from typing import Union

from ..hierarchy.models import HierarchyResult, PageNode, PageTree
from .models import ParentRef, SyncAction, SyncPlan
from .state import PageState, SyncState

logger = logging.getLogger(__name__)

HierarchyInput = Union[HierarchyResult, PageTree]


class SyncPlanner:
    """Compute the actions that align the remote side with the local tree.

    Args:
        delete_orphans: Emit DELETE for tracked pages with no local
            document.  When False those pages get a SKIP instead.
    """

    def __init__(self, delete_orphans: bool = True) -> None:
        self.delete_orphans = delete_orphans

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def plan(
        self,
        hierarchy: HierarchyInput,
        state: SyncState,
        root_remote_id: str | None = None,
        force: bool = False,
    ) -> SyncPlan:
        """Build the sync plan.

        Args:
            hierarchy: Built hierarchy (or its tree).  Documents the builder
                left out as orphans are never deleted remotely.
            state: State loaded for the target space.
            root_remote_id: Remote page the tree is published under;
                ``None`` publishes at the top level of the space.
            force: Update every tracked page regardless of content hash.

        Returns:
            The ordered ``SyncPlan``.
        """
        if isinstance(hierarchy, HierarchyResult):
            tree = hierarchy.tree
            unplaced = {
                o.document.relative_path for o in hierarchy.orphans
            }
        else:
            tree = hierarchy
            unplaced = set()

        actions: list[SyncAction] = []
        # node id -> reference to that node's remote page
        placed: dict[str, ParentRef] = {}
        local_paths: set[str] = set()

        for node in tree.iter_preorder():
            if node.is_virtual:
                continue
            local_paths.add(node.relative_path)
            parent = self._resolve_parent(tree, node, placed, root_remote_id)
            placed[node.id] = self._plan_node(
                node, parent, state, force, actions
            )

        self._plan_removals(state, local_paths, unplaced, actions)

        plan = SyncPlan(
            actions=actions,
            space_key=state.space_key,
            root_page_id=root_remote_id,
            total_local_pages=len(local_paths),
            total_tracked_pages=len(state.pages),
        )
        logger.info(
            "Planned %d actions (%d create, %d update, %d move, %d delete, "
            "%d skip)",
            len(plan.actions),
            plan.create_count,
            plan.update_count,
            plan.move_count,
            plan.delete_count,
            plan.skip_count,
        )
        return plan

    # ------------------------------------------------------------------
    # Local nodes
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_parent(
        tree: PageTree,
        node: PageNode,
        placed: dict[str, ParentRef],
        root_remote_id: str | None,
    ) -> ParentRef | None:
        """Reference to the nearest non-virtual ancestor's remote page."""
        ancestor = tree.parent_of(node)
        while ancestor is not None:
            if not ancestor.is_virtual:
                return placed[ancestor.id]
            ancestor = tree.parent_of(ancestor)
        if root_remote_id is None:
            return None
        return ParentRef.existing(root_remote_id)

    def _plan_node(
        self,
        node: PageNode,
        parent: ParentRef | None,
        state: SyncState,
        force: bool,
        actions: list[SyncAction],
    ) -> ParentRef:
        """Append the actions for *node*; return the reference children use."""
        path = node.relative_path
        content_hash = node.content_hash or ""
        stored = state.get_page(path)

        if stored is None or stored.remote_id is None:
            reason = "New page" if stored is None else "Missing remote id"
            logger.debug("CREATE %s (%s)", path, reason)
            actions.append(SyncAction.create(node, parent, content_hash, reason))
            return ParentRef.pending(len(actions) - 1)

        remote_id = stored.remote_id
        update_reason = self._update_reason(node, stored, content_hash, force)
        if update_reason is not None:
            logger.debug("UPDATE %s (%s)", path, update_reason)
            actions.append(
                SyncAction.update(node, remote_id, content_hash, update_reason)
            )

        parent_id = parent.remote_id if parent is not None else None
        if (parent is not None and parent.is_pending) or (
            parent_id != stored.parent_id
        ):
            logger.debug(
                "MOVE %s from %s to %s",
                path,
                stored.parent_id,
                parent.describe() if parent else None,
            )
            actions.append(
                SyncAction.move(node, remote_id, parent, stored.parent_id)
            )
        elif update_reason is None:
            actions.append(
                SyncAction.skip(node.title, path, remote_id, "Unchanged", node)
            )

        return ParentRef.existing(remote_id)

    @staticmethod
    def _update_reason(
        node: PageNode, stored: PageState, content_hash: str, force: bool
    ) -> str | None:
        if force:
            return "Force update"
        if stored.content_hash != content_hash:
            return "Content changed"
        if stored.title != node.title:
            return "Title changed"
        return None

    # ------------------------------------------------------------------
    # Tracked pages without a local node
    # ------------------------------------------------------------------

    def _plan_removals(
        self,
        state: SyncState,
        local_paths: set[str],
        unplaced: set[str],
        actions: list[SyncAction],
    ) -> None:
        gone = [p for p in state.tracked_paths() if p not in local_paths]
        if not gone:
            return

        depth = _state_depths(state)
        gone.sort(key=lambda p: (-depth[p], -p.count("/"), p))

        for path in gone:
            page = state.pages[path]
            if path in unplaced:
                actions.append(
                    SyncAction.skip(
                        page.title,
                        path,
                        page.remote_id,
                        "Local document not placed in hierarchy",
                    )
                )
            elif page.remote_id is None:
                actions.append(
                    SyncAction.skip(
                        page.title, path, None, "Never created remotely"
                    )
                )
            elif not self.delete_orphans:
                actions.append(
                    SyncAction.skip(
                        page.title,
                        path,
                        page.remote_id,
                        "Orphaned page (deletion disabled)",
                    )
                )
            else:
                logger.debug("DELETE %s (id %s)", path, page.remote_id)
                actions.append(
                    SyncAction.delete(page.remote_id, page.title, path)
                )


def _state_depths(state: SyncState) -> dict[str, int]:
    """Depth of every tracked path along the recorded ``parent_id`` chain.

    A page whose parent is not tracked has depth 0.  A cycle in corrupted
    state stops the walk at the first repeated page.
    """
    path_by_remote: dict[str, str] = {}
    for path in state.tracked_paths():
        remote_id = state.pages[path].remote_id
        if remote_id is not None:
            path_by_remote.setdefault(remote_id, path)

    depths: dict[str, int] = {}
    for path in state.tracked_paths():
        seen = {path}
        depth = 0
        current = state.pages[path].parent_id
        while current is not None and current in path_by_remote:
            parent_path = path_by_remote[current]
            if parent_path in seen:
                break
            seen.add(parent_path)
            depth += 1
            current = state.pages[parent_path].parent_id
        depths[path] = depth
    return depths
