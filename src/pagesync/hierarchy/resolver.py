"""Inspection helpers for a built hierarchy.

Used by the ``tree`` command and by tests to check the shape of a
``HierarchyResult``:

- ``validate`` -- consistency findings (empty list when the tree is sound).
- ``statistics`` -- node counts and depth figures.
- ``find_common_ancestor``, ``nodes_at_depth``, ``leaf_nodes``,
  ``branch_nodes`` -- structural queries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .models import HierarchyResult, PageNode, PageTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyStatistics:
    """Summary figures for a hierarchy."""

    total_nodes: int
    real_nodes: int
    virtual_nodes: int
    leaf_nodes: int
    branch_nodes: int
    max_depth: int
    avg_depth: float
    orphan_documents: int


def validate(hierarchy: HierarchyResult) -> list[str]:
    """Check hierarchy consistency.

    Checks:
    - every indexed node is reachable from the root
    - every child points back at the parent that owns it
    - no id appears twice in the tree
    - virtual nodes have no backing document

    Returns:
        Human-readable findings; empty when the hierarchy is consistent.
    """
    errors: list[str] = []
    tree = hierarchy.tree
    reachable = tree.flatten()
    reachable_ids = {node.id for node in reachable}

    for path, node in sorted(hierarchy.nodes_by_path.items()):
        if node.id not in reachable_ids:
            errors.append(f"Node not reachable from root: {path}")

    seen: set[str] = set()
    for node in reachable:
        if node.id in seen:
            errors.append(f"Duplicate node id: {node.id}")
        seen.add(node.id)

        for child in tree.children_of(node):
            if child.parent_id != node.id:
                errors.append(
                    f"Inconsistent parent reference: {child.id} "
                    f"parent should be {node.id or '/'}"
                )

        if node.is_virtual and node.document is not None:
            errors.append(f"Virtual node has a document: {node.id}")

    if errors:
        logger.warning("Hierarchy validation found %d errors", len(errors))
    else:
        logger.debug("Hierarchy validation passed")
    return errors


def statistics(hierarchy: HierarchyResult) -> HierarchyStatistics:
    tree = hierarchy.tree
    nodes = tree.flatten()
    depths = [tree.depth(node) for node in nodes]
    return HierarchyStatistics(
        total_nodes=len(nodes),
        real_nodes=sum(1 for n in nodes if not n.is_virtual),
        virtual_nodes=sum(1 for n in nodes if n.is_virtual),
        leaf_nodes=sum(1 for n in nodes if n.is_leaf),
        branch_nodes=sum(1 for n in nodes if not n.is_leaf),
        max_depth=max(depths, default=0),
        avg_depth=sum(depths) / len(depths) if depths else 0.0,
        orphan_documents=len(hierarchy.orphans),
    )


def find_common_ancestor(
    tree: PageTree, first: PageNode, second: PageNode
) -> PageNode | None:
    """Deepest node that lies on both nodes' paths from the root."""
    first_chain = {node.id for node in tree.path_from_root(first)}
    for candidate in reversed(tree.path_from_root(second)):
        if candidate.id in first_chain:
            return candidate
    return None


def nodes_at_depth(hierarchy: HierarchyResult, depth: int) -> list[PageNode]:
    tree = hierarchy.tree
    return [n for n in tree.iter_preorder() if tree.depth(n) == depth]


def leaf_nodes(hierarchy: HierarchyResult) -> list[PageNode]:
    return [n for n in hierarchy.tree.iter_preorder() if n.is_leaf]


def branch_nodes(hierarchy: HierarchyResult) -> list[PageNode]:
    return [n for n in hierarchy.tree.iter_preorder() if not n.is_leaf]
