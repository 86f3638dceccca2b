"""Data model for the local page hierarchy.

- ``DocumentRecord``: one parsed source document (input contract from the
  parsing layer).
- ``PageNode``: one node of the tree, either backed by a document or
  synthesized for a directory (virtual).
- ``PageTree``: arena owning every node.  Nodes refer to each other by id:
  a node stores its parent's id and the ordered ids of the children it owns,
  so every traversal is a dict lookup.
- ``HierarchyResult``: output of ``HierarchyBuilder.build``.

Node ids are path-derived: ``""`` for the root, the directory path for a
directory node (virtual or index-backed), the document path otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Iterator

from pydantic import BaseModel, Field

ROOT_ID = ""


class DocumentRecord(BaseModel):
    """A parsed source document.

    Attributes:
        relative_path: Path relative to the documentation root.
        title: Page title resolved by the parser.
        weight: Ordering hint among siblings (lower sorts first).
        is_index: True when the file is its directory's index document.
        content_hash: Opaque fingerprint of the converted content.
        remote_id_hint: Remote page id pre-assigned in frontmatter.
        body: Converted body handed to the remote client on create/update.
    """

    relative_path: str
    title: str
    weight: int = 0
    is_index: bool = False
    content_hash: str = ""
    remote_id_hint: str | None = None
    body: str = Field(default="", repr=False)

    model_config = {"frozen": True}

    @property
    def parent_dir(self) -> str:
        """Containing directory (``""`` at the documentation root)."""
        parent = str(PurePosixPath(self.relative_path).parent)
        return "" if parent == "." else parent

    @property
    def depth(self) -> int:
        """Number of path segments (``index.md`` has depth 1)."""
        return len(PurePosixPath(self.relative_path).parts)


@dataclass(eq=False)
class PageNode:
    """A node in the local page hierarchy.

    Equality and hashing go by ``id``; two nodes with the same id describe
    the same page.
    """

    id: str
    path: str
    title: str
    weight: int = 0
    is_virtual: bool = False
    remote_id: str | None = None
    document: DocumentRecord | None = None
    parent_id: str | None = None
    child_ids: list[str] = field(default_factory=list)
    scan_order: int = 0

    def __post_init__(self) -> None:
        if self.is_virtual and self.document is not None:
            raise ValueError(
                f"Virtual node '{self.id}' cannot have a backing document"
            )

    @property
    def is_root(self) -> bool:
        return self.id == ROOT_ID

    @property
    def is_leaf(self) -> bool:
        return not self.child_ids

    @property
    def relative_path(self) -> str:
        """Key used in the sync state: the backing document's path."""
        if self.document is not None:
            return self.document.relative_path
        return self.path

    @property
    def content_hash(self) -> str | None:
        return self.document.content_hash if self.document else None

    def sort_key(self) -> tuple[int, str, int]:
        return (self.weight, self.title.casefold(), self.scan_order)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PageNode):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return (
            f"PageNode(id={self.id!r}, title={self.title!r}, "
            f"children={len(self.child_ids)})"
        )


class PageTree:
    """Arena of ``PageNode`` objects addressed by id.

    Only ``add_child``, ``remove_child`` and ``sort_children`` change the
    tree's shape.
    """

    def __init__(self, root: PageNode) -> None:
        if root.id != ROOT_ID:
            raise ValueError("Root node must have the empty id")
        self._nodes: dict[str, PageNode] = {root.id: root}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def root(self) -> PageNode:
        return self._nodes[ROOT_ID]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str) -> PageNode | None:
        return self._nodes.get(node_id)

    def parent_of(self, node: PageNode) -> PageNode | None:
        if node.parent_id is None:
            return None
        return self._nodes[node.parent_id]

    def children_of(self, node: PageNode) -> list[PageNode]:
        return [self._nodes[cid] for cid in node.child_ids]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_child(self, parent: PageNode, child: PageNode) -> None:
        """Attach *child* under *parent*, registering it in the arena.

        A child that already has a parent is detached from it first.

        Raises:
            ValueError: If another node with the same id is registered, or
                the attachment would create a cycle.
        """
        existing = self._nodes.get(child.id)
        if existing is not None and existing is not child:
            raise ValueError(f"Duplicate node id: '{child.id}'")
        if parent.id not in self._nodes:
            raise ValueError(f"Parent '{parent.id}' is not in the tree")
        if child is parent or child in self.ancestors(parent):
            raise ValueError(
                f"Attaching '{child.id}' under '{parent.id}' creates a cycle"
            )

        if child.parent_id is not None:
            self.remove_child(self._nodes[child.parent_id], child)

        self._nodes[child.id] = child
        child.parent_id = parent.id
        parent.child_ids.append(child.id)

    def remove_child(self, parent: PageNode, child: PageNode) -> bool:
        """Detach *child* from *parent*.  Returns False if it was not a child.

        The detached subtree stays registered until it is re-attached.
        """
        if child.id not in parent.child_ids:
            return False
        parent.child_ids.remove(child.id)
        child.parent_id = None
        return True

    def sort_children(self, node: PageNode | None = None) -> None:
        """Sort children by weight, title and scan order, recursively."""
        start = node or self.root
        for current in self.flatten(start):
            current.child_ids.sort(key=lambda cid: self._nodes[cid].sort_key())

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def ancestors(self, node: PageNode) -> list[PageNode]:
        """All ancestors ordered from the root down to the parent."""
        chain: list[PageNode] = []
        current = self.parent_of(node)
        while current is not None:
            chain.append(current)
            current = self.parent_of(current)
        chain.reverse()
        return chain

    def path_from_root(self, node: PageNode) -> list[PageNode]:
        return self.ancestors(node) + [node]

    def depth(self, node: PageNode) -> int:
        """Distance from the root (root = 0)."""
        return len(self.ancestors(node))

    def iter_preorder(self, start: PageNode | None = None) -> Iterator[PageNode]:
        """Yield *start* and its descendants, parents before children."""
        stack = [start or self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(
                self._nodes[cid] for cid in reversed(node.child_ids)
            )

    def flatten(self, start: PageNode | None = None) -> list[PageNode]:
        return list(self.iter_preorder(start))

    def descendants(self, node: PageNode) -> list[PageNode]:
        return self.flatten(node)[1:]

    def siblings(self, node: PageNode) -> list[PageNode]:
        parent = self.parent_of(node)
        if parent is None:
            return []
        return [c for c in self.children_of(parent) if c.id != node.id]

    def find_by_path(self, path: str) -> PageNode | None:
        """Find a node reachable from the root by node path or document path."""
        for node in self.iter_preorder():
            if node.path == path or node.relative_path == path:
                return node
        return None

    def print_tree(self, start: PageNode | None = None) -> str:
        """Indented outline of the tree; virtual nodes are marked ``[V]``."""
        start = start or self.root
        base = self.depth(start)
        lines = []
        for node in self.iter_preorder(start):
            indent = "  " * (self.depth(node) - base)
            marker = " [V]" if node.is_virtual else ""
            lines.append(f"{indent}{node.title}{marker} ({node.id or '/'})")
        return "\n".join(lines)


@dataclass(frozen=True)
class OrphanDocument:
    """A document that could not be placed in the hierarchy."""

    document: DocumentRecord
    reason: str


@dataclass
class HierarchyResult:
    """Result of building a page hierarchy.

    Attributes:
        tree: Arena holding every attached node.
        nodes_by_path: Nodes keyed by node path and, for index-backed
            directory nodes, also by the index document's path.
        nodes_by_id: Nodes keyed by id.
        orphans: Documents left out of the tree, with the reason.
        virtual_nodes: Nodes synthesized for directories without an index.
    """

    tree: PageTree
    nodes_by_path: dict[str, PageNode]
    nodes_by_id: dict[str, PageNode]
    orphans: list[OrphanDocument] = field(default_factory=list)
    virtual_nodes: list[PageNode] = field(default_factory=list)

    @property
    def root(self) -> PageNode:
        return self.tree.root

    @property
    def total_nodes(self) -> int:
        return len(self.nodes_by_id)

    @property
    def real_nodes(self) -> int:
        return self.total_nodes - len(self.virtual_nodes)

    @property
    def max_depth(self) -> int:
        return max(
            (self.tree.depth(n) for n in self.tree.iter_preorder()), default=0
        )

    @property
    def orphan_documents(self) -> list[DocumentRecord]:
        return [o.document for o in self.orphans]

    def get_by_path(self, path: str) -> PageNode | None:
        return self.nodes_by_path.get(path)

    def get_by_id(self, node_id: str) -> PageNode | None:
        return self.nodes_by_id.get(node_id)

    def print_tree(self) -> str:
        return self.tree.print_tree()
