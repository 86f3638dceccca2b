"""Hierarchy builder: flat document records -> rooted page tree.

The tree mirrors directory containment:

- a depth-1 index document becomes the root's content; otherwise the root
  is virtual and carries the configured default title;
- a directory with an index document becomes that document's node;
- a directory without one becomes a virtual node titled after its name;
- an index document's node is its directory, so it hangs off the
  grandparent; every other document hangs off its containing directory;
- children are sorted by weight, then case-folded title, then scan order.

Construction runs in two passes.  Pass 1 walks the records once and
collects every node key the tree needs (documents and all ancestor
directories) together with its parent key and scan order.  Pass 2 creates
the nodes in scan order and attaches each one to its already-present
parent.  No index is mutated while the record list is being walked.

Malformed records never abort the build: they are returned as orphans.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable

from ..errors import DuplicateDocumentError
from ..validators import normalize_relative_path
from .models import (
    ROOT_ID,
    DocumentRecord,
    HierarchyResult,
    OrphanDocument,
    PageNode,
    PageTree,
)

logger = logging.getLogger(__name__)


def humanize_directory_name(name: str) -> str:
    """Turn a directory name into a page title.

    ``getting-started_guide`` becomes ``Getting Started Guide``.
    """
    words = name.replace("-", " ").replace("_", " ").split()
    if not words:
        return "Untitled"
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def _parent_dir(path: str) -> str:
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


def _ancestor_dirs(directory: str) -> list[str]:
    """*directory* and its ancestors, outermost first, excluding the root."""
    chain: list[str] = []
    current = directory
    while current:
        chain.append(current)
        current = _parent_dir(current)
    chain.reverse()
    return chain


@dataclass
class _NodeSlot:
    key: str
    parent_key: str
    document: DocumentRecord | None
    order: int


class HierarchyBuilder:
    """Build a ``HierarchyResult`` from parsed document records.

    Args:
        root_title: Root title used when no depth-1 index document exists.
        index_file_name: File name (case-insensitive) that marks a
            directory's index document, in addition to the record's own
            ``is_index`` flag.
        strict: Raise ``DuplicateDocumentError`` on duplicate paths instead
            of recording the later record as an orphan.
    """

    def __init__(
        self,
        root_title: str = "Home",
        index_file_name: str = "index.md",
        strict: bool = False,
    ) -> None:
        self.root_title = root_title
        self.index_file_name = index_file_name
        self.strict = strict

    def is_index(self, doc: DocumentRecord) -> bool:
        name = PurePosixPath(doc.relative_path).name
        return doc.is_index or name.lower() == self.index_file_name.lower()

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def build(self, documents: Iterable[DocumentRecord]) -> HierarchyResult:
        """Build the page tree for *documents*.

        Records are considered in the given order; that order breaks ties
        between siblings with equal weight and title, and decides which of
        two duplicate records wins.
        """
        docs = list(documents)
        logger.info("Building hierarchy from %d documents", len(docs))

        orphans: list[OrphanDocument] = []
        accepted = self._accept_documents(docs, orphans)
        root_doc, index_by_dir, ordered = self._split_documents(
            accepted, orphans
        )

        root = PageNode(
            id=ROOT_ID,
            path="",
            title=root_doc.title if root_doc else self.root_title,
            weight=root_doc.weight if root_doc else 0,
            is_virtual=root_doc is None,
            remote_id=root_doc.remote_id_hint if root_doc else None,
            document=root_doc,
        )
        tree = PageTree(root)
        nodes_by_path: dict[str, PageNode] = {"": root}
        nodes_by_id: dict[str, PageNode] = {ROOT_ID: root}
        virtual_nodes: list[PageNode] = [root] if root.is_virtual else []
        if root_doc is not None:
            nodes_by_path[root_doc.relative_path] = root

        slots = self._collect_slots(index_by_dir, ordered, orphans)

        # Pass 2: materialize in scan order; parents always precede children.
        for slot in slots:
            parent = tree.get(slot.parent_key)
            if parent is None:
                self._orphan_slot(
                    slot,
                    f"Parent chain for '{slot.key}' could not be built",
                    orphans,
                )
                continue

            node = self._make_node(slot)
            try:
                tree.add_child(parent, node)
            except ValueError as exc:
                logger.error(
                    "Failed to add '%s' to hierarchy: %s", slot.key, exc
                )
                self._orphan_slot(slot, str(exc), orphans)
                continue

            nodes_by_id[node.id] = node
            nodes_by_path[node.path] = node
            if node.document is not None:
                nodes_by_path[node.document.relative_path] = node
            if node.is_virtual:
                virtual_nodes.append(node)

        tree.sort_children()

        logger.info(
            "Built hierarchy: %d nodes, %d virtual, %d orphans",
            len(nodes_by_id),
            len(virtual_nodes),
            len(orphans),
        )

        return HierarchyResult(
            tree=tree,
            nodes_by_path=nodes_by_path,
            nodes_by_id=nodes_by_id,
            orphans=orphans,
            virtual_nodes=virtual_nodes,
        )

    # ------------------------------------------------------------------
    # Pass 0: validation and de-duplication
    # ------------------------------------------------------------------

    def _accept_documents(
        self,
        docs: list[DocumentRecord],
        orphans: list[OrphanDocument],
    ) -> list[DocumentRecord]:
        """Normalize paths and drop invalid or duplicate records."""
        accepted: list[DocumentRecord] = []
        seen: set[str] = set()

        for doc in docs:
            try:
                path = normalize_relative_path(doc.relative_path)
            except ValueError as exc:
                self._orphan(doc, str(exc), orphans)
                continue

            if path in seen:
                if self.strict:
                    raise DuplicateDocumentError(path)
                self._orphan(doc, f"Duplicate document path: {path}", orphans)
                continue
            seen.add(path)

            if path != doc.relative_path:
                doc = doc.model_copy(update={"relative_path": path})
            accepted.append(doc)

        return accepted

    def _split_documents(
        self,
        accepted: list[DocumentRecord],
        orphans: list[OrphanDocument],
    ) -> tuple[
        DocumentRecord | None, dict[str, DocumentRecord], list[DocumentRecord]
    ]:
        """Pick one index document per directory.

        Returns the root index document (if any), the remaining index
        documents keyed by directory, and every kept non-root record in
        input order.
        """
        index_by_dir: dict[str, DocumentRecord] = {}
        ordered: list[DocumentRecord] = []

        for doc in accepted:
            if not self.is_index(doc):
                ordered.append(doc)
                continue
            directory = _parent_dir(doc.relative_path)
            if directory in index_by_dir:
                if self.strict:
                    raise DuplicateDocumentError(doc.relative_path)
                self._orphan(
                    doc,
                    f"Duplicate index document for directory "
                    f"'{directory or '/'}' "
                    f"(already {index_by_dir[directory].relative_path})",
                    orphans,
                )
                continue
            index_by_dir[directory] = doc
            if directory:
                ordered.append(doc)

        root_doc = index_by_dir.pop("", None)
        return root_doc, index_by_dir, ordered

    # ------------------------------------------------------------------
    # Pass 1: node keys
    # ------------------------------------------------------------------

    def _collect_slots(
        self,
        index_by_dir: dict[str, DocumentRecord],
        ordered: list[DocumentRecord],
        orphans: list[OrphanDocument],
    ) -> list[_NodeSlot]:
        """Every node the tree needs, in scan order.

        A node's scan order is the position at which its key was first
        required while walking *ordered*; ancestors are always required
        before the node itself.
        """
        directories: set[str] = set()
        for doc in ordered:
            directories.update(_ancestor_dirs(_parent_dir(doc.relative_path)))
        directories.update(index_by_dir)

        slots: dict[str, _NodeSlot] = {}

        def require(key: str) -> None:
            if key in slots:
                return
            document = index_by_dir.get(key) if key in directories else None
            slots[key] = _NodeSlot(
                key=key,
                parent_key=_parent_dir(key),
                document=document,
                order=len(slots),
            )

        for doc in ordered:
            if self.is_index(doc):
                for ancestor in _ancestor_dirs(_parent_dir(doc.relative_path)):
                    require(ancestor)
                continue

            if doc.relative_path in directories:
                self._orphan(
                    doc,
                    f"Document path '{doc.relative_path}' collides with a directory",
                    orphans,
                )
                continue

            for ancestor in _ancestor_dirs(_parent_dir(doc.relative_path)):
                require(ancestor)
            require(doc.relative_path)
            slots[doc.relative_path].document = doc

        return sorted(slots.values(), key=lambda s: s.order)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _make_node(self, slot: _NodeSlot) -> PageNode:
        doc = slot.document
        if doc is None:
            return PageNode(
                id=slot.key,
                path=slot.key,
                title=humanize_directory_name(PurePosixPath(slot.key).name),
                is_virtual=True,
                scan_order=slot.order,
            )
        return PageNode(
            id=slot.key,
            path=slot.key,
            title=doc.title,
            weight=doc.weight,
            remote_id=doc.remote_id_hint,
            document=doc,
            scan_order=slot.order,
        )

    def _orphan_slot(
        self, slot: _NodeSlot, reason: str, orphans: list[OrphanDocument]
    ) -> None:
        if slot.document is not None:
            self._orphan(slot.document, reason, orphans)
        else:
            logger.warning("Skipping directory '%s': %s", slot.key, reason)

    @staticmethod
    def _orphan(
        doc: DocumentRecord, reason: str, orphans: list[OrphanDocument]
    ) -> None:
        logger.warning("Orphaned document %s: %s", doc.relative_path, reason)
        orphans.append(OrphanDocument(document=doc, reason=reason))
