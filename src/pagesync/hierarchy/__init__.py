"""Local page hierarchy.

Builds the page tree a sync run plans against from the flat list of
document records produced by the parsing layer.

Modules:

- ``models``   -- ``DocumentRecord``, ``PageNode``, ``PageTree``,
  ``HierarchyResult``, ``OrphanDocument``.
- ``builder``  -- ``HierarchyBuilder``: records -> tree, virtual
  directory nodes, orphan collection.
- ``resolver`` -- validation, statistics and structural queries.
"""

from .builder import HierarchyBuilder, humanize_directory_name
from .models import (
    ROOT_ID,
    DocumentRecord,
    HierarchyResult,
    OrphanDocument,
    PageNode,
    PageTree,
)
from .resolver import HierarchyStatistics

__all__ = [
    "ROOT_ID",
    "DocumentRecord",
    "HierarchyBuilder",
    "HierarchyResult",
    "HierarchyStatistics",
    "OrphanDocument",
    "PageNode",
    "PageTree",
    "humanize_directory_name",
]
