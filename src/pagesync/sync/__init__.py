"""Sync planning, state and execution.

Modules:

- ``models``   -- ``SyncAction``, ``ParentRef``, ``SyncPlan``,
  ``ActionResult``, ``SyncResult``.
- ``state``    -- ``PageState``, ``SyncState``, ``SyncStateStore``,
  ``StateLock``.
- ``planner``  -- ``SyncPlanner``: hierarchy + state -> ordered plan.
- ``executor`` -- ``SyncExecutor`` and the ``RemotePageClient`` protocol.
- ``reporter`` -- text and JSON renderings of plans and results.
"""

from .executor import RemotePageClient, SyncExecutor
from .models import (
    ActionResult,
    ParentRef,
    SyncAction,
    SyncActionType,
    SyncPlan,
    SyncResult,
)
from .planner import SyncPlanner
from .state import (
    CURRENT_VERSION,
    PageState,
    StateLock,
    SyncState,
    SyncStateStore,
)

__all__ = [
    "CURRENT_VERSION",
    "ActionResult",
    "PageState",
    "ParentRef",
    "RemotePageClient",
    "StateLock",
    "SyncAction",
    "SyncActionType",
    "SyncExecutor",
    "SyncPlan",
    "SyncPlanner",
    "SyncResult",
    "SyncState",
    "SyncStateStore",
]
