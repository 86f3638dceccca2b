"""Exception types raised by pagesync.

Most problems inside a sync run are recovered locally: malformed documents
become hierarchy orphans and unreadable state degrades to an empty state.
The exceptions below cover the cases that must reach the caller.
"""


class PageSyncError(Exception):
    """Base class for all pagesync errors."""


class DuplicateDocumentError(PageSyncError):
    """Two document records resolve to the same relative path.

    Only raised by a builder constructed with ``strict=True``; the default
    builder records the later record as an orphan instead.
    """

    def __init__(self, relative_path: str) -> None:
        self.relative_path = relative_path
        super().__init__(f"Duplicate document path: {relative_path}")


class SyncStateError(PageSyncError):
    """Persisting sync state failed.

    Fatal for a run: a remote mutation without a matching state write would
    make the next plan propose a redundant CREATE.

    When raised by the executor, ``result`` holds a ``SyncResult`` for the
    actions that finished before the abort; otherwise it is ``None``.
    """

    def __init__(self, message: str, result: object | None = None) -> None:
        self.result = result
        super().__init__(message)


class StateLockedError(PageSyncError):
    """Another run holds the lock marker for the same state file."""

    def __init__(self, lock_path: str, pid: int | None) -> None:
        self.lock_path = lock_path
        self.pid = pid
        if pid is None:
            message = f"State file is locked by another run ({lock_path})"
        else:
            message = f"State file is locked by running process {pid} ({lock_path})"
        super().__init__(message)


class PlanInvariantError(PageSyncError):
    """A plan references something it never defined.

    Raised by the executor when a parent placeholder points at an action
    that is not an earlier CREATE in the same plan.
    """
