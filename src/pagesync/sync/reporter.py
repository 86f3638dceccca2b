"""Sync plan and result formatting functions.

Provides human-readable and machine-readable output:

- ``format_plan_details`` -- per-kind listing of a plan's changes.
- ``format_dry_run_preview`` -- summary plus details, for dry runs.
- ``format_sync_result`` -- post-execution report.
- ``plan_to_json`` / ``result_to_json`` -- structured dicts for ``--json``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import SyncActionType

if TYPE_CHECKING:
    from .models import SyncAction, SyncPlan, SyncResult

# (type, heading, bullet) in display order; SKIP is summarised by count.
_SECTIONS = (
    (SyncActionType.CREATE, "Pages to CREATE:", "+"),
    (SyncActionType.UPDATE, "Pages to UPDATE:", "~"),
    (SyncActionType.MOVE, "Pages to MOVE:", ">"),
    (SyncActionType.DELETE, "Pages to DELETE:", "-"),
)

# ------------------------------------------------------------------
# Plan details
# ------------------------------------------------------------------


def _detail_line(bullet: str, action: SyncAction) -> str:
    if action.type is SyncActionType.DELETE:
        return f"  {bullet} {action.title} (id: {action.remote_id})"
    if action.type is SyncActionType.MOVE:
        target = action.parent.describe() if action.parent else "space root"
        return (
            f"  {bullet} {action.title} "
            f"({action.previous_parent_id or 'space root'} -> {target})"
        )
    return f"  {bullet} {action.title} ({action.relative_path})"


def format_plan_details(plan: SyncPlan) -> str:
    """List the plan's changes grouped by action type.

    Sections are only included when they contain at least one action.

    Args:
        plan: The sync plan.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    for action_type, heading, bullet in _SECTIONS:
        actions = plan.actions_of(action_type)
        if not actions:
            continue
        lines.append(heading)
        for action in actions:
            lines.append(_detail_line(bullet, action))
        lines.append("")

    if plan.skip_count:
        lines.append(f"Unchanged: {plan.skip_count} pages")
        lines.append("")

    if not plan.has_changes:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(plan: SyncPlan) -> str:
    """Summary and details of a plan that will not be executed."""
    lines = [
        "DRY RUN -- No changes will be made",
        "",
        plan.summary(),
        "",
        format_plan_details(plan),
    ]
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Execution result
# ------------------------------------------------------------------


def format_sync_result(result: SyncResult) -> str:
    """Format an execution result as human-readable text.

    Args:
        result: The completed sync result.

    Returns:
        Multi-line formatted string.
    """
    lines = [result.summary(), ""]

    succeeded = [
        r
        for r in result.successful_actions
        if r.action_type is not SyncActionType.SKIP
    ]
    if succeeded and not result.dry_run:
        lines.append("Applied:")
        for r in succeeded:
            suffix = f" -> {r.remote_id}" if r.remote_id else ""
            lines.append(
                f"  [{r.action_type.value.upper()}] {r.relative_path}{suffix}"
            )
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _action_to_json(index: int, action: SyncAction) -> dict:
    entry: dict = {
        "index": index,
        "type": action.type.value,
        "title": action.title,
        "relative_path": action.relative_path,
        "reason": action.reason,
    }
    if action.remote_id is not None:
        entry["remote_id"] = action.remote_id
    if action.parent is not None:
        entry["parent"] = action.parent.model_dump(exclude_none=True)
    if action.previous_parent_id is not None:
        entry["previous_parent_id"] = action.previous_parent_id
    if action.content_hash is not None:
        entry["content_hash"] = action.content_hash
    return entry


def plan_to_json(plan: SyncPlan) -> dict:
    """Convert a plan to a structured dict for JSON serialisation.

    Args:
        plan: The sync plan.

    Returns:
        Dict with space info, counts, and the ordered actions.
    """
    return {
        "space_key": plan.space_key,
        "root_page_id": plan.root_page_id,
        "has_changes": plan.has_changes,
        "summary": {
            "local_pages": plan.total_local_pages,
            "tracked_pages": plan.total_tracked_pages,
            "create": plan.create_count,
            "update": plan.update_count,
            "move": plan.move_count,
            "delete": plan.delete_count,
            "skip": plan.skip_count,
        },
        "actions": [
            _action_to_json(i, a) for i, a in enumerate(plan.actions)
        ],
    }


def result_to_json(result: SyncResult) -> dict:
    results_list = []
    for r in result.action_results:
        entry: dict = {
            "type": r.action_type.value,
            "title": r.title,
            "relative_path": r.relative_path,
            "success": r.success,
        }
        if r.remote_id:
            entry["remote_id"] = r.remote_id
        if r.error_message:
            entry["error"] = r.error_message
        results_list.append(entry)

    return {
        "success": result.success,
        "dry_run": result.dry_run,
        "started_at": result.started_at,
        "completed_at": result.completed_at,
        "summary": {
            "created": result.created_count,
            "updated": result.updated_count,
            "moved": result.moved_count,
            "deleted": result.deleted_count,
            "skipped": result.skipped_count,
            "failed": result.failed_count,
        },
        "error": result.error_message,
        "results": results_list,
    }
