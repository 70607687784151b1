"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_batch_result`` -- summary of one ``execute_batch`` run.
- ``format_batch_plan`` -- dry-run preview of planned creates/updates.
- ``format_document_result`` -- one-line result of a single-document sync.
- ``format_conflict`` -- conflict details with diff for manual review.
- ``format_queue_stats`` -- queue counters.
- ``format_import_result`` -- remote-to-vault import summary.
- ``format_watcher_status`` -- file watcher state.
- ``batch_result_to_json`` / ``document_result_to_json`` /
  ``import_result_to_json`` -- structured dicts for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        BatchResult,
        ConflictResult,
        CreateOperation,
        DocumentSyncResult,
        ImportResult,
        QueueItem,
        QueueStats,
        UpdateOperation,
    )
    from .watcher import WatcherStatus

# ------------------------------------------------------------------
# Batch report
# ------------------------------------------------------------------


def format_batch_result(result: BatchResult, container_label: str) -> str:
    """Format a batch result as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        result: The completed batch result.
        container_label: Name of the remote container, for the header.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [f"Sync report for '{container_label}'", ""]
    lines.append(result.summary())
    lines.append("")

    if result.created_records:
        lines.append("Created:")
        for r in result.created_records:
            lines.append(f"  {r.path} -> #{r.remote_id} ({r.name})")
        lines.append("")

    if result.updated_records:
        lines.append("Updated:")
        for r in result.updated_records:
            lines.append(f"  {r.path} -> #{r.remote_id} ({r.name})")
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for e in result.errors:
            lines.append(f"  {e.path}: {e.error}")
        lines.append("")

    if result.rolled_back:
        lines.append("Completed steps were rolled back.")

    return "\n".join(lines).rstrip()


def format_batch_plan(
    creates: list[CreateOperation],
    updates: list[UpdateOperation],
    container_label: str,
) -> str:
    """Format the operations a sync would run, without running them."""
    lines: list[str] = ["DRY RUN -- No changes will be made"]
    lines.append(f"Container: {container_label}")
    lines.append("")

    if creates:
        lines.append("[CREATE]")
        for op in creates:
            lines.append(f"  {op.source_doc} (type {op.type_id}): {op.name}")
        lines.append("")

    if updates:
        lines.append("[UPDATE]")
        for op in updates:
            lines.append(f"  {op.source_doc} -> #{op.remote_id}: {op.name}")
        lines.append("")

    if not creates and not updates:
        lines.append("No changes needed.")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Single document
# ------------------------------------------------------------------


def format_document_result(result: DocumentSyncResult) -> str:
    status = "OK" if result.success else "FAILED"
    line = f"[{result.action.value.upper()}] {status}: {result.path}"
    if result.remote_id is not None:
        line += f" (#{result.remote_id})"
    line += f" in {result.duration_ms:.0f} ms"
    if result.error:
        line += f"\n  {result.error}"
    return line


def format_conflict(path: str, conflict: ConflictResult) -> str:
    """Format a conflict check for interactive review.

    Args:
        path: Document path.
        conflict: Result of the three-way check (with diff when both
            sides changed).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [f"Conflict check: {path}", ""]
    lines.append(f"Strategy: {conflict.strategy.value}")
    lines.append(f"Reason: {conflict.reason}")
    changed = ", ".join(s.value for s in conflict.changed_sides) or "none"
    lines.append(f"Changed: {changed}")
    if conflict.last_synced_at:
        lines.append(f"Last synced: {conflict.last_synced_at}")
    lines.append("")

    if conflict.content_diff:
        lines.append(conflict.content_diff)
        lines.append("")

    if conflict.has_conflict:
        lines.append(
            "WARNING: both sides changed. Resolve manually, then sync again."
        )

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Queue
# ------------------------------------------------------------------


def format_queue_stats(
    stats: QueueStats, paused: bool, failed_items: list[QueueItem]
) -> str:
    lines: list[str] = [f"Sync queue ({'paused' if paused else 'running'})"]
    lines.append(
        f"Pending: {stats.pending}, processing: {stats.processing}, "
        f"completed: {stats.completed}, failed: {stats.failed}"
    )
    lines.append(
        f"Total processed: {stats.total_processed}, "
        f"average: {stats.average_processing_time_ms:.0f} ms"
    )
    if stats.last_processed_at is not None:
        lines.append(f"Last processed: {stats.last_processed_at.isoformat()}")

    if failed_items:
        lines.append("")
        lines.append("Failed:")
        for item in failed_items:
            lines.append(
                f"  {item.id} ({item.retries} retries): {item.last_error}"
            )

    return "\n".join(lines)


# ------------------------------------------------------------------
# Remote import and watcher
# ------------------------------------------------------------------


def format_import_result(result: ImportResult, container_label: str) -> str:
    """Format a remote-to-vault import as human-readable text."""
    lines: list[str] = []
    if result.dry_run:
        lines.append("DRY RUN -- No files will be written")
    lines.append(f"Remote import for {container_label}: {result.summary()}")
    lines.append("")

    if result.imported:
        lines.append("[WOULD WRITE]" if result.dry_run else "[WRITTEN]")
        for r in result.imported:
            lines.append(f"  #{r.remote_id} {r.name} -> {r.path}")
        lines.append("")

    if result.skipped:
        lines.append("[SKIPPED]")
        for s in result.skipped:
            lines.append(f"  #{s.remote_id} {s.name}: {s.reason}")
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for e in result.errors:
            lines.append(f"  {e.path}: {e.error}")

    return "\n".join(lines).rstrip()


def format_watcher_status(status: WatcherStatus) -> str:
    lines = [f"File watcher: {'watching' if status.watching else 'stopped'}"]
    for path in status.vault_paths:
        lines.append(f"  {path}")
    lines.append(f"Changes seen: {status.changes_seen}")
    if status.last_change_at is not None:
        lines.append(f"Last change: {status.last_change_at.isoformat()}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def batch_result_to_json(result: BatchResult, container_id: int) -> dict:
    """Convert a batch result to a structured dict.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        "container_id": container_id,
        "counts": {
            "created": result.created,
            "updated": result.updated,
            "conflicts": result.conflicts,
            "skipped": result.skipped,
            "errors": len(result.errors),
        },
        "rolled_back": result.rolled_back,
        "created": [r.model_dump() for r in result.created_records],
        "updated": [r.model_dump() for r in result.updated_records],
        "errors": [e.model_dump() for e in result.errors],
    }


def document_result_to_json(result: DocumentSyncResult) -> dict:
    return result.model_dump(mode="json", exclude_none=True)


def import_result_to_json(result: ImportResult, container_id: int) -> dict:
    return {
        "container_id": container_id,
        "dry_run": result.dry_run,
        "counts": {
            "imported": len(result.imported),
            "skipped": len(result.skipped),
            "errors": len(result.errors),
        },
        "imported": [r.model_dump() for r in result.imported],
        "skipped": [s.model_dump() for s in result.skipped],
        "errors": [e.model_dump() for e in result.errors],
    }
