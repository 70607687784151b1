"""MCP tool handlers for the background sync queue.

Defines six tools:

- ``queue_changes`` -- enqueue changed document paths.
- ``get_queue_stats`` -- counters, latency and failed items.
- ``retry_failed_sync`` / ``clear_failed_sync`` -- failed-item recovery.
- ``pause_sync_queue`` / ``resume_sync_queue`` -- stop/start new batches.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import mcp.types as types

from ...config_schema import PairingConfig
from ...sync.models import ChangeEvent, FileChange
from ...sync.reporter import format_queue_stats
from ..context import ServerContext
from .errors import control_annotations, no_args_schema, text_result
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


QUEUE_TOOLS: list[types.Tool] = [
    types.Tool(
        name="queue_changes",
        description=(
            "Queue changed vault documents for background sync. Changes are "
            "debounced, processed with bounded concurrency and retried with "
            "exponential backoff."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Document paths inside paired vaults",
                },
                "event": {
                    "type": "string",
                    "enum": [e.value for e in ChangeEvent],
                    "default": "change",
                    "description": "Kind of change for all paths",
                },
            },
            "required": ["paths"],
        },
    ),
    types.Tool(
        name="get_queue_stats",
        description="Show sync queue counters, average latency and failed items.",
        annotations=control_annotations(read_only=True),
        inputSchema=no_args_schema(),
    ),
    types.Tool(
        name="retry_failed_sync",
        description="Move every failed queue item back to pending with a fresh retry budget.",
        annotations=control_annotations(),
        inputSchema=no_args_schema(),
    ),
    types.Tool(
        name="clear_failed_sync",
        description="Forget every failed queue item.",
        annotations=control_annotations(),
        inputSchema=no_args_schema(),
    ),
    types.Tool(
        name="pause_sync_queue",
        description="Stop the sync queue from starting new batches. Running work completes.",
        annotations=control_annotations(),
        inputSchema=no_args_schema(),
    ),
    types.Tool(
        name="resume_sync_queue",
        description="Let the sync queue start batches again.",
        annotations=control_annotations(),
        inputSchema=no_args_schema(),
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_queue_changes(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``queue_changes`` tool."""
    paths = args.get("paths") or []
    if not paths:
        raise ValueError("paths must contain at least one document path")
    event = ChangeEvent(args.get("event", ChangeEvent.CHANGE.value))

    groups: dict[int, tuple[PairingConfig, list[FileChange]]] = {}
    unpaired: list[str] = []
    for raw in paths:
        path = str(Path(raw).expanduser().resolve())
        pairing = ctx.settings.pairing_for_path(path)
        if pairing is None:
            unpaired.append(path)
            continue
        _, changes = groups.setdefault(pairing.container_id, (pairing, []))
        changes.append(FileChange(path=path, event=event))

    accepted = 0
    for pairing, changes in groups.values():
        accepted += ctx.queue.enqueue(changes, pairing)

    lines = [f"Queued {accepted} of {len(paths)} changes."]
    if unpaired:
        lines.append("Not in any paired vault:")
        lines.extend(f"  {p}" for p in unpaired)
    if ctx.queue.paused:
        lines.append("Queue is paused; use resume_sync_queue to process.")

    return text_result(
        "\n".join(lines),
        {"accepted": accepted, "unpaired": unpaired, "paused": ctx.queue.paused},
    )


async def _handle_get_queue_stats(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``get_queue_stats`` tool."""
    stats = ctx.queue.get_stats()
    failed = ctx.queue.get_failed_items()
    structured = stats.model_dump(mode="json")
    structured["paused"] = ctx.queue.paused
    structured["failed_items"] = [
        {"path": item.id, "retries": item.retries, "error": item.last_error}
        for item in failed
    ]
    return text_result(format_queue_stats(stats, ctx.queue.paused, failed), structured)


async def _handle_retry_failed(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    count = ctx.queue.retry_failed()
    return text_result(f"Re-queued {count} failed items.", {"count": count})


async def _handle_clear_failed(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    count = ctx.queue.clear_failed()
    return text_result(f"Cleared {count} failed items.", {"count": count})


async def _handle_pause(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    ctx.queue.pause()
    return text_result("Sync queue paused.", {"paused": True})


async def _handle_resume(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    ctx.queue.resume()
    return text_result("Sync queue resumed.", {"paused": False})


_HANDLERS = {
    "queue_changes": _handle_queue_changes,
    "get_queue_stats": _handle_get_queue_stats,
    "retry_failed_sync": _handle_retry_failed,
    "clear_failed_sync": _handle_clear_failed,
    "pause_sync_queue": _handle_pause,
    "resume_sync_queue": _handle_resume,
}

QUEUE_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=tool,
        read_only=bool(tool.annotations and tool.annotations.readOnlyHint),
        handler=_HANDLERS[tool.name],
    )
    for tool in QUEUE_TOOLS
]
