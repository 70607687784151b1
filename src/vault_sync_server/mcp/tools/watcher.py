"""MCP tool handlers for the vault file watcher.

Defines three tools:

- ``start_file_watcher`` -- watch every paired vault and queue changes.
- ``stop_file_watcher`` -- stop watching; queued work is kept.
- ``get_watcher_status`` -- whether the watcher runs and what it saw.
"""

from __future__ import annotations

from typing import Any

import mcp.types as types

from ...sync.reporter import format_watcher_status
from ..context import ServerContext
from .errors import (
    build_error_response,
    control_annotations,
    no_args_schema,
    text_result,
)
from .registry import ToolSpec

WATCHER_TOOLS: list[types.Tool] = [
    types.Tool(
        name="start_file_watcher",
        description=(
            "Watch every paired vault for Markdown changes and queue them "
            "for background sync. Hidden folders and excluded paths are "
            "ignored."
        ),
        annotations=control_annotations(),
        inputSchema=no_args_schema(),
    ),
    types.Tool(
        name="stop_file_watcher",
        description="Stop watching the paired vaults. Already queued changes still sync.",
        annotations=control_annotations(),
        inputSchema=no_args_schema(),
    ),
    types.Tool(
        name="get_watcher_status",
        description="Show whether the file watcher is running and how many changes it queued.",
        annotations=control_annotations(read_only=True),
        inputSchema=no_args_schema(),
    ),
]


async def _handle_start(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    if not ctx.settings.pairings:
        return build_error_response(
            "validation_error",
            "No vault pairings configured",
            "Add at least one entry under 'pairings' in the config file.",
        )
    started = ctx.watcher.start()
    status = ctx.watcher.status()
    text = "File watcher started." if started else "File watcher is already running."
    return text_result(
        f"{text}\n{format_watcher_status(status)}",
        {"started": started, **status.model_dump(mode="json")},
    )


async def _handle_stop(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    stopped = await ctx.watcher.stop()
    text = "File watcher stopped." if stopped else "File watcher was not running."
    return text_result(text, {"stopped": stopped})


async def _handle_status(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    status = ctx.watcher.status()
    return text_result(format_watcher_status(status), status.model_dump(mode="json"))


_HANDLERS = {
    "start_file_watcher": _handle_start,
    "stop_file_watcher": _handle_stop,
    "get_watcher_status": _handle_status,
}

WATCHER_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=tool,
        read_only=bool(tool.annotations and tool.annotations.readOnlyHint),
        handler=_HANDLERS[tool.name],
    )
    for tool in WATCHER_TOOLS
]
