"""MCP tool handlers for vault sync operations.

This package contains MCP tool implementations that wrap the sync engine
with async handlers and structured error responses.
"""

from .errors import build_error_response, translate_remote_error
from .queue import QUEUE_SPECS, QUEUE_TOOLS
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS
from .watcher import WATCHER_SPECS, WATCHER_TOOLS

ALL_SPECS: list[ToolSpec] = SYNC_SPECS + QUEUE_SPECS + WATCHER_SPECS

__all__ = [
    "build_error_response",
    "translate_remote_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "QUEUE_SPECS",
    "WATCHER_SPECS",
    # Tool lists
    "SYNC_TOOLS",
    "QUEUE_TOOLS",
    "WATCHER_TOOLS",
]
