"""MCP tool handlers for vault document sync.

Defines five tools:

- ``sync_document`` -- sync one document now.
- ``sync_vault`` -- sync every document of a paired vault in one batch
  (with optional dry-run and rollback).
- ``check_conflict`` -- three-way check with diff for a tracked document.
- ``sync_status`` -- state-store summary per pairing.
- ``sync_remote_to_vault`` -- write remote records that have no document
  yet into the vault folder mapped to their type.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import mcp.types as types

from ...config_schema import PairingConfig
from ...core.async_utils import run_sync
from ...core.client import RemoteRecord
from ...file_handler import document_exists, read_document
from ...sync.dispatcher import document_title
from ...sync.frontmatter import extract_frontmatter, frontmatter_tags
from ...sync.mapper import (
    discover_documents,
    document_filename,
    folder_for_type,
    is_excluded,
    resolve_tag_ids,
    resolve_type_id,
)
from ...sync.models import (
    BatchError,
    CreateOperation,
    ImportResult,
    ImportSkip,
    RollbackEntry,
    SyncAction,
    SyncedRecord,
    Tracked,
    UpdateOperation,
    Untracked,
)
from ...sync.reporter import (
    batch_result_to_json,
    document_result_to_json,
    format_batch_plan,
    format_batch_result,
    format_conflict,
    format_document_result,
    format_import_result,
    import_result_to_json,
)
from ..context import ServerContext
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="sync_document",
        description=(
            "Synchronize one vault document with its remote design element. "
            "Creates the element on first sync, pushes local edits, pulls "
            "remote-only edits and reports conflicts when both sides changed."
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
                "path": {
                    "type": "string",
                    "description": "Path of the Markdown document inside a paired vault",
                },
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="sync_vault",
        description=(
            "Synchronize every document of a paired vault in one batch. "
            "Unlinked documents in mapped folders are created, linked "
            "documents are pushed."
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
                "container_id": {
                    "type": "integer",
                    "description": "Remote container (project) ID of the pairing",
                },
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Preview the planned operations without applying them",
                },
                "stop_on_error": {
                    "type": "boolean",
                    "default": False,
                    "description": "Stop at the first failed document",
                },
                "rollback_on_error": {
                    "type": "boolean",
                    "default": False,
                    "description": "With stop_on_error, undo everything done before the failure",
                },
            },
            "required": ["container_id"],
        },
    ),
    types.Tool(
        name="check_conflict",
        description=(
            "Compare a linked document and its remote element against the "
            "last sync and show a diff when both changed."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path of a linked Markdown document",
                },
            },
            "required": ["path"],
        },
    ),
    types.Tool(
        name="sync_status",
        description="Show the number of tracked documents per pairing and the state file location.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="sync_remote_to_vault",
        description=(
            "Import remote design elements that have no vault document yet. "
            "Each element is written as a linked Markdown document into the "
            "vault folder mapped to its type. Existing files are never "
            "overwritten."
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
                "container_id": {
                    "type": "integer",
                    "description": "Remote container (project) ID of the pairing",
                },
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                    "description": "Preview the documents that would be written",
                },
            },
            "required": ["container_id"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


async def plan_vault_sync(
    ctx: ServerContext, pairing: PairingConfig
) -> tuple[list[CreateOperation], list[UpdateOperation], list[str]]:
    """Build the create/update operations for every document of *pairing*.

    Returns:
        ``(creates, updates, skipped)`` where *skipped* lists documents
        that are unmapped or in an inconsistent state.
    """
    creates: list[CreateOperation] = []
    updates: list[UpdateOperation] = []
    skipped: list[str] = []

    documents = await run_sync(discover_documents, pairing.root, pairing.exclude)
    for doc in documents:
        path = str(doc)
        content = await run_sync(read_document, path)
        frontmatter = extract_frontmatter(content)
        name = document_title(path, frontmatter)

        match ctx.dispatcher.determine_status(path, frontmatter):
            case Untracked():
                type_id = resolve_type_id(path, pairing)
                if type_id is None:
                    skipped.append(path)
                    continue
                tags = frontmatter_tags(frontmatter)
                creates.append(
                    CreateOperation(
                        type_id=type_id,
                        name=name,
                        body=content,
                        source_doc=path,
                        tags=tags,
                        tag_ids=resolve_tag_ids(tags, pairing),
                    )
                )
            case Tracked(remote_id=remote_id):
                updates.append(
                    UpdateOperation(
                        remote_id=remote_id, name=name, body=content, source_doc=path
                    )
                )
            case _:
                skipped.append(path)

    return creates, updates, skipped


async def plan_remote_import(
    ctx: ServerContext, pairing: PairingConfig, records: list[RemoteRecord]
) -> tuple[list[tuple[RemoteRecord, str]], list[ImportSkip]]:
    """Decide where each remote record of *pairing* would be written.

    A record is skipped when a document is already linked to it, when it
    has no type or its type has no mapped folder, when the target falls
    under an exclude pattern, or when the target file already exists.

    Returns:
        ``(planned, skipped)`` where *planned* pairs each record with its
        absolute target path.
    """
    planned: list[tuple[RemoteRecord, str]] = []
    skipped: list[ImportSkip] = []
    claimed: set[str] = set()

    def _skip(record: RemoteRecord, reason: str) -> None:
        skipped.append(ImportSkip(remote_id=record.id, name=record.name, reason=reason))

    for record in records:
        linked = ctx.state_store.reverse_lookup(record.id)
        if linked is not None:
            _skip(record, f"Already linked to {linked[0]}")
            continue
        if record.type_id is None:
            _skip(record, "No type information")
            continue
        folder = folder_for_type(record.type_id, pairing)
        if folder is None:
            _skip(record, f"No folder mapping for type {record.type_id}")
            continue

        filename = document_filename(record.name, f"record-{record.id}")
        rel = f"{folder}/{filename}" if folder else filename
        if is_excluded(rel, pairing):
            _skip(record, f"Target {rel} is excluded")
            continue
        path = str(pairing.root / rel)
        if path in claimed or await run_sync(document_exists, path):
            _skip(record, f"File already exists: {path}")
            continue

        claimed.add(path)
        planned.append((record, path))

    return planned, skipped


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _require_path(args: dict[str, Any]) -> str:
    path = args.get("path")
    if not path:
        raise ValueError("path is required")
    return str(Path(path).expanduser().resolve())


async def _handle_sync_document(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_document`` tool."""
    path = _require_path(args)
    pairing = ctx.pairing_for_path(path)

    result = await ctx.dispatcher.sync_document(path, pairing)
    text = format_document_result(result)
    if result.conflict is not None:
        text += "\n\n" + format_conflict(result.path, result.conflict)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=document_result_to_json(result),
        isError=not result.success and result.action != SyncAction.CONFLICT,
    )


async def _handle_sync_vault(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_vault`` tool."""
    container_id = args.get("container_id")
    if container_id is None:
        return build_error_response(
            "validation_error",
            "container_id is required",
            "Provide the 'container_id' of a paired container (see ping).",
        )
    pairing = ctx.pairing(int(container_id))
    label = pairing.name or str(pairing.container_id)

    creates, updates, skipped = await plan_vault_sync(ctx, pairing)

    if args.get("dry_run", False):
        text = format_batch_plan(creates, updates, label)
        if skipped:
            text += f"\n\nSkipped: {len(skipped)} documents (unmapped or inconsistent)"
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=text)],
            structuredContent={
                "container_id": pairing.container_id,
                "dry_run": True,
                "creates": [op.source_doc for op in creates],
                "updates": [op.source_doc for op in updates],
                "skipped": skipped,
            },
        )

    result = await ctx.executor.execute_batch(
        creates,
        updates,
        pairing.container_id,
        stop_on_error=args.get("stop_on_error", False),
        rollback_on_error=args.get("rollback_on_error", False),
    )
    result.skipped += len(skipped)
    await ctx.state_store.flush_async()

    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_batch_result(result, label))
        ],
        structuredContent=batch_result_to_json(result, pairing.container_id),
    )


async def _handle_check_conflict(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``check_conflict`` tool."""
    path = _require_path(args)
    pairing = ctx.pairing_for_path(path)

    content = await run_sync(read_document, path)
    status = ctx.dispatcher.determine_status(path, extract_frontmatter(content))
    if not isinstance(status, Tracked):
        return build_error_response(
            "validation_error",
            f"{path} is not linked to a remote record",
            "Use sync_document to link it first.",
        )

    check = await ctx.executor.check_conflict(
        path, pairing.container_id, status.remote_id
    )
    if check is None:
        return build_error_response(
            "not_found",
            f"Remote record #{status.remote_id} not found",
            "The element was deleted remotely. Remove remote_id from the "
            "front matter to re-create it.",
        )

    conflict, _ = check
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_conflict(path, conflict))],
        structuredContent=conflict.model_dump(mode="json", exclude_none=True),
    )


async def _handle_sync_status(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_status`` tool."""
    states = ctx.state_store.all_states()

    pairings = []
    for pairing in ctx.settings.pairings:
        root = pairing.root
        tracked = sum(1 for p in states if Path(p).is_relative_to(root))
        pairings.append(
            {
                "container_id": pairing.container_id,
                "name": pairing.name,
                "vault_path": str(root),
                "tracked_documents": tracked,
            }
        )

    lines = [
        "Sync status",
        f"  State file:        {ctx.state_store.state_file}",
        f"  Tracked documents: {len(states)}",
        f"  Unsaved changes:   {'yes' if ctx.state_store.is_dirty() else 'no'}",
    ]
    for p in pairings:
        lines.append(
            f"  [{p['container_id']}] {p['name'] or p['vault_path']}: "
            f"{p['tracked_documents']} tracked"
        )

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={
            "state_file": str(ctx.state_store.state_file),
            "tracked_documents": len(states),
            "dirty": ctx.state_store.is_dirty(),
            "pairings": pairings,
        },
    )


async def _handle_sync_remote_to_vault(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``sync_remote_to_vault`` tool."""
    container_id = args.get("container_id")
    if container_id is None:
        return build_error_response(
            "validation_error",
            "container_id is required",
            "Provide the 'container_id' of a paired container (see ping).",
        )
    pairing = ctx.pairing(int(container_id))
    label = pairing.name or str(pairing.container_id)
    dry_run = bool(args.get("dry_run", False))

    records = await run_sync(ctx.client.list_records, pairing.container_id)
    planned, skipped = await plan_remote_import(ctx, pairing, records)

    imported: list[SyncedRecord] = []
    errors: list[BatchError] = []
    for record, path in planned:
        if not dry_run:
            stack: list[RollbackEntry] = []
            outcome = await ctx.executor.execute_import(
                path, record, pairing.container_id, stack
            )
            if not outcome.ok:
                await ctx.executor.rollback_operations(stack)
                errors.append(BatchError(path=path, error=outcome.error))
                continue
        imported.append(SyncedRecord(path=path, remote_id=record.id, name=record.name))

    if imported and not dry_run:
        await ctx.state_store.flush_async()

    result = ImportResult(
        dry_run=dry_run, imported=imported, skipped=skipped, errors=errors
    )
    logger.info("Remote import for container %d: %s", pairing.container_id, result.summary())
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_import_result(result, label))
        ],
        structuredContent=import_result_to_json(result, pairing.container_id),
    )


_HANDLERS = {
    "sync_document": _handle_sync_document,
    "sync_vault": _handle_sync_vault,
    "check_conflict": _handle_check_conflict,
    "sync_status": _handle_sync_status,
    "sync_remote_to_vault": _handle_sync_remote_to_vault,
}

SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=tool,
        read_only=bool(tool.annotations and tool.annotations.readOnlyHint),
        handler=_HANDLERS[tool.name],
    )
    for tool in SYNC_TOOLS
]
