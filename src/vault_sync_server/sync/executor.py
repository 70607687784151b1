"""Multi-step sync operations with compensating rollback.

Each operation touches up to three stores (remote record, local document,
state store).  After every completed step a ``RollbackEntry`` describing
how to undo it is pushed onto a caller-owned stack; a failed step pushes
nothing, so the stack always describes exactly the work that happened.

Create::

    remote create      -> RemoteCreateUndo
    front matter link  -> FrontmatterRevert
    snapshot write     -> StateClear

Update::

    remote update, front matter ``synced_at``, snapshot write -> StateClear

Import::

    new document write -> DocumentRemove
    snapshot write     -> StateClear

Document reverts restore the raw bytes read before the write, so an
undone step leaves the file byte-identical whatever its encoding.

``rollback_operations()`` pops the stack LIFO.  It is best effort: a step
that fails is logged and the rest of the stack is still unwound.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from ..core.async_utils import run_sync
from ..core.client import RemoteClient, RemoteRecord
from ..file_handler import (
    decode_document,
    delete_document,
    document_exists,
    read_document,
    read_document_bytes,
    stat_document,
    write_document,
    write_document_bytes,
)
from .conflict import detect_conflict_with_diff
from .frontmatter import (
    render_frontmatter,
    replace_body,
    strip_frontmatter,
    update_frontmatter,
)
from .models import (
    BatchError,
    BatchResult,
    ConflictResult,
    CreateOperation,
    DocumentRemove,
    ExecutionOutcome,
    FrontmatterRevert,
    RecordCreated,
    RecordUpdated,
    RemoteCreateUndo,
    RollbackEntry,
    StateClear,
    SyncedRecord,
    SyncSnapshot,
    UpdateOperation,
    utc_now_iso,
)
from .state import SyncStateStore

logger = logging.getLogger(__name__)

SyncEventCallback = Callable[[RecordCreated | RecordUpdated], None]


class SyncExecutor:
    """Run create/update/pull steps against the remote and local stores.

    Args:
        client: Remote API client (blocking; calls are offloaded).
        state_store: Shared snapshot store.
        on_event: Optional callback notified after each successful
            create or update.
    """

    def __init__(
        self,
        client: RemoteClient,
        state_store: SyncStateStore,
        on_event: SyncEventCallback | None = None,
    ) -> None:
        self._client = client
        self._state = state_store
        self._on_event = on_event

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _read_original(self, path: str) -> tuple[bytes, str]:
        raw = await run_sync(read_document_bytes, path)
        content, _ = await run_sync(decode_document, raw)
        return raw, content

    async def _rewrite_frontmatter(self, path: str, updates: dict) -> bytes:
        """Merge *updates* into the document's front matter.

        Returns the raw bytes the document had before the write.
        """
        raw, original = await self._read_original(path)
        await run_sync(write_document, path, update_frontmatter(original, updates))
        return raw

    async def _write_snapshot(self, path: str, record: RemoteRecord) -> None:
        modified_at = await run_sync(stat_document, path)
        self._state.set(
            path,
            SyncSnapshot(
                last_synced_at=utc_now_iso(),
                local_modified_at=modified_at,
                remote_updated_at=record.updated_at,
                remote_id=record.id,
            ),
        )

    def _emit(self, event: RecordCreated | RecordUpdated) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Sync event callback failed for %s", event)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def execute_create(
        self,
        op: CreateOperation,
        container_id: int,
        rollback_stack: list[RollbackEntry],
    ) -> ExecutionOutcome:
        """Create a remote record for ``op.source_doc`` and link it locally."""
        path = op.source_doc
        try:
            record = await run_sync(
                self._client.create_record,
                container_id,
                {
                    "type_id": op.type_id,
                    "name": op.name,
                    "description": strip_frontmatter(op.body),
                },
            )
            rollback_stack.append(RemoteCreateUndo(container_id, record.id))

            original = await self._rewrite_frontmatter(
                path,
                {
                    "remote_id": record.id,
                    "remote_container": container_id,
                    "synced_at": utc_now_iso(),
                },
            )
            rollback_stack.append(FrontmatterRevert(path, original))

            previous = self._state.get(path)
            await self._write_snapshot(path, record)
            rollback_stack.append(StateClear(path, previous))
        except Exception as exc:
            logger.error("Create failed for %s: %s", path, exc)
            return ExecutionOutcome(error=str(exc))

        logger.info("Created: %s -> remote #%d", op.name, record.id)
        self._emit(RecordCreated(record.id, record.name, path))
        return ExecutionOutcome(record=record)

    async def execute_update(
        self,
        op: UpdateOperation,
        container_id: int,
        rollback_stack: list[RollbackEntry],
    ) -> ExecutionOutcome:
        """Push ``op.source_doc`` onto its linked remote record."""
        path = op.source_doc
        try:
            record = await run_sync(
                self._client.update_record,
                container_id,
                op.remote_id,
                {"name": op.name, "description": strip_frontmatter(op.body)},
            )
            await self._rewrite_frontmatter(path, {"synced_at": utc_now_iso()})

            previous = self._state.get(path)
            await self._write_snapshot(path, record)
            rollback_stack.append(StateClear(path, previous))
        except Exception as exc:
            logger.error("Update failed for %s: %s", path, exc)
            return ExecutionOutcome(error=str(exc))

        logger.info("Updated: %s (remote #%d)", op.name, op.remote_id)
        self._emit(RecordUpdated(record.id, record.name, path))
        return ExecutionOutcome(record=record)

    async def execute_pull(
        self,
        path: str,
        record: RemoteRecord,
        rollback_stack: list[RollbackEntry],
    ) -> ExecutionOutcome:
        """Overwrite the local body with the remote description.

        The front-matter block is kept; only ``synced_at`` is refreshed.
        """
        try:
            raw, original = await self._read_original(path)
            pulled = update_frontmatter(
                replace_body(original, record.description),
                {"synced_at": utc_now_iso()},
            )
            await run_sync(write_document, path, pulled)
            rollback_stack.append(FrontmatterRevert(path, raw))

            previous = self._state.get(path)
            await self._write_snapshot(path, record)
            rollback_stack.append(StateClear(path, previous))
        except Exception as exc:
            logger.error("Pull failed for %s: %s", path, exc)
            return ExecutionOutcome(error=str(exc))

        logger.info("Pulled: remote #%d -> %s", record.id, path)
        return ExecutionOutcome(record=record)

    async def execute_import(
        self,
        path: str,
        record: RemoteRecord,
        container_id: int,
        rollback_stack: list[RollbackEntry],
    ) -> ExecutionOutcome:
        """Write a new linked document at *path* from a remote record.

        Refuses to overwrite an existing file.
        """
        try:
            if await run_sync(document_exists, path):
                raise FileExistsError(f"Document already exists: {path}")
            content = render_frontmatter(
                {
                    "title": record.name,
                    "remote_id": record.id,
                    "remote_container": container_id,
                    "synced_at": utc_now_iso(),
                },
                record.description,
            )
            await run_sync(write_document, path, content)
            rollback_stack.append(DocumentRemove(path))

            previous = self._state.get(path)
            await self._write_snapshot(path, record)
            rollback_stack.append(StateClear(path, previous))
        except Exception as exc:
            logger.error("Import failed for remote #%d: %s", record.id, exc)
            return ExecutionOutcome(error=str(exc))

        logger.info("Imported: remote #%d -> %s", record.id, path)
        return ExecutionOutcome(record=record)

    async def check_conflict(
        self, path: str, container_id: int, remote_id: int
    ) -> tuple[ConflictResult, RemoteRecord] | None:
        """Compare the document and its remote record against the snapshot.

        Returns ``None`` when the remote record no longer exists.  Client
        and file errors propagate to the caller.
        """
        record = await run_sync(self._client.get_record, container_id, remote_id)
        if record is None:
            return None

        content = await run_sync(read_document, path)
        modified_at = await run_sync(stat_document, path)
        result = detect_conflict_with_diff(
            modified_at,
            record.updated_at,
            self._state.get(path),
            strip_frontmatter(content),
            record.description,
        )
        return result, record

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def _undo(self, entry: RollbackEntry) -> None:
        match entry:
            case FrontmatterRevert(path=path, original_bytes=raw):
                await run_sync(write_document_bytes, path, raw)
                logger.info("Reverted document: %s", path)
            case DocumentRemove(path=path):
                await run_sync(delete_document, path)
                logger.info("Removed document: %s", path)
            case RemoteCreateUndo(container_id=container_id, remote_id=remote_id):
                await run_sync(self._client.delete_record, container_id, remote_id)
                logger.info("Deleted remote record #%d", remote_id)
            case StateClear(path=path, previous=None):
                self._state.clear(path)
                logger.info("Cleared sync state: %s", path)
            case StateClear(path=path, previous=previous):
                self._state.set(path, previous)
                logger.info("Restored sync state: %s", path)
            case _:
                raise TypeError(f"Unknown rollback entry: {entry!r}")

    async def rollback_operations(self, rollback_stack: list[RollbackEntry]) -> None:
        """Undo every entry on *rollback_stack*, newest first.

        The stack is emptied.  Never raises.
        """
        if not rollback_stack:
            return
        logger.warning("Rolling back %d operations", len(rollback_stack))
        while rollback_stack:
            entry = rollback_stack.pop()
            try:
                await self._undo(entry)
            except Exception as exc:
                logger.error("Rollback failed for %s: %s", entry, exc)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def execute_batch(
        self,
        creates: Iterable[CreateOperation],
        updates: Iterable[UpdateOperation],
        container_id: int,
        stop_on_error: bool = False,
        rollback_on_error: bool = False,
    ) -> BatchResult:
        """Run all creates, then all updates, into one ``BatchResult``.

        A create whose document already has a linked snapshot is counted
        as a conflict and never reaches the remote.  With *stop_on_error*
        the first failure ends the batch, rolling back everything done so
        far when *rollback_on_error* is also set.
        """
        result = BatchResult()
        stack: list[RollbackEntry] = []

        async def _stop() -> BatchResult:
            if rollback_on_error:
                await self.rollback_operations(stack)
                result.rolled_back = True
            return result

        for op in creates:
            existing = self._state.get(op.source_doc)
            if existing is not None and existing.remote_id is not None:
                result.conflicts += 1
                logger.warning(
                    "Conflict: %s already linked to remote #%d",
                    op.source_doc,
                    existing.remote_id,
                )
                continue

            outcome = await self.execute_create(op, container_id, stack)
            if not outcome.ok:
                result.errors.append(BatchError(path=op.source_doc, error=outcome.error))
                if stop_on_error:
                    return await _stop()
                continue

            result.created += 1
            result.created_records.append(
                SyncedRecord(path=op.source_doc, remote_id=outcome.record.id, name=op.name)
            )

        for op in updates:
            outcome = await self.execute_update(op, container_id, stack)
            if not outcome.ok:
                result.errors.append(BatchError(path=op.source_doc, error=outcome.error))
                if stop_on_error:
                    return await _stop()
                continue

            result.updated += 1
            result.updated_records.append(
                SyncedRecord(path=op.source_doc, remote_id=op.remote_id, name=op.name)
            )

        return result
