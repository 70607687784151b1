"""Sync a single vault document against its paired remote container.

The dispatcher decides *what* to do for one path and delegates the *how*
to ``SyncExecutor``:

======================  ==========================================
document state          action
======================  ==========================================
missing on disk         untrack (``delete``) or ``skip``
``Untracked``           create remote record, link front matter
``Tracked``             conflict check, then update / pull / conflict
``Inconsistent``        non-retryable failure
======================  ==========================================

Deleting a document never deletes the remote record; it only drops the
snapshot.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from ..config_schema import PairingConfig
from ..core.async_utils import run_sync
from ..file_handler import DocumentMissingError, read_document
from .executor import SyncExecutor
from .frontmatter import extract_frontmatter, frontmatter_tags
from .mapper import resolve_tag_ids, resolve_type_id
from .models import (
    ConflictStrategy,
    CreateOperation,
    DocumentStatus,
    DocumentSyncResult,
    Inconsistent,
    RollbackEntry,
    SyncAction,
    Tracked,
    UpdateOperation,
    Untracked,
)
from .state import SyncStateStore

logger = logging.getLogger(__name__)


def _coerce_remote_id(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def document_title(path: str | Path, frontmatter: dict[str, Any]) -> str:
    """Front-matter ``title`` if set, else the file name without suffix."""
    title = frontmatter.get("title")
    if title:
        return str(title)
    return Path(path).stem


class SingleDocumentSyncDispatcher:
    """Dispatch one document path to the right executor operation.

    Args:
        executor: Executor used for every remote/local mutation.
        state_store: Shared snapshot store (flushed after each change).
    """

    def __init__(self, executor: SyncExecutor, state_store: SyncStateStore) -> None:
        self._executor = executor
        self._state = state_store

    def determine_status(
        self, path: str, frontmatter: dict[str, Any]
    ) -> DocumentStatus:
        """Classify *path* from its front matter and stored snapshot."""
        raw_id = frontmatter.get("remote_id")
        remote_id = _coerce_remote_id(raw_id)
        snapshot = self._state.get(path)

        if raw_id is not None and remote_id is None:
            return Inconsistent(f"Invalid remote_id in front matter: {raw_id!r}")
        if remote_id is None and snapshot is None:
            return Untracked()
        if remote_id is not None and snapshot is None:
            return Inconsistent(
                f"Inconsistent state: remote_id {remote_id} in front matter "
                f"but no sync state"
            )
        if remote_id is None:
            return Inconsistent(
                "Inconsistent state: sync state exists but front matter "
                "has no remote_id"
            )
        if snapshot.remote_id is not None and snapshot.remote_id != remote_id:
            return Inconsistent(
                f"Inconsistent state: front matter remote_id {remote_id} "
                f"does not match sync state remote_id {snapshot.remote_id}"
            )
        return Tracked(remote_id, snapshot)

    async def sync_document(
        self, path: str | Path, pairing: PairingConfig
    ) -> DocumentSyncResult:
        """Sync the document at *path*.  Never raises."""
        doc_path = str(Path(path).expanduser().resolve())
        start = time.perf_counter()
        try:
            return await self._sync(doc_path, pairing, start)
        except Exception as exc:
            logger.error("Sync failed for %s: %s", doc_path, exc)
            return self._result(
                doc_path, SyncAction.SKIP, False, start, error=str(exc)
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _result(
        path: str,
        action: SyncAction,
        success: bool,
        start: float,
        **kwargs: Any,
    ) -> DocumentSyncResult:
        return DocumentSyncResult(
            path=path,
            action=action,
            success=success,
            duration_ms=(time.perf_counter() - start) * 1000,
            **kwargs,
        )

    async def _sync(
        self, path: str, pairing: PairingConfig, start: float
    ) -> DocumentSyncResult:
        try:
            content = await run_sync(read_document, path)
        except DocumentMissingError:
            return await self._handle_deleted(path, start)

        frontmatter = extract_frontmatter(content)
        status = self.determine_status(path, frontmatter)

        match status:
            case Untracked():
                return await self._create(path, content, frontmatter, pairing, start)
            case Tracked(remote_id=remote_id):
                return await self._update(
                    path, content, frontmatter, remote_id, pairing, start
                )
            case Inconsistent(reason=reason):
                logger.warning("%s: %s", path, reason)
                return self._result(
                    path,
                    SyncAction.SKIP,
                    False,
                    start,
                    error=reason,
                    retryable=False,
                    remote_id=_coerce_remote_id(frontmatter.get("remote_id")),
                )
        raise TypeError(f"Unknown document status: {status!r}")

    async def _handle_deleted(self, path: str, start: float) -> DocumentSyncResult:
        snapshot = self._state.get(path)
        if snapshot is None:
            return self._result(path, SyncAction.SKIP, True, start)

        self._state.clear(path)
        await self._state.flush_async()
        logger.info("Untracked deleted document %s", path)
        return self._result(
            path, SyncAction.DELETE, True, start, remote_id=snapshot.remote_id
        )

    async def _create(
        self,
        path: str,
        content: str,
        frontmatter: dict[str, Any],
        pairing: PairingConfig,
        start: float,
    ) -> DocumentSyncResult:
        type_id = resolve_type_id(path, pairing)
        if type_id is None:
            return self._result(
                path,
                SyncAction.CREATE,
                False,
                start,
                error=f"No folder mapping found for {path}",
                retryable=False,
            )

        tags = frontmatter_tags(frontmatter)
        op = CreateOperation(
            type_id=type_id,
            name=document_title(path, frontmatter),
            body=content,
            source_doc=path,
            tags=tags,
            tag_ids=resolve_tag_ids(tags, pairing),
        )
        stack: list[RollbackEntry] = []
        outcome = await self._executor.execute_create(op, pairing.container_id, stack)
        if not outcome.ok:
            await self._executor.rollback_operations(stack)
            return self._result(
                path, SyncAction.CREATE, False, start, error=outcome.error
            )

        await self._state.flush_async()
        return self._result(
            path, SyncAction.CREATE, True, start, remote_id=outcome.record.id
        )

    async def _update(
        self,
        path: str,
        content: str,
        frontmatter: dict[str, Any],
        remote_id: int,
        pairing: PairingConfig,
        start: float,
    ) -> DocumentSyncResult:
        check = await self._executor.check_conflict(
            path, pairing.container_id, remote_id
        )
        if check is None:
            return self._result(
                path,
                SyncAction.UPDATE,
                False,
                start,
                remote_id=remote_id,
                error=f"Remote record #{remote_id} not found",
                retryable=False,
            )

        conflict, record = check
        stack: list[RollbackEntry] = []
        match conflict.strategy:
            case ConflictStrategy.MANUAL_MERGE:
                logger.warning("Conflict for %s: %s", path, conflict.reason)
                return self._result(
                    path,
                    SyncAction.CONFLICT,
                    False,
                    start,
                    remote_id=remote_id,
                    error=conflict.reason,
                    retryable=False,
                    conflict=conflict,
                )
            case ConflictStrategy.REMOTE_WINS:
                action = SyncAction.PULL
                outcome = await self._executor.execute_pull(path, record, stack)
            case _:
                action = SyncAction.UPDATE
                op = UpdateOperation(
                    remote_id=remote_id,
                    name=document_title(path, frontmatter),
                    body=content,
                    source_doc=path,
                )
                outcome = await self._executor.execute_update(
                    op, pairing.container_id, stack
                )

        if not outcome.ok:
            await self._executor.rollback_operations(stack)
            return self._result(
                path, action, False, start, remote_id=remote_id, error=outcome.error
            )

        await self._state.flush_async()
        return self._result(path, action, True, start, remote_id=remote_id)
