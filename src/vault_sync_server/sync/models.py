"""Data contracts for the vault sync engine.

Defines the types shared across all sync modules:

- ``SyncSnapshot``: persisted last-synced baseline for one document.
- ``ConflictStrategy`` / ``ConflictSide`` / ``ConflictResult`` /
  ``ResolutionResult``: three-way timestamp comparison outcomes.
- ``CreateOperation`` / ``UpdateOperation``: one remote mutation.
- ``FrontmatterRevert`` / ``DocumentRemove`` / ``RemoteCreateUndo`` /
  ``StateClear``: rollback entries (the ``RollbackEntry`` union).
- ``ExecutionOutcome`` / ``BatchResult``: executor results.
- ``ImportSkip`` / ``ImportResult``: remote-to-vault import results.
- ``Untracked`` / ``Tracked`` / ``Inconsistent``: a document's sync status
  (the ``DocumentStatus`` union).
- ``SyncAction`` / ``DocumentSyncResult``: dispatcher results.
- ``FileChange`` / ``QueueItem`` / ``QueueStats``: sync queue types.

Value types are frozen pydantic models; the tagged unions are frozen
dataclasses so they can be matched structurally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from pydantic import BaseModel, Field

from ..config_schema import PairingConfig
from ..core.client import RemoteRecord


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class SyncSnapshot(BaseModel):
    """Baseline recorded for a document at its last successful sync.

    Attributes:
        last_synced_at: ISO 8601 time of the last successful sync.
        local_modified_at: Document mtime (ms since epoch) captured at sync.
        remote_updated_at: Remote ``updatedAt`` captured at sync.
        remote_id: Linked remote record id, if any.
    """

    last_synced_at: str
    local_modified_at: float
    remote_updated_at: str
    remote_id: int | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Conflict detection
# ---------------------------------------------------------------------------


class ConflictStrategy(str, Enum):
    """How a detected situation should be resolved."""

    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"
    MANUAL_MERGE = "manual-merge"


class ConflictSide(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class ConflictResult(BaseModel):
    """Outcome of comparing current timestamps against a snapshot.

    Attributes:
        has_conflict: True when both sides changed since the last sync.
        strategy: Suggested resolution.
        reason: Diagnostic text.
        changed_sides: Sides whose timestamp moved beyond tolerance.
        local_timestamp: Current local mtime (ms).
        remote_timestamp: Current remote ``updatedAt``.
        last_synced_at: Snapshot sync time, when a snapshot existed.
        content_diff: Unified diff (remote -> local) for conflicts.
        merged_content: Local text framed with conflict markers.
    """

    has_conflict: bool
    strategy: ConflictStrategy
    reason: str
    changed_sides: list[ConflictSide] = []
    local_timestamp: float | None = None
    remote_timestamp: str | None = None
    last_synced_at: str | None = None
    content_diff: str | None = None
    merged_content: str | None = None

    model_config = {"frozen": True}


class ResolutionResult(BaseModel):
    """Content chosen by applying a strategy to a conflict."""

    winner: ConflictSide
    content: str
    summary: str
    requires_manual: bool = False

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class CreateOperation(BaseModel):
    """Create a remote record from a local document.

    ``tags`` keeps every declared tag name; ``tag_ids`` holds only those
    that resolved through the pairing's tag mappings.
    """

    type_id: int
    name: str
    body: str
    source_doc: str
    tags: list[str] = []
    tag_ids: list[int] = []

    model_config = {"frozen": True}


class UpdateOperation(BaseModel):
    """Push a local document onto its linked remote record."""

    remote_id: int
    name: str
    body: str
    source_doc: str

    model_config = {"frozen": True}


SyncOperation = Union[CreateOperation, UpdateOperation]


# ---------------------------------------------------------------------------
# Rollback entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FrontmatterRevert:
    """Restore a document to the exact bytes it had before a write."""

    path: str
    original_bytes: bytes


@dataclass(frozen=True, slots=True)
class DocumentRemove:
    """Delete a document that a pull from the remote wrote fresh."""

    path: str


@dataclass(frozen=True, slots=True)
class RemoteCreateUndo:
    """Delete a remote record created earlier in the same operation."""

    container_id: int
    remote_id: int


@dataclass(frozen=True, slots=True)
class StateClear:
    """Drop the snapshot written for a document.

    When the document already had a snapshot before the step, *previous*
    holds it and undoing restores it instead of leaving the document
    untracked.
    """

    path: str
    previous: SyncSnapshot | None = None


RollbackEntry = Union[FrontmatterRevert, DocumentRemove, RemoteCreateUndo, StateClear]


# ---------------------------------------------------------------------------
# Executor results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    """Result of one executor step: a record on success, an error otherwise."""

    record: RemoteRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.record is not None


@dataclass(frozen=True, slots=True)
class RecordCreated:
    """Notification emitted after a remote record was created and linked."""

    record_id: int
    title: str
    source_doc: str
    timestamp: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True, slots=True)
class RecordUpdated:
    """Notification emitted after a remote record was updated from local."""

    record_id: int
    title: str
    source_doc: str
    changed_fields: tuple[str, ...] = ("name", "description")
    timestamp: str = field(default_factory=utc_now_iso)


class BatchError(BaseModel):
    path: str
    error: str

    model_config = {"frozen": True}


class SyncedRecord(BaseModel):
    path: str
    remote_id: int
    name: str

    model_config = {"frozen": True}


class BatchResult(BaseModel):
    """Aggregate result of ``SyncExecutor.execute_batch``.

    Attributes:
        created: Records created (a later rollback does not decrement it).
        updated: Records updated.
        conflicts: Creates skipped because the document was already linked.
        skipped: Operations not attempted.
        errors: Per-document failures.
        created_records: Details of created records.
        updated_records: Details of updated records.
        rolled_back: True when completed steps were unwound.
    """

    created: int = 0
    updated: int = 0
    conflicts: int = 0
    skipped: int = 0
    errors: list[BatchError] = []
    created_records: list[SyncedRecord] = []
    updated_records: list[SyncedRecord] = []
    rolled_back: bool = False

    def summary(self) -> str:
        """One-line count summary."""
        return (
            f"{self.created} created, {self.updated} updated, "
            f"{self.conflicts} conflicts, {self.skipped} skipped, "
            f"{len(self.errors)} errors"
            + (" (rolled back)" if self.rolled_back else "")
        )


class ImportSkip(BaseModel):
    """A remote record a remote-to-vault import left alone, and why."""

    remote_id: int
    name: str
    reason: str

    model_config = {"frozen": True}


class ImportResult(BaseModel):
    """Aggregate result of importing remote records into a vault.

    Attributes:
        dry_run: Nothing was written; ``imported`` lists the plan.
        imported: Documents written (or planned), one per record.
        skipped: Records that were not imported.
        errors: Per-document write failures.
    """

    dry_run: bool = False
    imported: list[SyncedRecord] = []
    skipped: list[ImportSkip] = []
    errors: list[BatchError] = []

    def summary(self) -> str:
        verb = "to import" if self.dry_run else "imported"
        return (
            f"{len(self.imported)} {verb}, {len(self.skipped)} skipped, "
            f"{len(self.errors)} errors"
        )


# ---------------------------------------------------------------------------
# Document status
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Untracked:
    """Neither a remote id nor a snapshot: the document was never synced."""


@dataclass(frozen=True, slots=True)
class Tracked:
    """Remote id in front matter and a snapshot in the state store."""

    remote_id: int
    snapshot: SyncSnapshot


@dataclass(frozen=True, slots=True)
class Inconsistent:
    """Exactly one of remote id / snapshot is present."""

    reason: str


DocumentStatus = Union[Untracked, Tracked, Inconsistent]


# ---------------------------------------------------------------------------
# Dispatcher results
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """What the dispatcher did for one document."""

    CREATE = "create"
    UPDATE = "update"
    PULL = "pull"
    DELETE = "delete"
    SKIP = "skip"
    CONFLICT = "conflict"


class DocumentSyncResult(BaseModel):
    """Outcome of syncing a single document.

    Attributes:
        path: Document path.
        action: Action taken (or attempted).
        success: Whether the action completed.
        remote_id: Linked remote record id, when known.
        error: Failure description.
        retryable: False for failures that retrying cannot fix
            (conflicts, inconsistent state, missing mappings).
        duration_ms: Wall time spent on the document.
        conflict: Conflict details when ``action`` is ``CONFLICT``.
    """

    path: str
    action: SyncAction
    success: bool
    remote_id: int | None = None
    error: str | None = None
    retryable: bool = True
    duration_ms: float = 0.0
    conflict: ConflictResult | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Queue types
# ---------------------------------------------------------------------------


class ChangeEvent(str, Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"


class FileChange(BaseModel):
    """A raw change notification for one document path."""

    path: str
    event: ChangeEvent = ChangeEvent.CHANGE
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = {"frozen": True}


@dataclass
class QueueItem:
    """Work item tracked by the sync queue, keyed by document path."""

    id: str
    change: FileChange
    pairing: PairingConfig
    retries: int = 0
    last_error: str | None = None
    added_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class QueueStats(BaseModel):
    """Point-in-time queue counters.

    ``completed`` counts distinct paths whose latest change synced;
    ``total_processed`` counts every successful sync.
    """

    pending: int
    processing: int
    completed: int
    failed: int
    total_processed: int
    average_processing_time_ms: float
    last_processed_at: datetime | None = None

    model_config = {"frozen": True}
