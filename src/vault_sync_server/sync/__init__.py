"""Vault-to-remote document sync engine.

Public API for synchronising a local Markdown vault with remote design
documents.

Architecture
------------
Each linked document has a ``SyncSnapshot`` recording the local and
remote modification times observed at its last successful sync.  A
change on either side is detected by comparing the current timestamp
against the snapshot (with a 5 second tolerance for clock skew); when
both sides changed the document is in conflict.

Multi-step operations (remote write, front-matter rewrite, snapshot
write) record an undo entry after every completed step, so a failure
part-way through can be rolled back in reverse order.

Modules:

- ``conflict``    -- three-way timestamp detection, diffs, resolution.
- ``executor``    -- ``SyncExecutor``: create/update/pull with rollback,
  batches.
- ``dispatcher``  -- ``SingleDocumentSyncDispatcher``: sync one document.
- ``queue``       -- ``SyncQueue``: debounced, bounded-concurrency
  background sync with retry.
- ``state``       -- ``SyncStateStore``: persisted snapshots.
- ``frontmatter`` -- YAML front-matter parsing and rewriting.
- ``mapper``      -- folder/tag mapping and document discovery.
- ``models``      -- data contracts shared by the modules above.
- ``reporter``    -- human-readable and JSON formatting.

Usage example
-------------
::

    from vault_sync_server.core.client import RemoteClient
    from vault_sync_server.sync import (
        SingleDocumentSyncDispatcher,
        SyncExecutor,
        SyncStateStore,
        format_document_result,
    )

    store = SyncStateStore(".vault_sync")
    store.load()
    executor = SyncExecutor(RemoteClient(config), store)
    dispatcher = SingleDocumentSyncDispatcher(executor, store)

    result = await dispatcher.sync_document("/vault/Design/combat.md", pairing)
    print(format_document_result(result))
"""

from .conflict import (
    detect_conflict,
    detect_conflict_with_diff,
    generate_content_diff,
    resolve_conflict,
)
from .dispatcher import SingleDocumentSyncDispatcher
from .executor import SyncExecutor
from .models import (
    BatchResult,
    ConflictResult,
    ConflictStrategy,
    CreateOperation,
    DocumentSyncResult,
    FileChange,
    SyncAction,
    SyncSnapshot,
    UpdateOperation,
)
from .queue import LoopScheduler, SyncQueue
from .reporter import (
    batch_result_to_json,
    format_batch_result,
    format_document_result,
)
from .state import SyncStateStore

__all__ = [
    "BatchResult",
    "ConflictResult",
    "ConflictStrategy",
    "CreateOperation",
    "DocumentSyncResult",
    "FileChange",
    "LoopScheduler",
    "SingleDocumentSyncDispatcher",
    "SyncAction",
    "SyncExecutor",
    "SyncQueue",
    "SyncSnapshot",
    "SyncStateStore",
    "UpdateOperation",
    "batch_result_to_json",
    "detect_conflict",
    "detect_conflict_with_diff",
    "format_batch_result",
    "format_document_result",
    "generate_content_diff",
    "resolve_conflict",
]
