"""Sync state persistence layer.

Tracks one ``SyncSnapshot`` per document path in ``.sync-state.json``
inside the configured state directory::

    {
      "version": "1.0.0",
      "saved_at": "2026-01-15T10:00:00+00:00",
      "state": {"/vault/doc.md": {"last_synced_at": ..., ...}}
    }

Key design choices:

* **In-memory with explicit flush** -- ``set()`` and ``clear()`` only mark
  the store dirty; ``flush()`` persists everything at once.
* **Atomic writes** -- ``flush()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Loop-owned** -- entries are only mutated on the event loop thread.
  ``flush_async()`` snapshots the entries there, offloads just the file
  write, and serializes overlapping flushes with an ``asyncio.Lock``.
  A change made while a write is in flight bumps the generation counter
  and keeps the store dirty for the next flush.
* **Single process** -- one process owns a state file.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from ..core.async_utils import run_sync
from .models import SyncSnapshot

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".sync-state.json"
STATE_VERSION = "1.0.0"


class SyncStateStore:
    """Per-document sync snapshots, persisted as one JSON file.

    Args:
        state_dir: Directory holding ``.sync-state.json`` (created on
            first flush).
    """

    def __init__(self, state_dir: str | Path) -> None:
        self._state_dir = Path(state_dir)
        self._state: dict[str, SyncSnapshot] = {}
        self._dirty = False
        self._generation = 0
        self._flush_lock = asyncio.Lock()

    @property
    def state_file(self) -> Path:
        return self._state_dir / STATE_FILE_NAME

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Load snapshots from disk, starting fresh if absent or invalid."""
        self._state = {}
        self._dirty = False
        path = self.state_file
        if not path.exists():
            logger.info("No sync state file at %s, starting fresh", path)
            return

        try:
            with open(path, encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read sync state %s: %s", path, exc)
            return

        if (
            not isinstance(payload, dict)
            or not payload.get("version")
            or not isinstance(payload.get("state"), dict)
        ):
            logger.warning("Invalid sync state format in %s, starting fresh", path)
            return

        for doc_path, raw in payload["state"].items():
            try:
                self._state[doc_path] = SyncSnapshot.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Dropping invalid snapshot for %s: %s", doc_path, exc)
        logger.info("Loaded sync state: %d entries", len(self._state))

    def _build_payload(self) -> dict:
        return {
            "version": STATE_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "state": {
                path: snapshot.model_dump()
                for path, snapshot in self._state.items()
            },
        }

    def _write_payload(self, payload: dict) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self.state_file)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def flush(self) -> None:
        """Persist all snapshots to disk atomically.

        Blocking; for callers outside the event loop.  Nothing is written
        when the store is clean.
        """
        if not self._dirty:
            return
        payload = self._build_payload()
        self._write_payload(payload)
        self._dirty = False
        logger.debug("Saved sync state: %d entries", len(payload["state"]))

    async def flush_async(self) -> None:
        """Persist all snapshots without blocking the event loop.

        The payload is built on the calling (loop) thread and only the
        file write is offloaded.  Flushes are serialized, so an older
        snapshot of the state can never replace a newer one on disk.  The
        store stays dirty when ``set()`` or ``clear()`` ran during the
        write.
        """
        async with self._flush_lock:
            if not self._dirty:
                return
            generation = self._generation
            payload = self._build_payload()
            await run_sync(self._write_payload, payload)
            if self._generation == generation:
                self._dirty = False
            logger.debug("Saved sync state: %d entries", len(payload["state"]))

    # ------------------------------------------------------------------
    # Entry helpers
    # ------------------------------------------------------------------

    def get(self, path: str) -> SyncSnapshot | None:
        """Return the snapshot for *path*, or ``None`` if untracked."""
        return self._state.get(path)

    def set(self, path: str, snapshot: SyncSnapshot) -> None:
        self._state[path] = snapshot
        self._dirty = True
        self._generation += 1

    def clear(self, path: str) -> None:
        """Forget *path*.  No-op if not present."""
        if self._state.pop(path, None) is not None:
            self._dirty = True
            self._generation += 1

    def reverse_lookup(
        self, remote_id: int
    ) -> tuple[str, SyncSnapshot] | None:
        """Return ``(path, snapshot)`` for the document linked to *remote_id*."""
        for path, snapshot in self._state.items():
            if snapshot.remote_id == remote_id:
                return path, snapshot
        return None

    def all_states(self) -> dict[str, SyncSnapshot]:
        """Return a copy of every tracked snapshot."""
        return dict(self._state)

    def is_dirty(self) -> bool:
        return self._dirty

    def entry_count(self) -> int:
        return len(self._state)
