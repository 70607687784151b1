"""Vault file watcher feeding the sync queue.

Watches every paired vault with ``watchfiles.awatch`` and turns each
debounced batch of filesystem events into ``FileChange`` items for
``SyncQueue.enqueue()``.  Only ``*.md`` files count; anything under a
hidden directory (``.obsidian``, ``.git``, ...) or matching a pairing's
exclude patterns is dropped.

Existing files produce no events on start; the watcher only reports
changes made while it runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import datetime, timezone
from pathlib import PurePosixPath

from pydantic import BaseModel
from watchfiles import Change, awatch
from watchfiles.filters import DefaultFilter

from ..config_schema import PairingConfig
from .mapper import is_excluded, relative_document_path
from .models import ChangeEvent, FileChange
from .queue import SyncQueue

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 1600

WatchFunction = Callable[..., AsyncIterator[set[tuple[Change, str]]]]


class MarkdownFilter(DefaultFilter):
    """``DefaultFilter`` narrowed to Markdown documents."""

    extensions = (".md",)

    def __call__(self, change: Change, path: str) -> bool:
        return path.endswith(self.extensions) and super().__call__(change, path)


class WatcherStatus(BaseModel):
    """Point-in-time watcher state."""

    watching: bool
    vault_paths: list[str]
    changes_seen: int
    last_change_at: datetime | None = None

    model_config = {"frozen": True}


def _event_for(kinds: set[Change]) -> ChangeEvent:
    if Change.added in kinds:
        return ChangeEvent.ADD
    if Change.deleted in kinds:
        return ChangeEvent.UNLINK
    return ChangeEvent.CHANGE


def changes_for_pairing(
    raw_changes: Iterable[tuple[Change, str]], pairing: PairingConfig
) -> list[FileChange]:
    """Translate one ``awatch`` batch into queue changes for *pairing*.

    Several events for the same path collapse into one: an add wins over
    a delete (the file was recreated), and a delete wins over a
    modification.  Results are sorted by path.
    """
    kinds_by_path: dict[str, set[Change]] = {}
    for change, raw_path in raw_changes:
        rel = relative_document_path(raw_path, pairing)
        if rel is None or not rel.endswith(".md"):
            continue
        if any(part.startswith(".") for part in PurePosixPath(rel).parts):
            continue
        if is_excluded(rel, pairing):
            continue
        path = str(pairing.root / rel)
        kinds_by_path.setdefault(path, set()).add(change)

    return [
        FileChange(path=path, event=_event_for(kinds))
        for path, kinds in sorted(kinds_by_path.items())
    ]


class VaultWatcher:
    """Background task enqueueing vault changes as they happen.

    Args:
        queue: Queue receiving the changes.
        pairings: Vaults to watch.
        debounce_ms: ``awatch`` debounce window.
        watch: ``awatch``-compatible async generator factory.
    """

    def __init__(
        self,
        queue: SyncQueue,
        pairings: Iterable[PairingConfig],
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        watch: WatchFunction | None = None,
    ) -> None:
        self._queue = queue
        self._pairings = list(pairings)
        self._debounce_ms = debounce_ms
        self._watch = watch or awatch
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._changes_seen = 0
        self._last_change_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start watching.  Returns ``False`` if already running.

        Raises:
            ValueError: If no vault is paired.
        """
        if self.running:
            return False
        if not self._pairings:
            raise ValueError("No vault pairings configured; nothing to watch")

        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "Watching %d vaults: %s",
            len(self._pairings),
            ", ".join(str(p.root) for p in self._pairings),
        )
        return True

    async def stop(self) -> bool:
        """Stop watching.  Returns ``False`` if the watcher was not started."""
        if self._task is None:
            return False
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
            self._stop_event = None
        logger.info("Vault watcher stopped")
        return True

    def status(self) -> WatcherStatus:
        return WatcherStatus(
            watching=self.running,
            vault_paths=[str(p.root) for p in self._pairings],
            changes_seen=self._changes_seen,
            last_change_at=self._last_change_at,
        )

    async def _run(self) -> None:
        roots = [p.root for p in self._pairings]
        try:
            async for raw_changes in self._watch(
                *roots,
                watch_filter=MarkdownFilter(),
                debounce=self._debounce_ms,
                stop_event=self._stop_event,
            ):
                self.dispatch(raw_changes)
        except Exception:
            logger.exception("Vault watcher failed")

    def dispatch(self, raw_changes: Iterable[tuple[Change, str]]) -> int:
        """Enqueue one batch of raw changes.  Returns the accepted count."""
        raw_changes = list(raw_changes)
        accepted = 0
        for pairing in self._pairings:
            changes = changes_for_pairing(raw_changes, pairing)
            if not changes:
                continue
            self._changes_seen += len(changes)
            self._last_change_at = datetime.now(timezone.utc)
            accepted += self._queue.enqueue(changes, pairing)
            logger.debug(
                "Watcher queued %d changes for container %d",
                len(changes),
                pairing.container_id,
            )
        return accepted
