"""Debounced, retrying, concurrency-bounded sync queue.

Per-path state machine::

    pending -> processing -> completed
                          -> (retry delay) -> pending
                          -> failed

* **Debounce** -- the first change of a burst arms a ``batch_delay``
  timer; changes arriving before it fires only update the pending map
  (last change per path wins).
* **Batches** -- when the timer fires, every pending item is moved to
  processing and dispatched with at most ``concurrency`` in flight.
  If new items arrived meanwhile, the debounce timer is re-armed once the
  batch finishes.
* **One in flight per path** -- a change for a path that is processing is
  deferred and re-enters pending when the in-flight dispatch ends.
* **Retry** -- a retryable failure re-enters pending after
  ``retry_delay * backoff_multiplier ** retries`` seconds; after
  ``max_retries`` retries, or on a non-retryable failure, the item moves
  to ``failed`` and stays there until ``retry_failed()`` or
  ``clear_failed()``.
* **Pause** -- stops new batches from starting.  In-flight work completes
  and retry timers still return items to pending.

Timers go through a ``Scheduler`` so tests can drive a virtual clock.
Transitions are published as typed events to listeners registered with
``subscribe()``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import ClassVar, Protocol, Union

from ..config_schema import PairingConfig, QueueConfig
from ..core.async_utils import gather_limited
from .models import DocumentSyncResult, FileChange, QueueItem, QueueStats

logger = logging.getLogger(__name__)

LATENCY_SAMPLES = 100


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class QueueEventKind(str, Enum):
    QUEUE_UPDATED = "queue-updated"
    PROCESSING_STARTED = "processing-started"
    PROCESSING_COMPLETED = "processing-completed"
    ITEM_PROCESSING = "item-processing"
    ITEM_COMPLETED = "item-completed"
    ITEM_RETRY = "item-retry"
    ITEM_FAILED = "item-failed"
    PAUSED = "paused"
    RESUMED = "resumed"
    RETRY_FAILED = "retry-failed"
    FAILED_CLEARED = "failed-cleared"


@dataclass(frozen=True, slots=True)
class QueueUpdated:
    kind: ClassVar[QueueEventKind] = QueueEventKind.QUEUE_UPDATED
    pending: int


@dataclass(frozen=True, slots=True)
class ProcessingStarted:
    kind: ClassVar[QueueEventKind] = QueueEventKind.PROCESSING_STARTED
    batch_size: int


@dataclass(frozen=True, slots=True)
class ProcessingCompleted:
    kind: ClassVar[QueueEventKind] = QueueEventKind.PROCESSING_COMPLETED
    processed: int
    failed: int


@dataclass(frozen=True, slots=True)
class ItemProcessing:
    kind: ClassVar[QueueEventKind] = QueueEventKind.ITEM_PROCESSING
    id: str
    retries: int


@dataclass(frozen=True, slots=True)
class ItemCompleted:
    kind: ClassVar[QueueEventKind] = QueueEventKind.ITEM_COMPLETED
    id: str
    duration_ms: float
    action: str


@dataclass(frozen=True, slots=True)
class ItemRetry:
    kind: ClassVar[QueueEventKind] = QueueEventKind.ITEM_RETRY
    id: str
    retries: int
    delay: float
    error: str


@dataclass(frozen=True, slots=True)
class ItemFailed:
    kind: ClassVar[QueueEventKind] = QueueEventKind.ITEM_FAILED
    id: str
    error: str
    retries: int


@dataclass(frozen=True, slots=True)
class Paused:
    kind: ClassVar[QueueEventKind] = QueueEventKind.PAUSED


@dataclass(frozen=True, slots=True)
class Resumed:
    kind: ClassVar[QueueEventKind] = QueueEventKind.RESUMED


@dataclass(frozen=True, slots=True)
class RetryFailed:
    kind: ClassVar[QueueEventKind] = QueueEventKind.RETRY_FAILED
    count: int


@dataclass(frozen=True, slots=True)
class FailedCleared:
    kind: ClassVar[QueueEventKind] = QueueEventKind.FAILED_CLEARED
    count: int


QueueEvent = Union[
    QueueUpdated,
    ProcessingStarted,
    ProcessingCompleted,
    ItemProcessing,
    ItemCompleted,
    ItemRetry,
    ItemFailed,
    Paused,
    Resumed,
    RetryFailed,
    FailedCleared,
]

QueueListener = Callable[[QueueEvent], None]


def log_queue_event(event: QueueEvent) -> None:
    """Listener that writes queue events to the module logger."""
    match event:
        case ItemRetry(id=item_id, retries=retries, delay=delay, error=error):
            logger.warning(
                "Retrying %s in %.1fs (attempt %d): %s", item_id, delay, retries, error
            )
        case ItemFailed(id=item_id, error=error, retries=retries):
            logger.error("Sync failed for %s after %d retries: %s", item_id, retries, error)
        case ItemCompleted(id=item_id, duration_ms=duration, action=action):
            logger.info("Synced %s (%s, %.0f ms)", item_id, action, duration)
        case ProcessingCompleted(processed=processed, failed=failed):
            logger.info("Batch done: %d processed total, %d failed", processed, failed)
        case _:
            logger.debug("Queue event %s: %s", event.kind.value, event)


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay (seconds)."""

    def schedule_after(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle: ...


class LoopScheduler:
    """``Scheduler`` backed by the running asyncio loop's ``call_later``."""

    def schedule_after(
        self, delay: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class DocumentDispatcher(Protocol):
    def sync_document(
        self, path: str, pairing: PairingConfig
    ) -> Awaitable[DocumentSyncResult]: ...


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


class SyncQueue:
    """Work queue of document changes keyed by path.

    Args:
        dispatcher: Syncs one document (normally
            ``SingleDocumentSyncDispatcher``).
        config: Concurrency, retry and debounce settings.
        scheduler: Timer source; defaults to the running event loop.
    """

    def __init__(
        self,
        dispatcher: DocumentDispatcher,
        config: QueueConfig | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._config = config or QueueConfig()
        self._scheduler = scheduler or LoopScheduler()

        self._pending: dict[str, QueueItem] = {}
        self._processing: set[str] = set()
        self._completed: set[str] = set()
        self._failed: dict[str, QueueItem] = {}
        self._deferred: dict[str, QueueItem] = {}
        self._retry_timers: dict[str, TimerHandle] = {}

        self._timer: TimerHandle | None = None
        self._batch_task: asyncio.Task | None = None
        self._paused = False

        self._durations: deque[float] = deque(maxlen=LATENCY_SAMPLES)
        self._total_processed = 0
        self._last_processed_at: datetime | None = None

        self._listeners: list[QueueListener] = []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        """Register *listener*; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: QueueEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Queue listener failed on %s", event.kind.value)

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(self, changes: Iterable[FileChange], pairing: PairingConfig) -> int:
        """Add *changes* for documents of *pairing*.

        Returns the number of changes accepted (pending or deferred).
        Changes for failed paths are ignored until the caller retries or
        clears them.
        """
        accepted = 0
        for change in changes:
            if self._accept(QueueItem(id=change.path, change=change, pairing=pairing)):
                accepted += 1

        self._emit(QueueUpdated(pending=len(self._pending)))
        self._arm()
        return accepted

    def _accept(self, item: QueueItem) -> bool:
        if item.id in self._failed:
            logger.debug("Ignoring change for failed path %s", item.id)
            return False
        # completed counts paths whose latest change has synced
        self._completed.discard(item.id)
        if item.id in self._processing:
            self._deferred[item.id] = item
            return True
        self._cancel_retry(item.id)
        self._pending[item.id] = item
        return True

    def _cancel_retry(self, item_id: str) -> None:
        handle = self._retry_timers.pop(item_id, None)
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    def _arm(self) -> None:
        """Start the debounce window if a batch may start later."""
        if (
            self._paused
            or self._timer is not None
            or self._batch_task is not None
            or not self._pending
        ):
            return
        self._timer = self._scheduler.schedule_after(
            self._config.batch_delay, self._on_debounce
        )

    def _on_debounce(self) -> None:
        self._timer = None
        if self._paused or self._batch_task is not None or not self._pending:
            return

        batch = list(self._pending.values())
        self._pending.clear()
        self._processing.update(item.id for item in batch)
        self._batch_task = asyncio.get_running_loop().create_task(
            self._run_batch(batch)
        )

    async def _run_batch(self, batch: list[QueueItem]) -> None:
        self._emit(ProcessingStarted(batch_size=len(batch)))
        try:
            await gather_limited(
                [partial(self._process_item, item) for item in batch],
                self._config.concurrency,
            )
        finally:
            self._batch_task = None
            self._emit(
                ProcessingCompleted(
                    processed=self._total_processed, failed=len(self._failed)
                )
            )
            self._arm()

    async def _process_item(self, item: QueueItem) -> None:
        start = time.perf_counter()
        self._emit(ItemProcessing(id=item.id, retries=item.retries))

        action = ""
        retryable = True
        try:
            result = await self._dispatcher.sync_document(
                item.change.path, item.pairing
            )
        except Exception as exc:
            logger.exception("Dispatcher raised for %s", item.id)
            error: str | None = str(exc) or type(exc).__name__
        else:
            action = result.action.value
            retryable = result.retryable
            error = None if result.success else (result.error or "Sync failed")

        duration_ms = (time.perf_counter() - start) * 1000
        self._processing.discard(item.id)

        if error is None:
            self._completed.add(item.id)
            self._total_processed += 1
            self._last_processed_at = datetime.now(timezone.utc)
            self._durations.append(duration_ms)
            self._emit(ItemCompleted(id=item.id, duration_ms=duration_ms, action=action))
        elif retryable and item.retries < self._config.max_retries:
            delay = self._config.retry_delay * (
                self._config.backoff_multiplier ** item.retries
            )
            item.retries += 1
            item.last_error = error
            self._emit(
                ItemRetry(id=item.id, retries=item.retries, delay=delay, error=error)
            )
            self._retry_timers[item.id] = self._scheduler.schedule_after(
                delay, partial(self._on_retry_due, item)
            )
        else:
            item.last_error = error
            self._failed[item.id] = item
            self._emit(ItemFailed(id=item.id, error=error, retries=item.retries))

        deferred = self._deferred.pop(item.id, None)
        if deferred is not None and self._accept(deferred):
            self._emit(QueueUpdated(pending=len(self._pending)))

    def _on_retry_due(self, item: QueueItem) -> None:
        self._retry_timers.pop(item.id, None)
        # a fresher change for the same path supersedes the retry
        if item.id in self._pending or item.id in self._processing:
            return
        self._pending[item.id] = item
        self._emit(QueueUpdated(pending=len(self._pending)))
        self._arm()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_stats(self) -> QueueStats:
        average = (
            sum(self._durations) / len(self._durations) if self._durations else 0.0
        )
        return QueueStats(
            pending=len(self._pending),
            processing=len(self._processing),
            completed=len(self._completed),
            failed=len(self._failed),
            total_processed=self._total_processed,
            average_processing_time_ms=round(average),
            last_processed_at=self._last_processed_at,
        )

    def get_failed_items(self) -> list[QueueItem]:
        return list(self._failed.values())

    def is_active(self) -> bool:
        """True while a debounce window is open or a batch is running."""
        return self._timer is not None or self._batch_task is not None

    @property
    def paused(self) -> bool:
        return self._paused

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def retry_failed(self) -> int:
        """Move every failed item back to pending with a fresh retry budget."""
        items = list(self._failed.values())
        self._failed.clear()
        for item in items:
            item.retries = 0
            item.last_error = None
            self._pending[item.id] = item

        self._emit(RetryFailed(count=len(items)))
        if items:
            self._emit(QueueUpdated(pending=len(self._pending)))
        self._arm()
        return len(items)

    def clear_failed(self) -> int:
        """Forget every failed item."""
        count = len(self._failed)
        self._failed.clear()
        self._emit(FailedCleared(count=count))
        return count

    def pause(self) -> None:
        self._paused = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._emit(Paused())

    def resume(self) -> None:
        self._paused = False
        self._emit(Resumed())
        self._arm()

    async def join(self) -> None:
        """Wait until no batch is running."""
        while self._batch_task is not None:
            await self._batch_task

    async def shutdown(self) -> None:
        """Cancel all timers and wait for the running batch to finish.

        Pending and retrying items are left unprocessed.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for handle in self._retry_timers.values():
            handle.cancel()
        self._retry_timers.clear()
        self._paused = True
        await self.join()
        logger.info(
            "Sync queue stopped (%d pending, %d failed)",
            len(self._pending),
            len(self._failed),
        )
