"""Wiring of the sync engine components shared by all MCP tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..config import Config
from ..config_schema import PairingConfig, UnifiedConfig
from ..core.client import RemoteClient
from ..sync.dispatcher import SingleDocumentSyncDispatcher
from ..sync.executor import SyncExecutor
from ..sync.queue import Scheduler, SyncQueue, log_queue_event
from ..sync.state import SyncStateStore
from ..sync.watcher import VaultWatcher, WatchFunction

logger = logging.getLogger(__name__)


@dataclass
class ServerContext:
    """Engine components created once per server run.

    Attributes:
        config: Remote connection settings.
        settings: Full unified configuration (pairings, queue tuning).
        client: Remote API client.
        state_store: Snapshot store (loaded on startup).
        executor: Multi-step sync operations.
        dispatcher: Single-document sync.
        queue: Debounced background sync queue.
        watcher: Vault file watcher feeding *queue*.
    """

    config: Config
    settings: UnifiedConfig
    client: RemoteClient
    state_store: SyncStateStore
    executor: SyncExecutor
    dispatcher: SingleDocumentSyncDispatcher
    queue: SyncQueue
    watcher: VaultWatcher

    def pairing_for_path(self, path: str | Path) -> PairingConfig:
        """Return the pairing whose vault contains *path*.

        Raises:
            ValueError: If no configured vault contains *path*.
        """
        pairing = self.settings.pairing_for_path(path)
        if pairing is None:
            raise ValueError(f"No pairing configured for {path}")
        return pairing

    def pairing(self, container_id: int) -> PairingConfig:
        """Return the pairing for *container_id*.

        Raises:
            ValueError: If the container is not paired with a vault.
        """
        pairing = self.settings.get_pairing(container_id)
        if pairing is None:
            known = [p.container_id for p in self.settings.pairings]
            raise ValueError(
                f"Container {container_id} is not paired. Known containers: {known}"
            )
        return pairing


def build_context(
    config: Config,
    settings: UnifiedConfig,
    client: RemoteClient | None = None,
    scheduler: Scheduler | None = None,
    watch: WatchFunction | None = None,
) -> ServerContext:
    """Create every engine component from configuration.

    The state store is created but not loaded; callers decide when to
    touch the disk.
    """
    client = client or RemoteClient(config)
    state_store = SyncStateStore(Path(settings.state_dir).expanduser())
    executor = SyncExecutor(
        client,
        state_store,
        on_event=lambda event: logger.info("Sync event: %s", event),
    )
    dispatcher = SingleDocumentSyncDispatcher(executor, state_store)
    queue = SyncQueue(dispatcher, settings.queue, scheduler)
    queue.subscribe(log_queue_event)
    watcher = VaultWatcher(
        queue, settings.pairings, settings.watcher.debounce_ms, watch=watch
    )
    return ServerContext(
        config=config,
        settings=settings,
        client=client,
        state_store=state_store,
        executor=executor,
        dispatcher=dispatcher,
        queue=queue,
        watcher=watcher,
    )
