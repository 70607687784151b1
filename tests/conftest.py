"""Shared pytest fixtures for vault-sync-server tests."""

from __future__ import annotations

import heapq
import itertools
from pathlib import Path

import pytest

from vault_sync_server.config import Config
from vault_sync_server.config_schema import PairingConfig
from vault_sync_server.core.client import RemoteAPIError, RemoteRecord
from vault_sync_server.sync.state import SyncStateStore


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        api_key="test-key",
        api_url="https://api.example.com/v0",
        insecure=False,
    )


# ---------------------------------------------------------------------------
# Fake remote service
# ---------------------------------------------------------------------------


class FakeRemoteClient:
    """In-memory stand-in for ``RemoteClient``.

    ``fail_create_on`` lists 1-based create call numbers that raise;
    ``fail_update`` makes every update raise.
    """

    def __init__(self):
        self.records: dict[int, RemoteRecord] = {}
        self.calls: list[tuple] = []
        self.fail_create_on: set[int] = set()
        self.fail_update: RemoteAPIError | None = None
        self.fail_delete = False
        self.now = "2026-01-01T00:00:00+00:00"
        self._ids = itertools.count(100)
        self._create_calls = 0

    def add_record(
        self,
        record_id: int,
        description: str = "",
        updated_at: str | None = None,
        type_id: int | None = None,
        name: str | None = None,
    ):
        record = RemoteRecord(
            id=record_id,
            name=name or f"Record {record_id}",
            description=description,
            created_at=self.now,
            updated_at=updated_at or self.now,
            type_id=type_id,
        )
        self.records[record_id] = record
        return record

    def create_record(self, container_id, request):
        self._create_calls += 1
        self.calls.append(("create", container_id, request["name"]))
        if self._create_calls in self.fail_create_on:
            raise RemoteAPIError(500, "create exploded")
        record = RemoteRecord(
            id=next(self._ids),
            name=request["name"],
            description=request.get("description", ""),
            created_at=self.now,
            updated_at=self.now,
            type_id=request["type_id"],
        )
        self.records[record.id] = record
        return record

    def update_record(self, container_id, record_id, request):
        self.calls.append(("update", container_id, record_id))
        if self.fail_update is not None:
            raise self.fail_update
        if record_id not in self.records:
            raise RemoteAPIError(404, "not found")
        record = self.records[record_id].model_copy(
            update={
                "name": request.get("name", self.records[record_id].name),
                "description": request.get("description", ""),
                "updated_at": self.now,
            }
        )
        self.records[record_id] = record
        return record

    def get_record(self, container_id, record_id):
        self.calls.append(("get", container_id, record_id))
        return self.records.get(record_id)

    def list_records(self, container_id):
        self.calls.append(("list", container_id))
        return [self.records[k] for k in sorted(self.records)]

    def delete_record(self, container_id, record_id):
        self.calls.append(("delete", container_id, record_id))
        if self.fail_delete:
            raise RemoteAPIError(500, "delete exploded")
        self.records.pop(record_id, None)


@pytest.fixture
def fake_client():
    return FakeRemoteClient()


# ---------------------------------------------------------------------------
# Manual timer source for the sync queue
# ---------------------------------------------------------------------------


class _ManualHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """``Scheduler`` driven by explicit ``advance()`` calls."""

    def __init__(self):
        self.now = 0.0
        self._heap: list = []
        self._seq = itertools.count()
        self.delays: list[float] = []

    def schedule_after(self, delay, callback):
        handle = _ManualHandle()
        self.delays.append(delay)
        heapq.heappush(self._heap, (self.now + delay, next(self._seq), handle, callback))
        return handle

    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._heap if not h.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order.

        Returns the number of callbacks fired.
        """
        target = self.now + seconds
        fired = 0
        while self._heap and self._heap[0][0] <= target:
            when, _, handle, callback = heapq.heappop(self._heap)
            self.now = when
            if handle.cancelled:
                continue
            callback()
            fired += 1
        self.now = target
        return fired


@pytest.fixture
def scheduler():
    return ManualScheduler()


# ---------------------------------------------------------------------------
# Vault fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    (root / "Design").mkdir(parents=True)
    (root / "Notes").mkdir()
    return root


@pytest.fixture
def pairing(vault: Path) -> PairingConfig:
    return PairingConfig(
        container_id=7,
        name="Game",
        vault_path=str(vault),
        folder_mappings={"Design": 9, "": 1},
        tag_mappings={"combat": 11, "ui": 12},
        exclude=["Notes/*"],
    )


@pytest.fixture
def state_store(tmp_path: Path) -> SyncStateStore:
    return SyncStateStore(tmp_path / "state")


def write_doc(path: Path, content: str) -> str:
    """Write *content* to *path* and return the resolved path string."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return str(path.resolve())


@pytest.fixture
def make_doc():
    """Factory writing a document and returning its resolved path string."""
    return write_doc
