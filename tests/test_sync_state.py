"""Tests for the sync state store.

Covers:
- load() with a missing, corrupt, or structurally invalid file
- flush() only writes when dirty, atomically, with the versioned envelope
- flush_async() keeps changes made during a write and never overlaps writes
- set/get/clear/reverse_lookup helpers
"""

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path

from vault_sync_server.sync.models import SyncSnapshot
from vault_sync_server.sync.state import STATE_FILE_NAME, STATE_VERSION, SyncStateStore


def _snap(remote_id: int | None = 42, local_ms: float = 1000.0) -> SyncSnapshot:
    return SyncSnapshot(
        last_synced_at="2026-01-01T00:00:00+00:00",
        local_modified_at=local_ms,
        remote_updated_at="2026-01-01T00:00:00Z",
        remote_id=remote_id,
    )


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


class TestLoad:
    def test_missing_file_starts_empty(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "nowhere")
        store.load()
        assert store.entry_count() == 0
        assert store.is_dirty() is False

    def test_corrupt_json_starts_empty(self, tmp_path: Path):
        (tmp_path / STATE_FILE_NAME).write_text("{not json", encoding="utf-8")
        store = SyncStateStore(tmp_path)
        store.load()
        assert store.entry_count() == 0

    def test_missing_version_starts_empty(self, tmp_path: Path):
        (tmp_path / STATE_FILE_NAME).write_text(
            json.dumps({"state": {"/a.md": _snap().model_dump()}}), encoding="utf-8"
        )
        store = SyncStateStore(tmp_path)
        store.load()
        assert store.entry_count() == 0

    def test_state_not_a_mapping_starts_empty(self, tmp_path: Path):
        (tmp_path / STATE_FILE_NAME).write_text(
            json.dumps({"version": "1.0.0", "state": []}), encoding="utf-8"
        )
        store = SyncStateStore(tmp_path)
        store.load()
        assert store.entry_count() == 0

    def test_invalid_entries_are_dropped(self, tmp_path: Path):
        (tmp_path / STATE_FILE_NAME).write_text(
            json.dumps(
                {
                    "version": "1.0.0",
                    "state": {
                        "/good.md": _snap().model_dump(),
                        "/bad.md": {"local_modified_at": "yesterday"},
                    },
                }
            ),
            encoding="utf-8",
        )
        store = SyncStateStore(tmp_path)
        store.load()
        assert store.get("/good.md") == _snap()
        assert store.get("/bad.md") is None

    def test_load_discards_unsaved_changes(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap())
        store.load()
        assert store.get("/a.md") is None
        assert store.is_dirty() is False


# ---------------------------------------------------------------------------
# Flush
# ---------------------------------------------------------------------------


class TestFlush:
    def test_clean_store_writes_nothing(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "state")
        store.flush()
        assert not store.state_file.exists()

    def test_writes_envelope(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "nested" / "state")
        store.set("/a.md", _snap())
        store.flush()

        payload = json.loads(store.state_file.read_text(encoding="utf-8"))
        assert payload["version"] == STATE_VERSION
        assert "saved_at" in payload
        assert payload["state"]["/a.md"]["remote_id"] == 42
        assert store.is_dirty() is False

    def test_no_temp_files_left_behind(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap())
        store.flush()
        assert [p.name for p in tmp_path.iterdir()] == [STATE_FILE_NAME]

    def test_flush_then_load_round_trip(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap(42))
        store.set("/b.md", _snap(None, 2000.5))
        store.flush()

        reloaded = SyncStateStore(tmp_path)
        reloaded.load()
        assert reloaded.all_states() == {"/a.md": _snap(42), "/b.md": _snap(None, 2000.5)}


def _state_on_disk(store: SyncStateStore) -> list[str]:
    payload = json.loads(store.state_file.read_text(encoding="utf-8"))
    return sorted(payload["state"])


class TestFlushAsync:
    async def test_clean_store_writes_nothing(self, tmp_path: Path):
        store = SyncStateStore(tmp_path / "state")
        await store.flush_async()
        assert not store.state_file.exists()

    async def test_writes_and_marks_clean(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap())
        await store.flush_async()
        assert _state_on_disk(store) == ["/a.md"]
        assert store.is_dirty() is False

    async def test_change_during_write_keeps_store_dirty(self, tmp_path: Path, monkeypatch):
        store = SyncStateStore(tmp_path)
        real_write = store._write_payload
        started = threading.Event()
        release = threading.Event()

        def _slow_write(payload):
            started.set()
            release.wait(5)
            real_write(payload)

        monkeypatch.setattr(store, "_write_payload", _slow_write)
        store.set("/a.md", _snap(1))
        flush = asyncio.create_task(store.flush_async())
        await asyncio.to_thread(started.wait, 5)

        store.set("/b.md", _snap(2))
        release.set()
        await flush

        assert _state_on_disk(store) == ["/a.md"]
        assert store.is_dirty() is True

        await store.flush_async()
        assert _state_on_disk(store) == ["/a.md", "/b.md"]
        assert store.is_dirty() is False

    async def test_clear_during_write_keeps_store_dirty(self, tmp_path: Path, monkeypatch):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap(1))
        store.set("/b.md", _snap(2))
        real_write = store._write_payload
        started = threading.Event()
        release = threading.Event()

        def _slow_write(payload):
            started.set()
            release.wait(5)
            real_write(payload)

        monkeypatch.setattr(store, "_write_payload", _slow_write)
        flush = asyncio.create_task(store.flush_async())
        await asyncio.to_thread(started.wait, 5)
        store.clear("/a.md")
        release.set()
        await flush

        assert store.is_dirty() is True
        await store.flush_async()
        assert _state_on_disk(store) == ["/b.md"]

    async def test_overlapping_flushes_are_serialized(self, tmp_path: Path, monkeypatch):
        store = SyncStateStore(tmp_path)
        real_write = store._write_payload
        counter = threading.Lock()
        started = threading.Event()
        release = threading.Event()
        active = 0
        peak = 0
        written: list[list[str]] = []

        def _tracked_write(payload):
            nonlocal active, peak
            with counter:
                active += 1
                peak = max(peak, active)
            started.set()
            release.wait(5)
            real_write(payload)
            written.append(sorted(payload["state"]))
            with counter:
                active -= 1

        monkeypatch.setattr(store, "_write_payload", _tracked_write)
        store.set("/a.md", _snap(1))
        first = asyncio.create_task(store.flush_async())
        await asyncio.to_thread(started.wait, 5)

        store.set("/b.md", _snap(2))
        second = asyncio.create_task(store.flush_async())
        await asyncio.sleep(0)
        release.set()
        await asyncio.gather(first, second)

        assert peak == 1
        assert written == [["/a.md"], ["/a.md", "/b.md"]]
        assert _state_on_disk(store) == ["/a.md", "/b.md"]
        assert store.is_dirty() is False


# ---------------------------------------------------------------------------
# Entry helpers
# ---------------------------------------------------------------------------


class TestEntries:
    def test_clear_missing_entry_stays_clean(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.clear("/a.md")
        assert store.is_dirty() is False

    def test_clear_marks_dirty(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap())
        store.flush()
        store.clear("/a.md")
        assert store.is_dirty() is True
        assert store.get("/a.md") is None

    def test_reverse_lookup(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap(1))
        store.set("/b.md", _snap(2))
        assert store.reverse_lookup(2) == ("/b.md", _snap(2))
        assert store.reverse_lookup(3) is None

    def test_all_states_is_a_copy(self, tmp_path: Path):
        store = SyncStateStore(tmp_path)
        store.set("/a.md", _snap())
        states = store.all_states()
        states.clear()
        assert store.entry_count() == 1
