"""Tests for the sync queue MCP tools, end to end through the real queue."""

import pytest

from vault_sync_server.mcp.tools import QUEUE_SPECS, ToolRegistry


@pytest.fixture
def registry():
    return ToolRegistry(QUEUE_SPECS)


async def _drain(ctx, scheduler):
    scheduler.advance(ctx.settings.queue.batch_delay)
    await ctx.queue.join()


class TestQueueChanges:
    async def test_queues_and_processes(
        self, registry, server_ctx, scheduler, fake_client, vault, make_doc
    ):
        path = make_doc(vault / "Design" / "combat.md", "Rules\n")

        result = await registry.call_tool("queue_changes", {"paths": [path]}, server_ctx)

        assert result.structuredContent == {"accepted": 1, "unpaired": [], "paused": False}
        assert server_ctx.queue.get_stats().pending == 1

        await _drain(server_ctx, scheduler)

        stats = server_ctx.queue.get_stats()
        assert stats.completed == 1
        assert stats.total_processed == 1
        assert len(fake_client.records) == 1

    async def test_unpaired_paths_reported(self, registry, server_ctx, vault, make_doc, tmp_path):
        inside = make_doc(vault / "Design" / "combat.md", "Rules\n")
        outside = str((tmp_path / "elsewhere.md").resolve())

        result = await registry.call_tool(
            "queue_changes", {"paths": [inside, outside], "event": "add"}, server_ctx
        )

        assert result.structuredContent["accepted"] == 1
        assert result.structuredContent["unpaired"] == [outside]
        assert "Queued 1 of 2 changes." in result.content[0].text

    async def test_empty_paths(self, registry, server_ctx):
        result = await registry.call_tool("queue_changes", {"paths": []}, server_ctx)
        assert result.isError is True

    async def test_invalid_event(self, registry, server_ctx, vault):
        result = await registry.call_tool(
            "queue_changes", {"paths": [str(vault / "a.md")], "event": "rename"}, server_ctx
        )
        assert result.isError is True
        assert "validation_error" in result.content[0].text

    async def test_paused_hint(self, registry, server_ctx, vault, make_doc):
        path = make_doc(vault / "Design" / "combat.md", "Rules\n")
        await registry.call_tool("pause_sync_queue", {}, server_ctx)
        result = await registry.call_tool("queue_changes", {"paths": [path]}, server_ctx)
        assert "Queue is paused" in result.content[0].text


class TestQueueStatsAndRecovery:
    async def test_failed_item_lifecycle(
        self, registry, server_ctx, scheduler, vault, make_doc
    ):
        # unmapped folder: a non-retryable failure
        path = make_doc(vault / "Other" / "stray.md", "stray\n")
        await registry.call_tool("queue_changes", {"paths": [path]}, server_ctx)
        await _drain(server_ctx, scheduler)

        stats = await registry.call_tool("get_queue_stats", {}, server_ctx)
        assert stats.structuredContent["failed"] == 1
        assert stats.structuredContent["failed_items"][0]["path"] == path
        assert "Failed:" in stats.content[0].text

        retried = await registry.call_tool("retry_failed_sync", {}, server_ctx)
        assert retried.structuredContent == {"count": 1}
        assert server_ctx.queue.get_stats().pending == 1

        await _drain(server_ctx, scheduler)
        cleared = await registry.call_tool("clear_failed_sync", {}, server_ctx)
        assert cleared.structuredContent == {"count": 1}
        assert server_ctx.queue.get_failed_items() == []

    async def test_pause_and_resume(self, registry, server_ctx, scheduler, vault, make_doc):
        path = make_doc(vault / "Design" / "combat.md", "Rules\n")
        await registry.call_tool("pause_sync_queue", {}, server_ctx)
        await registry.call_tool("queue_changes", {"paths": [path]}, server_ctx)

        scheduler.advance(10)
        assert server_ctx.queue.get_stats().pending == 1

        result = await registry.call_tool("resume_sync_queue", {}, server_ctx)
        assert result.structuredContent == {"paused": False}
        await _drain(server_ctx, scheduler)
        assert server_ctx.queue.get_stats().completed == 1

    async def test_stats_text(self, registry, server_ctx):
        result = await registry.call_tool("get_queue_stats", {}, server_ctx)
        assert result.content[0].text.startswith("Sync queue (running)")
        assert result.structuredContent["paused"] is False
        assert result.structuredContent["failed_items"] == []
