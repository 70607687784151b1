"""Tests for the MCP server module: accessors, ping and tool dispatch."""

import pytest

from vault_sync_server import __version__
from vault_sync_server.mcp import server as server_mod
from vault_sync_server.mcp.tools import ALL_SPECS, ToolRegistry


@pytest.fixture
def installed(server_ctx):
    """Install a context and full registry as the server globals."""
    server_mod.set_context(server_ctx)
    server_mod.set_registry(ToolRegistry([server_mod.PING_SPEC] + ALL_SPECS))
    yield server_ctx
    server_mod.set_context(None)
    server_mod.set_registry(None)


class TestAccessors:
    def test_context_not_initialized(self):
        server_mod.set_context(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            server_mod.get_context()

    def test_registry_not_initialized(self):
        server_mod.set_registry(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            server_mod.get_registry()


class TestHandlers:
    async def test_list_tools(self, installed):
        tools = await server_mod.handle_list_tools()
        assert "ping" in {t.name for t in tools}
        assert len(tools) == 1 + len(ALL_SPECS)

    async def test_ping(self, installed):
        result = await server_mod.handle_call_tool("ping", {})
        text = result.content[0].text
        assert __version__ in text
        assert "API URL: https://api.example.com/v0" in text
        assert "Paired containers: 7 (Game)" in text

    async def test_unknown_tool(self, installed):
        result = await server_mod.handle_call_tool("frobnicate", None)
        assert result.isError is True
        assert result.content[0].text.startswith("Error (unknown_tool)")
