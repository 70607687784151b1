"""Fixtures for MCP tool tests."""

import pytest

from vault_sync_server.config_schema import UnifiedConfig
from vault_sync_server.mcp.context import build_context


@pytest.fixture
def server_ctx(mock_config, pairing, fake_client, scheduler, tmp_path):
    """ServerContext wired to the fake remote service and manual timers."""
    settings = UnifiedConfig(pairings=[pairing], state_dir=str(tmp_path / "state"))
    return build_context(mock_config, settings, client=fake_client, scheduler=scheduler)
