"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import UnifiedConfig, build_config
from ..core.async_utils import run_sync
from .context import ServerContext, build_context

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[ServerContext]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (remote fallbacks, pairings, queue tuning)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the sync engine and load the persisted sync state
    - Start the vault file watcher when ``watcher.auto_start`` is set

    On shutdown:
    - Stop the vault file watcher
    - Drain the sync queue (cancel timers, wait for the running batch)
    - Flush unsaved sync state

    Args:
        config_overrides: Optional dict with config values from CLI (url, api_key, insecure)

    Yields:
        ServerContext with every engine component wired up.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("Vault Sync MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        settings = UnifiedConfig()
        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            settings = build_config(load_hierarchical_config())
            yaml_fallbacks = {
                k: v
                for k, v in settings.remote.model_dump().items()
                if v is not None
            }
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            url=overrides.get("url"),
            api_key=overrides.get("api_key"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("API URL: %s", config.api_url)
        _stderr_print(f"  API URL: {config.api_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure VAULT_SYNC_API_KEY is set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure VAULT_SYNC_API_KEY is set."
        ) from e

    if not settings.pairings:
        logger.warning("No vault pairings configured; sync tools will reject every path")
        _stderr_print("  WARNING: no vault pairings configured")

    ctx = build_context(config, settings)
    await run_sync(ctx.state_store.load)
    _stderr_print(
        f"  Sync state: {ctx.state_store.entry_count()} tracked documents "
        f"({ctx.state_store.state_file})"
    )
    for pairing in settings.pairings:
        _stderr_print(f"  Pairing: {pairing.root} <-> container {pairing.container_id}")
    if settings.watcher.auto_start and settings.pairings:
        ctx.watcher.start()
        _stderr_print("  File watcher: started")
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield ctx
    finally:
        logger.info("MCP server shutting down")
        await ctx.watcher.stop()
        await ctx.queue.shutdown()
        await ctx.state_store.flush_async()
        _stderr_print("Vault Sync MCP Server shutting down.")
