"""Unified configuration schema for vault_sync_server.

Defines Pydantic models for the unified config structure with dedicated
sections for the remote connection, logging, the sync queue, the vault
file watcher, and the vault/container pairings.  Includes an adapter to
the ``Config`` dataclass used by the HTTP client.

Usage:
    from vault_sync_server.config_schema import (
        UnifiedConfig, build_config, to_client_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_client_config(unified, cli_overrides={"url": "https://..."})
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote service connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Remote API base URL")
    api_key: str | None = Field(default=None, description="Remote API key")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum concurrent requests to the remote service (1-20)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class QueueConfig(BaseModel):
    """Sync queue tuning.

    Delays are in seconds.
    """

    concurrency: int = Field(default=3, ge=1, le=32)
    max_retries: int = Field(default=3, ge=0, le=20)
    retry_delay: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    batch_delay: float = Field(default=2.0, ge=0)

    model_config = {"frozen": True}


class WatcherConfig(BaseModel):
    """Vault file watcher settings.

    Attributes:
        auto_start: Start watching every paired vault when the server
            starts.
        debounce_ms: Window in which filesystem events are grouped.
    """

    auto_start: bool = Field(default=False)
    debounce_ms: int = Field(default=1600, ge=0)

    model_config = {"frozen": True}


class PairingConfig(BaseModel):
    """Pairing between one local vault directory and one remote container.

    Attributes:
        container_id: Remote container (project) identifier.
        name: Display name for the pairing.
        vault_path: Root directory of the local document tree.
        folder_mappings: Vault folder (relative, POSIX separators) to
            remote record type id.
        tag_mappings: Front-matter tag name to remote tag id.
        exclude: Glob patterns (relative to ``vault_path``) never synced.
    """

    container_id: int
    name: str = ""
    vault_path: str
    folder_mappings: dict[str, int] = Field(default_factory=dict)
    tag_mappings: dict[str, int] = Field(default_factory=dict)
    exclude: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("folder_mappings")
    @classmethod
    def _normalise_folders(cls, value: dict[str, int]) -> dict[str, int]:
        """Strip leading/trailing slashes so keys compare against relative dirs."""
        return {k.replace("\\", "/").strip("/"): v for k, v in value.items()}

    @property
    def root(self) -> Path:
        return Path(self.vault_path).expanduser().resolve()


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    state_dir: str = Field(
        default=".vault_sync",
        description="Directory holding the sync state file",
    )
    pairings: list[PairingConfig] = Field(default_factory=list)

    model_config = {"frozen": True}

    def get_pairing(self, container_id: int) -> PairingConfig | None:
        """Return the pairing for *container_id*, or ``None``."""
        for pairing in self.pairings:
            if pairing.container_id == container_id:
                return pairing
        return None

    def pairing_for_path(self, path: str | Path) -> PairingConfig | None:
        """Return the pairing whose vault contains *path*, or ``None``."""
        resolved = Path(path).expanduser().resolve()
        for pairing in self.pairings:
            if resolved.is_relative_to(pairing.root):
                return pairing
        return None


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_client_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > default

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values
            (url, api_key, insecure, debug).

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    from .config import DEFAULT_API_URL, Config

    overrides = cli_overrides or {}

    return Config(
        api_url=overrides.get("url") or unified.remote.url or DEFAULT_API_URL,
        api_key=overrides.get("api_key") or unified.remote.api_key or "",
        insecure=overrides.get("insecure", False) or unified.remote.insecure,
        debug=overrides.get("debug", False) or unified.remote.debug,
        max_parallel_requests=unified.remote.max_parallel_requests,
    )
