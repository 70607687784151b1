"""Tests for connection configuration loading and validation."""

import pytest

from vault_sync_server.config import (
    DEFAULT_API_URL,
    Config,
    load_config,
    validate_config,
)

_ENV_VARS = (
    "VAULT_SYNC_API_URL",
    "VAULT_SYNC_API_KEY",
    "VAULT_SYNC_INSECURE",
    "VAULT_SYNC_DEBUG",
    "VAULT_SYNC_MAX_PARALLEL_REQUESTS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# validate_config
# ---------------------------------------------------------------------------


class TestValidateConfig:
    def test_strips_trailing_slash(self):
        config = Config(api_key="k", api_url="https://api.example.com/v0/")
        validate_config(config)
        assert config.api_url == "https://api.example.com/v0"

    def test_rejects_non_http_scheme(self):
        with pytest.raises(ValueError, match="must start with http"):
            validate_config(Config(api_key="k", api_url="ftp://example.com"))

    def test_rejects_missing_hostname(self):
        with pytest.raises(ValueError, match="hostname"):
            validate_config(Config(api_key="k", api_url="https://"))

    def test_rejects_blank_key(self):
        with pytest.raises(ValueError, match="API key cannot be empty"):
            validate_config(Config(api_key="   "))


# ---------------------------------------------------------------------------
# load_config precedence
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_missing_key_raises(self):
        with pytest.raises(ValueError, match="API key not found"):
            load_config()

    def test_defaults(self):
        config = load_config(api_key="k")
        assert config.api_url == DEFAULT_API_URL
        assert config.insecure is False
        assert config.max_parallel_requests == 3

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("VAULT_SYNC_API_KEY", "env-key")
        monkeypatch.setenv("VAULT_SYNC_API_URL", "https://env.example.com")
        monkeypatch.setenv("VAULT_SYNC_INSECURE", "yes")
        monkeypatch.setenv("VAULT_SYNC_MAX_PARALLEL_REQUESTS", "7")

        config = load_config()

        assert config.api_key == "env-key"
        assert config.api_url == "https://env.example.com"
        assert config.insecure is True
        assert config.max_parallel_requests == 7

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("VAULT_SYNC_API_KEY", "env-key")
        config = load_config(api_key="cli-key", url="https://cli.example.com")
        assert config.api_key == "cli-key"
        assert config.api_url == "https://cli.example.com"

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("VAULT_SYNC_INSECURE", "false")
        config = load_config(
            yaml_fallbacks={"api_key": "yaml-key", "insecure": True, "url": "https://y.example.com"}
        )
        assert config.api_key == "yaml-key"
        assert config.insecure is False
        assert config.api_url == "https://y.example.com"

    def test_yaml_max_parallel(self):
        config = load_config(yaml_fallbacks={"api_key": "k", "max_parallel_requests": 9})
        assert config.max_parallel_requests == 9

    @pytest.mark.parametrize("raw", ["zero", "0", "21"])
    def test_invalid_max_parallel(self, monkeypatch, raw):
        monkeypatch.setenv("VAULT_SYNC_MAX_PARALLEL_REQUESTS", raw)
        with pytest.raises(ValueError, match="between 1 and 20"):
            load_config(api_key="k")
