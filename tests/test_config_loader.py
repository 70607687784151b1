"""Tests for config_loader.py -- discovery, includes, interpolation, merging."""

from pathlib import Path

import pytest
import yaml

from vault_sync_server.config_loader import (
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    """Point CWD and HOME at empty temp dirs and clear VAULT_SYNC_CONFIG."""
    project = tmp_path / "project"
    home = tmp_path / "home"
    project.mkdir()
    home.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("VAULT_SYNC_CONFIG", raising=False)
    return project, home


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# interpolate_env_vars
# ---------------------------------------------------------------------------


class TestInterpolateEnvVars:
    def test_set_variable(self, monkeypatch):
        monkeypatch.setenv("VS_TEST_KEY", "secret")
        assert interpolate_env_vars("key=${VS_TEST_KEY}") == "key=secret"

    def test_unset_variable_is_empty(self, monkeypatch):
        monkeypatch.delenv("VS_TEST_MISSING", raising=False)
        assert interpolate_env_vars("[${VS_TEST_MISSING}]") == "[]"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("VS_TEST_MISSING", raising=False)
        assert interpolate_env_vars("${VS_TEST_MISSING:-fallback}") == "fallback"

    def test_default_used_when_empty(self, monkeypatch):
        monkeypatch.setenv("VS_TEST_EMPTY", "")
        assert interpolate_env_vars("${VS_TEST_EMPTY:-fallback}") == "fallback"

    def test_unclosed_is_literal(self):
        assert interpolate_env_vars("${NOT_CLOSED") == "${NOT_CLOSED"


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class TestIncludeDirective:
    def test_relative_include(self, tmp_path):
        _write(tmp_path / "parts" / "queue.yml", "concurrency: 5\n")
        main = _write(tmp_path / "config.yml", "queue: !include parts/queue.yml\n")
        assert _load_yaml_with_includes(main) == {"queue": {"concurrency": 5}}

    def test_absolute_include(self, tmp_path):
        part = _write(tmp_path / "elsewhere" / "remote.yml", "url: https://x.example.com\n")
        main = _write(tmp_path / "config.yml", f"remote: !include {part}\n")
        assert _load_yaml_with_includes(main)["remote"]["url"] == "https://x.example.com"

    def test_nested_include(self, tmp_path):
        _write(tmp_path / "a.yml", "inner: !include b.yml\n")
        _write(tmp_path / "b.yml", "value: 1\n")
        main = _write(tmp_path / "config.yml", "outer: !include a.yml\n")
        assert _load_yaml_with_includes(main) == {"outer": {"inner": {"value": 1}}}

    def test_missing_include(self, tmp_path):
        main = _write(tmp_path / "config.yml", "queue: !include nope.yml\n")
        with pytest.raises(FileNotFoundError, match="Include file not found"):
            _load_yaml_with_includes(main)

    def test_circular_include(self, tmp_path):
        _write(tmp_path / "a.yml", "b: !include b.yml\n")
        _write(tmp_path / "b.yml", "a: !include a.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(tmp_path / "a.yml")

    def test_self_include(self, tmp_path):
        main = _write(tmp_path / "config.yml", "me: !include config.yml\n")
        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(main)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_precedence_order(self, isolated, monkeypatch, tmp_path):
        project, home = isolated
        explicit = _write(tmp_path / "explicit.yml", "{}\n")
        yml = _write(project / ".vault_sync" / "config.yml", "{}\n")
        yaml_alt = _write(project / ".vault_sync" / "config.yaml", "{}\n")
        global_cfg = _write(home / ".config" / "vault_sync" / "config.yml", "{}\n")
        monkeypatch.setenv("VAULT_SYNC_CONFIG", str(explicit))

        found = discover_config_files()

        assert [p.resolve() for p in found] == [
            p.resolve() for p in (explicit, yml, yaml_alt, global_cfg)
        ]

    def test_env_path_missing_is_ignored(self, isolated, monkeypatch, tmp_path):
        monkeypatch.setenv("VAULT_SYNC_CONFIG", str(tmp_path / "missing.yml"))
        assert discover_config_files() == []


class TestEnsureConfig:
    def test_creates_starter(self, isolated):
        project, _ = isolated
        expected = (project / ".vault_sync" / "config.yml").resolve()
        assert resolve_config_path().resolve() == expected

        path = ensure_config()

        assert path.exists()
        assert "pairings:" in path.read_text(encoding="utf-8")

    def test_existing_is_returned(self, isolated):
        project, _ = isolated
        existing = _write(project / ".vault_sync" / "config.yml", "state_dir: s\n")
        assert ensure_config().resolve() == existing.resolve()
        assert existing.read_text(encoding="utf-8") == "state_dir: s\n"


# ---------------------------------------------------------------------------
# load_hierarchical_config
# ---------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_wins_top_level(self, isolated):
        project, home = isolated
        _write(
            home / ".config" / "vault_sync" / "config.yml",
            "state_dir: global\nqueue:\n  concurrency: 8\n",
        )
        _write(project / ".vault_sync" / "config.yml", "state_dir: project\n")

        merged = load_hierarchical_config()

        assert merged["state_dir"] == "project"
        assert merged["queue"] == {"concurrency": 8}

    def test_interpolation_after_merge(self, isolated, monkeypatch):
        project, _ = isolated
        monkeypatch.setenv("VS_TEST_API_KEY", "abc")
        _write(project / ".vault_sync" / "config.yml", "remote:\n  api_key: ${VS_TEST_API_KEY}\n")
        assert load_hierarchical_config()["remote"]["api_key"] == "abc"

    def test_non_dict_root_skipped(self, isolated):
        project, _ = isolated
        _write(project / ".vault_sync" / "config.yml", "- a\n- b\n")
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        project, _ = isolated
        _write(project / ".vault_sync" / "config.yml", "a: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()
