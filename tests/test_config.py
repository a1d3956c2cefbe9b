"""
Tests for Configuration Loading
===============================
"""

import json
import logging
from pathlib import Path

import pytest

from crewforge.config import CrewForgeConfig, TargetHost


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "CREWFORGE_DB",
        "ACTIVE_MODEL",
        "CREWFORGE_MODEL",
        "MEMORY_SUMMARIZER_MODEL",
        "CREWFORGE_REASONING_TIMEOUT",
        "CREWFORGE_TOOL_TIMEOUT",
        "CREWFORGE_WORKSPACE",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self, clean_env, temp_dir):
        config = CrewForgeConfig.load(temp_dir / "missing.json", use_dotenv=False)
        assert config.default_provider == "CLAUDE"
        assert config.summarizer_provider == "DEEPSEEK"
        assert config.planning_max_tokens == 8192
        assert config.generation_max_tokens == 16384
        assert config.short_term_cap == 30
        assert config.targets == {}


class TestFileAndEnv:
    """Tests for file loading and environment overrides."""

    def test_file_values(self, clean_env, temp_dir):
        path = temp_dir / "crewforge_config.json"
        path.write_text(json.dumps({
            "default_provider": "OPENAI",
            "short_term_cap": 10,
            "unknown_key": True,
            "targets": {"prod-1": {"host": "10.0.0.5", "port": 2222, "key_path": "~/.ssh/id"}},
        }))
        config = CrewForgeConfig.load(path, use_dotenv=False)

        assert config.default_provider == "OPENAI"
        assert config.short_term_cap == 10
        target = config.targets["prod-1"]
        assert isinstance(target, TargetHost)
        assert target.connection_key == "10.0.0.5:2222:root"

    def test_malformed_file_is_ignored(self, clean_env, temp_dir, caplog):
        path = temp_dir / "crewforge_config.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="crewforge.config"):
            config = CrewForgeConfig.load(path, use_dotenv=False)
        assert config.default_provider == "CLAUDE"
        assert "Failed to load config file" in caplog.text

    def test_env_overrides_file(self, clean_env, temp_dir):
        path = temp_dir / "crewforge_config.json"
        path.write_text(json.dumps({"default_provider": "OPENAI", "tool_timeout": 5}))
        clean_env.setenv("ACTIVE_MODEL", "deepseek")
        clean_env.setenv("CREWFORGE_TOOL_TIMEOUT", "12.5")

        config = CrewForgeConfig.load(path, use_dotenv=False)
        assert config.default_provider == "DEEPSEEK"
        assert config.tool_timeout == 12.5

    def test_invalid_env_value_skipped(self, clean_env, temp_dir):
        clean_env.setenv("CREWFORGE_REASONING_TIMEOUT", "soon")
        config = CrewForgeConfig.load(temp_dir / "missing.json", use_dotenv=False)
        assert config.reasoning_timeout == 120.0


class TestPaths:
    """Tests for workspace and database path resolution."""

    def test_relative_db_path_under_workspace(self, temp_dir):
        config = CrewForgeConfig(workspace_dir=str(temp_dir), db_path="state/crewforge.db")
        assert config.resolve_db_path() == temp_dir.resolve() / "state" / "crewforge.db"

    def test_absolute_db_path_kept(self, temp_dir):
        absolute = temp_dir / "elsewhere.db"
        config = CrewForgeConfig(workspace_dir="/srv/work", db_path=str(absolute))
        assert config.resolve_db_path() == Path(absolute)
