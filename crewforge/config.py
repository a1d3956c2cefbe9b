"""
Configuration Management
========================

Handles loading configuration from environment variables and config files.

Precedence (highest first):
1. Environment variables (a local ``.env`` is loaded through python-dotenv)
2. Local config file (crewforge_config.json)
3. Default values
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Default configuration values
CONFIG_FILENAME = "crewforge_config.json"
DEFAULT_DB_PATH = ".crewforge/crewforge.db"
DEFAULT_PROVIDER = "CLAUDE"
DEFAULT_SUMMARIZER_PROVIDER = "DEEPSEEK"

# Environment variable -> (field name, converter)
_ENV_OVERRIDES = {
    "CREWFORGE_DB": ("db_path", str),
    "ACTIVE_MODEL": ("default_provider", str.upper),
    "CREWFORGE_MODEL": ("default_model", str),
    "MEMORY_SUMMARIZER_MODEL": ("summarizer_provider", str.upper),
    "CREWFORGE_REASONING_TIMEOUT": ("reasoning_timeout", float),
    "CREWFORGE_TOOL_TIMEOUT": ("tool_timeout", float),
    "CREWFORGE_WORKSPACE": ("workspace_dir", str),
}


@dataclass
class TargetHost:
    """A remote host that ssh-execute and docker-run can reach."""
    host: str
    port: int = 22
    username: str = "root"
    key_path: Optional[str] = None
    password: Optional[str] = None

    @property
    def connection_key(self) -> str:
        return f"{self.host}:{self.port}:{self.username}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TargetHost":
        return cls(
            host=data["host"],
            port=int(data.get("port", 22)),
            username=data.get("username", "root"),
            key_path=data.get("key_path"),
            password=data.get("password"),
        )


@dataclass
class CrewForgeConfig:
    """CrewForge configuration."""
    db_path: str = DEFAULT_DB_PATH
    default_provider: str = DEFAULT_PROVIDER
    default_model: Optional[str] = None
    summarizer_provider: str = DEFAULT_SUMMARIZER_PROVIDER

    # Output budgets (tokens)
    planning_max_tokens: int = 8192
    generation_max_tokens: int = 16384
    summarizer_max_tokens: int = 512
    temperature: float = 0.7

    # Timeouts (seconds)
    reasoning_timeout: float = 120.0
    tool_timeout: float = 60.0

    # Memory limits
    short_term_cap: int = 30
    recent_memory_limit: int = 5
    summary_refresh_interval: int = 5

    workspace_dir: str = field(default_factory=lambda: str(Path.cwd()))
    targets: Dict[str, TargetHost] = field(default_factory=dict)

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        *,
        use_dotenv: bool = True,
    ) -> "CrewForgeConfig":
        """
        Load configuration from multiple sources in precedence order:
        1. Environment variables
        2. Local config file (crewforge_config.json)
        3. Default values
        """
        if use_dotenv:
            load_dotenv()

        config: Dict[str, Any] = {}

        # Load from config file if exists
        config_path = config_path or Path(CONFIG_FILENAME)
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    file_config = json.load(f)
                if not isinstance(file_config, dict):
                    raise ValueError("top-level value must be an object")
                config.update(file_config)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load config file %s: %s", config_path, e)
                config = {}

        # Override with environment variables
        for env_name, (field_name, convert) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                config[field_name] = convert(raw)
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", env_name, raw)

        return cls.from_dict(config)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrewForgeConfig":
        """Build a config from a plain mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and k != "targets"}
        targets = {
            target_id: TargetHost.from_dict(spec)
            for target_id, spec in (data.get("targets") or {}).items()
        }
        return cls(targets=targets, **kwargs)

    @property
    def workspace(self) -> Path:
        return Path(self.workspace_dir).resolve()

    def resolve_db_path(self) -> Path:
        """Database path, relative paths anchored at the workspace."""
        path = Path(self.db_path)
        if not path.is_absolute():
            path = self.workspace / path
        return path
