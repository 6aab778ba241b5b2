"""
Configuration models for NWHA.

Supports configuration via YAML file, environment variables, or programmatic setup.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Default argument vectors for the engines NWHA knows about. The prompt is
# always appended as the final argument.
KNOWN_ENGINES: dict[str, list[str]] = {
    "claude": ["claude", "--dangerously-skip-permissions", "-p"],
    "codex": ["codex", "-p"],
}


class EngineConfig(BaseModel):
    """A single external AI command."""

    name: str = Field(description="Engine identifier reported with each response")
    command: list[str] | None = Field(
        default=None,
        description="Argument vector (prompt appended last); defaults to the known engine's",
    )

    def get_command(self) -> list[str]:
        """Resolve the argument vector for this engine."""
        if self.command:
            return list(self.command)
        if self.name in KNOWN_ENGINES:
            return list(KNOWN_ENGINES[self.name])
        return [self.name]


class EnginesConfig(BaseModel):
    """Primary/secondary engine configuration."""

    primary: EngineConfig = Field(default_factory=lambda: EngineConfig(name="claude"))
    secondary: EngineConfig = Field(default_factory=lambda: EngineConfig(name="codex"))
    fallback_enabled: bool = Field(
        default=True,
        description="Try the secondary engine when the primary fails"
    )
    command_timeout_ms: int = Field(
        default=120_000,
        ge=1,
        description="Wall-clock limit for a single engine call"
    )
    max_output_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1,
        description="Maximum captured output of a single engine call"
    )
    attempts: int = Field(
        default=1,
        ge=1,
        le=5,
        description="Attempts per engine before it counts as failed"
    )

    @property
    def command_timeout(self) -> float:
        """Timeout in seconds."""
        return self.command_timeout_ms / 1000


class SessionConfig(BaseModel):
    """Agent session configuration."""

    max_iterations_default: int = Field(
        default=20,
        ge=1,
        description="Iteration ceiling given to new sessions"
    )
    projects_root_directory: str = Field(
        default="./projects",
        description="Parent directory of project working directories"
    )
    paused_idle_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Stop sessions left paused this many seconds (None = never)"
    )

    def get_project_dir(self, slug: str) -> Path:
        """Get a project's working directory, creating it if necessary."""
        project_dir = Path(self.projects_root_directory) / slug
        project_dir.mkdir(parents=True, exist_ok=True)
        return project_dir.resolve()


class TerminalConfig(BaseModel):
    """Interactive terminal configuration."""

    shell: list[str] = Field(
        default_factory=lambda: [os.environ.get("SHELL") or "bash"],
        description="Program spawned in each session terminal"
    )
    term: str = Field(default="xterm-256color", description="TERM for spawned terminals")
    cols: int = Field(default=80, ge=1, le=1000)
    rows: int = Field(default=24, ge=1, le=1000)
    destroy_grace_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Wait after a polite termination before killing"
    )


class StorageConfig(BaseModel):
    """Persistence configuration."""

    data_dir: str = Field(default="./data", description="Directory for the database file")

    def get_data_dir(self) -> Path:
        """Get the data directory, creating it if necessary."""
        data_dir = Path(self.data_dir)
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level"
    )
    file: str | None = Field(
        default=None,
        description="Log file path (None = console only)"
    )
    json_format: bool = Field(
        default=False,
        description="Use JSON format for logs"
    )


class NwhaConfig(BaseSettings):
    """
    Main NWHA configuration.

    Configuration can be loaded from:
    1. YAML file (nwha.yaml or config.yaml)
    2. Environment variables (NWHA_* prefix, ``__`` for nesting,
       e.g. ``NWHA_ENGINES__FALLBACK_ENABLED=false``)
    3. Programmatic setup
    """

    model_config = SettingsConfigDict(
        env_prefix="NWHA_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    sessions: SessionConfig = Field(default_factory=SessionConfig)
    engines: EnginesConfig = Field(default_factory=EnginesConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Let environment variables override file values passed as kwargs."""
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "NwhaConfig":
        """
        Load configuration from file and environment.

        Priority (highest to lowest):
        1. Environment variables
        2. Specified config file
        3. Default config files (nwha.yaml, config.yaml)
        4. Default values
        """
        config_data: dict = {}

        if config_path:
            config_file = Path(config_path)
            if config_file.exists():
                config_data = cls._load_yaml(config_file)
        else:
            for filename in ["nwha.yaml", "config.yaml", "nwha.yml", "config.yml"]:
                config_file = Path(filename)
                if config_file.exists():
                    config_data = cls._load_yaml(config_file)
                    break

        return cls(**config_data)

    @staticmethod
    def _load_yaml(path: Path) -> dict:
        """Load YAML configuration file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if data else {}

    def save(self, path: str | Path) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_none=True),
                f,
                default_flow_style=False,
                sort_keys=False,
            )
