"""
plugshell configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path.home() / ".plugshell" / "config.json"


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = False
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".plugshell" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class SandboxConfig(BaseModel):
    """Execution budget and resource limits applied to every guest instance."""

    call_timeout_seconds: float = Field(default=5.0, gt=0, le=3600)
    init_timeout_seconds: float = Field(default=5.0, gt=0, le=3600)
    fuel_per_call: int | None = Field(default=None, ge=1)
    max_memory_bytes: int = Field(default=64 * 1024 * 1024, ge=64 * 1024)


class PluginsConfig(BaseModel):
    """Configuration for plugin discovery and guest logging."""

    autoload: list[Path] = Field(default_factory=list)
    directories: list[Path] = Field(default_factory=list)
    guest_log_level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "DEBUG"
    log_history: int = Field(default=200, ge=0, le=100_000)

    @field_validator("autoload", "directories", mode="before")
    @classmethod
    def expand_paths(cls, v: list[str | Path]) -> list[Path]:
        return [Path(p).expanduser() for p in v]


class HostConfig(BaseModel):
    """Main plugshell configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    prompt: str = ">> "

    @classmethod
    def load(cls, config_path: Path | None = None) -> HostConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        if self.logging.file_enabled:
            self.logging.log_directory.mkdir(parents=True, exist_ok=True)


def get_default_config() -> HostConfig:
    """Get the default configuration."""
    return HostConfig()


def load_config(config_path: Path | None = None) -> HostConfig:
    """Load or create configuration."""
    config = HostConfig.load(config_path)
    config.ensure_directories()
    return config
