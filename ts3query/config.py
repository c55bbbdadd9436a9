"""Configuration management using pydantic-settings with YAML support."""

from pathlib import Path
from typing import Self

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuerySettings(BaseModel):
    """ServerQuery connection settings."""

    host: str = "127.0.0.1"
    port: int = Field(default=10011, ge=1, le=65535)
    timeout: float = Field(default=10.0, gt=0)
    line_limit: int = Field(default=2**20, gt=0)
    # Seconds between keepalive commands, 0 disables it
    keepalive_interval: float = Field(default=0.0, ge=0)


class LoggingSettings(BaseModel):
    """Logging setup for the command-line tool."""

    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from YAML config file."""

    model_config = SettingsConfigDict(
        env_prefix="TS3QUERY_",
        env_nested_delimiter="__",
    )

    query: QuerySettings = QuerySettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def from_yaml(cls, path: Path) -> Self:
        """Load settings from a YAML file."""
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        return cls()

    def to_yaml(self, path: Path) -> None:
        """Save settings to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)


# Default config path
CONFIG_PATH = Path.home() / ".config" / "ts3query" / "ts3query.yaml"


def get_settings(config_path: Path = CONFIG_PATH) -> Settings:
    """Load settings from config file, creating default if not exists."""
    settings = Settings.from_yaml(config_path)
    if not config_path.exists():
        settings.to_yaml(config_path)
    return settings
