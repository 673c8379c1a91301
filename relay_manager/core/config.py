"""Application configuration loading utilities."""

from __future__ import annotations

import os
import pathlib
from functools import lru_cache

import yaml
from pydantic import BaseModel, Field, field_validator

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "config" / "relay.yaml"

OFFICIAL_BASE_URL = "https://api.anthropic.com"


class AppConfig(BaseModel):
    database_path: pathlib.Path = Field(default=BASE_DIR.parent / "data" / "relay_stations.db")
    settings_path: pathlib.Path = Field(default=pathlib.Path("~/.claude/settings.json"))
    presets_path: pathlib.Path = Field(default=pathlib.Path("~/.claude/providers.json"))
    official_base_url: str = OFFICIAL_BASE_URL
    default_user_id: str = "1"
    request_timeout: float = 30.0
    connection_test_timeout: float = 10.0
    default_token_group: str = "default"

    @field_validator("database_path", "settings_path", "presets_path", mode="after")
    @classmethod
    def _expand_user(cls, value: pathlib.Path) -> pathlib.Path:
        value = value.expanduser()
        if not value.is_absolute():
            value = BASE_DIR.parent / value
        return value

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"


@lru_cache(maxsize=1)
def load_config(path: pathlib.Path | None = None) -> AppConfig:
    """Load relay manager configuration from YAML.

    ``RELAY_CONFIG`` overrides the default location. A missing file yields the
    built-in defaults.
    """
    config_path = path or pathlib.Path(os.getenv("RELAY_CONFIG", str(DEFAULT_CONFIG_PATH)))
    if not config_path.exists():
        return AppConfig()
    raw = yaml.safe_load(config_path.read_text()) or {}
    return AppConfig(**raw)
