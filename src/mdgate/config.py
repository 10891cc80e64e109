"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (MDGATE__ORIGIN__BASE_URL=https://example.com)
  2. mdgate.yaml            (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

No config file is required; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from mdgate import __version__

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("mdgate")
DB_FILENAME = "store.db"
DEFAULT_USER_AGENT = f"mdgate/{__version__} (+https://github.com/mdgate/mdgate)"


def _find_config_file() -> str | None:
    """Return the path of the first mdgate.yaml found, or None."""
    candidates = [
        Path("mdgate.yaml"),
        Path(platformdirs.user_config_dir("mdgate")) / "mdgate.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ServerSettings(_Section):
    host: str = "0.0.0.0"
    port: int = 8080


class OriginSettings(_Section):
    # When set, incoming requests are re-targeted at this scheme://host[:port].
    base_url: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 30.0
    max_redirects: int = 10


class CacheSettings(_Section):
    enabled: bool = True
    # Unset means <data_dir>/store.db, filled in by Settings.
    db_path: str | None = None


class ConverterSettings(_Section):
    backend: Literal["local", "workers_ai"] = "local"
    workers_ai_base_url: str = "https://api.cloudflare.com/client/v4"
    workers_ai_account_id: str | None = None
    workers_ai_api_token: str | None = None


class LoggingSettings(_Section):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: MDGATE__SERVER__PORT=9090
        env_prefix="MDGATE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    data_dir: str = _DEFAULT_DATA_DIR
    server: ServerSettings = ServerSettings()
    origin: OriginSettings = OriginSettings()
    cache: CacheSettings = CacheSettings()
    converter: ConverterSettings = ConverterSettings()
    logging: LoggingSettings = LoggingSettings()

    @model_validator(mode="after")
    def _default_db_under_data_dir(self) -> Settings:
        if self.cache.db_path is None:
            db_path = str(Path(self.data_dir) / DB_FILENAME)
            self.cache = self.cache.model_copy(update={"db_path": db_path})
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
