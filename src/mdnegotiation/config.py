"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (MDNEGOTIATION__CACHE__DRIVER=file)
  2. mdnegotiation.yaml     (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. The
resulting Settings object is an immutable snapshot handed to the
composition root; components receive only the section they need.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("mdnegotiation")
_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("mdnegotiation")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")
_DEFAULT_FILE_DIR = str(Path(_DEFAULT_CACHE_DIR) / "markdown")
_DEFAULT_CONTENT_PATH = str(Path(_DEFAULT_DATA_DIR) / "content.json")

CacheDriverName = Literal["auto", "object", "sqlite", "file", "memory"]


def _find_config_file() -> str | None:
    """Return the path of the first mdnegotiation.yaml found, or None."""
    candidates = [
        Path("mdnegotiation.yaml"),
        Path(platformdirs.user_config_dir("mdnegotiation")) / "mdnegotiation.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8080


class NegotiationSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    content_types: list[str] = ["post", "page"]
    # "product" items are governed by this flag rather than content_types
    products_enabled: bool = True
    suffix_endpoint: bool = False
    query_format: bool = True
    token_header: bool = True
    api_enabled: bool = True
    discovery_links: bool = True


class CacheSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    driver: CacheDriverName = "auto"
    ttl_seconds: int = Field(default=3600, ge=0)
    db_path: str = _DEFAULT_DB_PATH
    file_dir: str = _DEFAULT_FILE_DIR
    redis_url: str | None = None
    ignored_meta_prefixes: list[str] = [
        "_edit_lock",
        "_edit_last",
        "_pingme",
        "_encloseme",
        "_mdnegotiation_",
    ]


class RateLimitSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    max_requests: int = Field(default=60, ge=1)
    window_seconds: int = Field(default=60, ge=1)
    # Checked in order; the first header carrying a valid IP wins.
    trusted_proxy_headers: list[str] = ["cf-connecting-ip", "x-forwarded-for", "x-real-ip"]


class ContentSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_path: str = _DEFAULT_CONTENT_PATH


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: MDNEGOTIATION__SERVER__PORT=9090
        env_prefix="MDNEGOTIATION__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        frozen=True,
    )

    server: ServerSettings = ServerSettings()
    negotiation: NegotiationSettings = NegotiationSettings()
    cache: CacheSettings = CacheSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    content: ContentSettings = ContentSettings()
    logging: LoggingSettings = LoggingSettings()

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
