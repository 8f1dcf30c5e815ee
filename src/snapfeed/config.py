"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (SNAPFEED__PRICE__API_KEY=...)
  2. snapfeed.yaml          (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional. Upstream API keys default to ``None``; a missing
key sends the feed down the fallback path instead of failing at startup.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import platformdirs
from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("snapfeed")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "cache.db")


def _find_config_file() -> str | None:
    """Return the path of the first snapfeed.yaml found, or None."""
    candidates = [
        Path("snapfeed.yaml"),
        Path(platformdirs.user_config_dir("snapfeed")) / "snapfeed.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class CacheSettings(BaseModel):
    db_path: str = _DEFAULT_DB_PATH
    cleanup_interval_hours: int = 6


class FetcherSettings(BaseModel):
    timeout_seconds: float = 10.0
    user_agent: str = "snapfeed/1.0"


class FeedSettings(BaseModel):
    """Common knobs for a single feed producer.

    ``freshness_seconds`` is how long a cached envelope is served without
    calling upstream. ``outer_ttl_seconds`` is the store-level expiry and
    bounds how long the envelope stays available for stale fallback.
    """

    api_url: str
    api_key: str | None = None
    freshness_seconds: int
    outer_ttl_seconds: int
    client_max_age: int

    @model_validator(mode="after")
    def _freshness_within_outer_ttl(self) -> FeedSettings:
        if self.freshness_seconds <= 0:
            raise ValueError("freshness_seconds must be positive")
        if self.freshness_seconds > self.outer_ttl_seconds:
            raise ValueError("freshness_seconds must not exceed outer_ttl_seconds")
        return self


class PriceFeedSettings(FeedSettings):
    api_url: str = "https://api.coingecko.com/api/v3/coins/bitcoin"
    freshness_seconds: int = 60
    outer_ttl_seconds: int = 120
    client_max_age: int = 60


class WeatherFeedSettings(FeedSettings):
    api_url: str = "https://opendata.aemet.es/opendata/api/mapasygraficos/analisis"
    freshness_seconds: int = 3 * 3600
    outer_ttl_seconds: int = 6 * 3600
    client_max_age: int = 1800
    timezone: str = "Europe/Madrid"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"unknown timezone: {value}") from exc
        return value


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: SNAPFEED__SERVER__PORT=9090
        env_prefix="SNAPFEED__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    cache: CacheSettings = CacheSettings()
    fetcher: FetcherSettings = FetcherSettings()
    price: PriceFeedSettings = PriceFeedSettings()
    weather: WeatherFeedSettings = WeatherFeedSettings()
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
