"""Application settings loaded from environment variables via pydantic-settings."""

from enum import StrEnum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheBackend(StrEnum):
    memory = "memory"
    redis = "redis"


class LogFormat(StrEnum):
    json = "json"
    console = "console"


class Settings(BaseSettings):
    """Central configuration: all values sourced from env vars or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── InfluxDB ────────────────────────────────────────────────────────────
    influxdb_url: str = "http://localhost:8181"
    influxdb_token: str = ""
    influxdb_database: str = "soil"
    influxdb_measurement: str = "sensor_data"
    query_timeout_seconds: float = 10.0

    # ── Daily snapshot ──────────────────────────────────────────────────────
    snapshot_hour: int = 1
    snapshot_timezone: str = "Asia/Bangkok"

    # ── Score cache ─────────────────────────────────────────────────────────
    cache_backend: CacheBackend = CacheBackend.memory
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 60 * 60 * 24
    cache_clear_enabled: bool = True
    cache_clear_time: str = "01:30"
    cache_clear_timezone: str = "Asia/Bangkok"

    # ── Computation windows ─────────────────────────────────────────────────
    crop_safety_lookback_days: int = 28
    cultivation_max_weeks: int = 8
    cultivation_week_sample_limit: int = 50

    # ── Observability ───────────────────────────────────────────────────────
    log_level: str = "info"
    log_format: LogFormat = LogFormat.json


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance (cached after first call)."""
    return Settings()
