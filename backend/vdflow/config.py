"""
VDFlow — Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Core ──
    app_env: str = "development"
    app_debug: bool = True
    log_level: str = "INFO"

    # ── Massive (minute bars) ──
    massive_api_key: str = ""
    massive_base_url: str = "https://api.massive.com"
    massive_chunk_days: int = 25
    massive_timeout: float = 60.0

    # ── Redis ──
    redis_url: str = "redis://localhost:6379/0"
    vdf_cache_ttl: int = 6 * 3600  # one trading session

    # ── VDF scan windows (calendar days) ──
    vdf_scan_days: int = 90
    vdf_chart_days: int = 365
    vdf_pre_context_days: int = 30

    # ── VDF minimum data ──
    vdf_min_bars: int = 500
    vdf_min_scan_bars: int = 200
    vdf_min_daily: int = 10

    # ── VDF detection ──
    vdf_max_zones: int = 5
    vdf_recent_days: int = 90  # zones ending earlier are history, not a detection
    vdf_market_timezone: str = "UTC"

    # ── Batch scans ──
    vdf_scan_concurrency: int = 4
    vdf_ticker_timeout: float = 120.0

    # ── Display rounding ──
    round_pct_digits: int = 1
    round_ratio_digits: int = 3

    # ── CORS ──
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def massive_configured(self) -> bool:
        return bool(self.massive_api_key)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — created once, reused everywhere."""
    return Settings()
