"""
Trading Village — Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Core ──
    app_env: str = "development"

    # ── Market Data Cache ──
    window_capacity: int = 200          # bars retained per symbol (FIFO)
    min_analysis_points: int = 30       # analyze_symbol gate

    # ── Insight Store ──
    insight_store_capacity: int = 5000
    insight_ttl_seconds: int = 86400    # 0 disables age-based eviction

    # ── Correlation ──
    correlation_primaries: str = ""     # comma-separated; empty = every cached symbol

    @property
    def correlation_primary_list(self) -> list[str]:
        """Parse comma-separated primary symbols into a list."""
        return [s.strip() for s in self.correlation_primaries.split(",") if s.strip()]

    # ── Redis ──
    redis_url: str = "redis://localhost:6379/0"
    redis_publish_enabled: bool = False
    insight_channel_prefix: str = "insights"

    # ── Scheduling ──
    analysis_interval_seconds: int = 60
    insight_sweep_interval_seconds: int = 900

    # ── Demo Data ──
    demo_mode: bool = False
    demo_seed: int = 42


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — created once, reused everywhere."""
    return Settings()
