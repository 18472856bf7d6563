"""Configuration settings for the helperjobs HTTP service."""

from datetime import timedelta
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from helperjobs.config import MarketConfig
from helperjobs.types import ONE_TOKEN


class Settings(BaseSettings):
    """Service settings loaded from ``HELPERJOBS_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HELPERJOBS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
    )

    # Marketplace
    administrator_id: str = "admin"
    engine_account: str = "helperjobs"
    initial_supply_tokens: int = 10_000_000
    registration_grant_tokens: int = 100
    inactivity_days: int = 90

    # Persistence: load on startup, save after every mutating request
    state_file: str | None = None

    # App
    debug: bool = False
    rate_limit_enabled: bool = True

    def market_config(self) -> MarketConfig:
        """Build the engine configuration."""
        return MarketConfig(
            administrator_id=self.administrator_id,
            engine_account=self.engine_account,
            initial_supply=self.initial_supply_tokens * ONE_TOKEN,
            registration_grant=self.registration_grant_tokens * ONE_TOKEN,
            inactivity_period=timedelta(days=self.inactivity_days),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
