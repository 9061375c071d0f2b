"""Configuration management using pydantic-settings."""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # CoinGecko configuration
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: Optional[str] = None

    # Price cache settings
    price_cache_ttl_seconds: float = 180.0
    price_max_attempts: int = 3
    price_backoff_base_seconds: float = 1.0
    price_request_timeout_seconds: float = 15.0

    # Background refresh
    # Keys are "asset/fiat"; a bare asset uses default_fiat
    price_hot_keys: List[str] = [
        "solana/usd",
        "usd-coin/usd",
        "tether/usd",
        "euro-coin/usd",
    ]
    price_refresh_enabled: bool = True
    price_refresh_workers: int = 4

    default_fiat: str = "usd"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
