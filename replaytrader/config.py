"""
Application configuration module.
Loads settings from environment variables.
"""

from typing import Optional

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Tabular store (in-memory SQLite by default)
    database_url: str = "sqlite+aiosqlite://"
    insert_batch_size: int = 5000
    
    # Persistence (None keeps sessions in memory only)
    storage_dir: Optional[str] = None
    storage_quota_bytes: Optional[int] = None
    
    # API
    api_prefix: str = "/api"
    debug: bool = True
    
    # Replay defaults
    base_timeframe: int = 60  # seconds per stored bar
    default_speed_ms: int = 300  # ms per autoplay step
    
    class Config:
        env_file = ".env"
        env_prefix = "REPLAYTRADER_"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
