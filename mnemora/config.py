from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    app_name: str = "Mnemora"
    # Default to a local postgres database if not set in env
    database_url: str = "postgresql+asyncpg://localhost/mnemora"
    database_echo: bool = False

    # Hard cap on Events loaded per propagation / drift scan
    event_scan_limit: int = 10_000

    # Empty string disables the file handler
    log_file: str = "server.log"
    log_level: str = "INFO"

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache
def get_settings():
    return Settings()
