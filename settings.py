from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod"),
        extra="ignore",
    )

    app_name: str = "DevHire"

    # Falls back to DB_HOST/DB_* variables, then a local SQLite file (see database.py)
    database_url: Optional[str] = None

    # Token signing for the local identity provider
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 60 * 24

    min_password_length: int = 6

    cors_origins: list[str] = [
        "http://localhost",
        "http://localhost:5173",
        "http://127.0.0.1",
        "http://127.0.0.1:5173",
    ]

    log_format: str = "json"
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
