from typing import List, Optional

from databases import Database
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    FASTAPI_HOST: Optional[str] = "0.0.0.0"
    FASTAPI_PORT: Optional[int] = 8000
    FASTAPI_WORKERS: Optional[int] = 1
    LOG_LEVEL: Optional[str] = "DEBUG"
    CORS_ORIGINS: List[str] = ["*"]
    DATABASE_TYPE: Optional[str] = "sqlite"
    DATABASE_URL: Optional[str] = "username:password@hostname:port"
    DATABASE_PATH: Optional[str] = "data/favorite.db"
    HTTP_CLIENT_TIMEOUT_TOTAL: Optional[int] = 30
    HTTP_CLIENT_USER_AGENT: Optional[str] = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )
    IMDB_URL: Optional[str] = "https://www.imdb.com"
    CRAWLER_ENABLED: Optional[bool] = True
    CRAWLER_PACING_INTERVAL: Optional[int] = 600  # 10 minutes
    CRAWLER_RETRY_DELAY: Optional[int] = 600  # 10 minutes
    CRAWLER_BACKOFF_INTERVAL: Optional[int] = 43200  # 12 hours
    CRAWLER_POSITION_CEILING: Optional[int] = 4444
    CRAWLER_FILM_SEED_BACKOFF: Optional[int] = 30
    CRAWLER_GAME_SEED_BACKOFF: Optional[int] = 0
    SEARCH_MAX_LIMIT: Optional[int] = 50
    SEARCH_MAX_TERMS: Optional[int] = 10

    @field_validator("IMDB_URL")
    def remove_trailing_slash(cls, v):
        if v and v.endswith("/"):
            return v[:-1]
        return v

    @field_validator("FASTAPI_WORKERS")
    def at_least_one_worker(cls, v):
        if v is None or v < 1:
            return 1
        return v

    @field_validator(
        "CRAWLER_PACING_INTERVAL",
        "CRAWLER_RETRY_DELAY",
        "CRAWLER_BACKOFF_INTERVAL",
        "CRAWLER_FILM_SEED_BACKOFF",
        "CRAWLER_GAME_SEED_BACKOFF",
    )
    def non_negative(cls, v):
        if v is None or v < 0:
            return 0
        return v

    @field_validator("DATABASE_TYPE")
    def check_database_type(cls, v):
        if v not in ["sqlite", "postgresql"]:
            raise ValueError("Invalid DATABASE_TYPE")
        return v


settings = AppSettings()


def build_database_url(database_type: str, location: str):
    return f"{'sqlite' if database_type == 'sqlite' else 'postgresql+asyncpg'}://{'/' if database_type == 'sqlite' else ''}{location}"


database = Database(
    build_database_url(
        settings.DATABASE_TYPE,
        settings.DATABASE_PATH
        if settings.DATABASE_TYPE == "sqlite"
        else settings.DATABASE_URL,
    )
)
