from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "records"
    POSTGRES_USER: str = "records"
    POSTGRES_PASSWORD: str = "records"
    # Takes precedence over the POSTGRES_* values, e.g. sqlite:///./records.db
    DATABASE_URL: Optional[str] = None
    # Unset means the in-process cache only
    REDIS_URL: Optional[str] = None

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    MUSICBRAINZ_URL: str = "https://musicbrainz.org/ws/2"
    MUSICBRAINZ_USER_AGENT: str = "RecordStore/1.0.0 ( ops@record-store.local )"
    MUSICBRAINZ_TIMEOUT: float = 5.0

    CACHE_TTL_RECORDS_LIST: int = 300
    CACHE_TTL_RECORDS_DETAIL: int = 600
    CACHE_TTL_ORDERS_LIST: int = 300
    CACHE_TTL_ORDERS_DETAIL: int = 300

    STOCK_RETRY_ATTEMPTS: int = 3

    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    SERVICE_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
