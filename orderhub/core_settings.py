from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "orderhub"
    POSTGRES_USER: str = "orderhub"
    POSTGRES_PASSWORD: str = "orderhub"
    DATABASE_URL: Optional[str] = None

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    DELHIVERY_BASE_URL: str = "https://track.delhivery.com"
    COURIER_TIMEOUT_SECONDS: float = 30.0
    COURIER_MAX_RETRIES: int = 3
    COURIER_RETRY_BACKOFF_SECONDS: float = 1.0

    CATALOG_APP_URL: str = "http://localhost:3000"
    CATALOG_TIMEOUT_SECONDS: float = 10.0
    ORDER_NAMESPACE: str = "scan2ship"

    DEFAULT_REFERENCE_PREFIX: str = "REF"
    CONFIG_CACHE_TTL_SECONDS: int = 300
    CONFIG_CACHE_MAXSIZE: int = 1024

    WEBHOOK_USER_AGENT: str = "Scan2Ship-Webhook/1.0"

    RUN_MIGRATIONS: bool = False
    LOG_LEVEL: str = "INFO"
    SERVICE_VERSION: str = "1.0.0"

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
