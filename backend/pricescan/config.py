"""Application configuration via Pydantic Settings."""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database (job and result store)
    DATABASE_URL: str = "sqlite+aiosqlite:///./pricescan.db"

    @model_validator(mode="after")
    def fix_database_url(self) -> "Settings":
        """Hosted Postgres hands out postgresql:// but asyncpg needs postgresql+asyncpg://"""
        url = self.DATABASE_URL
        if url.startswith("postgresql://"):
            self.DATABASE_URL = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgres://"):
            self.DATABASE_URL = url.replace("postgres://", "postgresql+asyncpg://", 1)
        return self

    # App
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Job defaults (overridden per job)
    DEFAULT_BATCH_SIZE: int = 10
    DEFAULT_BATCH_DELAY_MS: int = 5000
    DEFAULT_MAX_RETRIES: int = 3
    DEFAULT_CONFIDENCE_THRESHOLD: float = 0.5

    # Adapter calls
    POLITENESS_DELAY_MS: int = 1000
    ADAPTER_TIMEOUT_SECONDS: float = 30.0
    RETRY_BACKOFF_SECONDS: float = 1.0
    DEFAULT_SOURCE_RPM: int = 10

    # Matching
    MIN_PLAUSIBLE_MARKUP: float = 1.0
    MAX_PLAUSIBLE_MARKUP: float = 3.0

    # Browser / HTTP
    BROWSER_HEADLESS: bool = True
    PROXY_URL: str = ""
    HTTP_USER_AGENT: str = ""  # empty means rotate

    # Currency
    EXCHANGE_RATE_API_URL: str = "https://api.exchangerate-api.com/v4/latest/EUR"

    # Scheduler
    NIGHTLY_SCAN_HOUR: int = 2
    NIGHTLY_SCAN_MINUTE: int = 0
    NIGHTLY_SCAN_PRODUCT_LIMIT: int = 100
    HEALTH_CHECK_INTERVAL_MINUTES: int = 15
    EXCHANGE_RATE_REFRESH_MINUTES: int = 60

    @property
    def politeness_delay_seconds(self) -> float:
        return self.POLITENESS_DELAY_MS / 1000.0


settings = Settings()
