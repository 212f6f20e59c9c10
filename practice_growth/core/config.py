"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./practice_growth.db"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal scheduled endpoints (external driver / cron)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Logging
    LOG_LEVEL: str = "INFO"

    # Referrals
    REFERRAL_CODE_LENGTH: int = 8
    REFERRAL_CODE_MAX_ATTEMPTS: int = 5

    # Review requests
    REVIEW_REQUEST_EXPIRY_DAYS: int = 7
    REVIEW_REQUEST_COOLDOWN_DAYS: int = 30
    REVIEW_APPOINTMENT_DELAY_HOURS: int = 2  # wait after the visit ends
    REVIEW_APPOINTMENT_LOOKBACK_HOURS: int = 24

    # Leads
    LEAD_UNRESPONSIVE_DAYS: int = 30
    LEAD_UNRESPONSIVE_MIN_ATTEMPTS: int = 3

    # Worker (external driver loop)
    WORKER_POLL_INTERVAL: int = 60  # seconds
    WORKER_BATCH_SIZE: int = 100

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
