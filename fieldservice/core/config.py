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
    DATABASE_URL: str = "sqlite:///./fieldservice.db"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Secret for /internal/scheduled/* endpoints

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Scheduler trigger
    SCHEDULER_POLL_INTERVAL_SECONDS: int = 60
    SCHEDULER_BATCH_SIZE: int = 100
    SCHEDULER_MAX_RETRIES: int = 3
    SCHEDULER_BACKOFF_SECONDS: float = 0.5
    MATERIALIZATION_TIMEOUT_SECONDS: float = 30.0

    # Synchronous cancellation retry budget for transient storage errors
    CANCEL_RETRY_ATTEMPTS: int = 3

    # Background jobs (notifications, refunds)
    JOB_BATCH_SIZE: int = 10
    NOTIFICATION_WEBHOOK_URL: str = ""  # Empty = dry run (log only)
    PAYMENTS_WEBHOOK_URL: str = ""  # Empty = dry run (log only)
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")


settings = Settings()
