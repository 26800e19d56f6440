"""Application configuration using pydantic-settings."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "postgresql://localhost:5432/pipevault"

    # Redis (for Celery)
    redis_url: str = "redis://localhost:6379/0"

    # Slack (outbox relay)
    slack_webhook_url: str = ""
    slack_timeout: float = 10.0  # seconds

    # Capacity and reconciliation
    utilization_warning_threshold: float = 0.90
    reconciliation_tolerance: Decimal = Decimal("0")

    # Transaction retry on contention
    transaction_max_retries: int = 3
    transaction_retry_base_delay: float = 0.05  # seconds

    # Notification outbox
    outbox_batch_size: int = 50
    outbox_max_attempts: int = 3

    # Application
    debug: bool = False
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000


settings = Settings()
