"""Tests for application configuration."""

from decimal import Decimal

from pipevault.config import Settings


def test_settings_defaults() -> None:
    """Test that settings have expected default values."""
    settings = Settings()
    assert settings.api_port == 8000
    assert settings.debug is False
    assert "postgresql" in settings.database_url


def test_capacity_defaults() -> None:
    """Test the utilization threshold and reconciliation tolerance defaults."""
    settings = Settings()
    assert settings.utilization_warning_threshold == 0.90
    assert settings.reconciliation_tolerance == Decimal("0")


def test_retry_and_outbox_defaults() -> None:
    """Test transaction retry and outbox polling defaults."""
    settings = Settings()
    assert settings.transaction_max_retries == 3
    assert settings.transaction_retry_base_delay > 0
    assert settings.outbox_batch_size == 50
    assert settings.outbox_max_attempts == 3


def test_settings_read_environment(monkeypatch) -> None:
    """Test that environment variables override defaults."""
    monkeypatch.setenv("RECONCILIATION_TOLERANCE", "0.5")
    monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.test/services/T/B/X")
    settings = Settings()
    assert settings.reconciliation_tolerance == Decimal("0.5")
    assert settings.slack_webhook_url == "https://hooks.slack.test/services/T/B/X"
