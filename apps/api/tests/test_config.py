"""Tests for delivery configuration."""

from api.config import (
    WEBHOOK_RETRY_DELAYS_SECONDS,
    ClientNotFoundError,
    ConfigurationError,
    DeliveryConfig,
)

ENV_KEYS = (
    "DELIVERY_HTTP_TIMEOUT_SECONDS",
    "WEBHOOK_SWEEP_INTERVAL_SECONDS",
    "DELIVERY_SHUTDOWN_GRACE_SECONDS",
)


class TestDeliveryConfigFromEnv:
    """Tests for DeliveryConfig.from_env."""

    def test_defaults(self, monkeypatch):
        """Unset variables fall back to defaults."""
        for key in ENV_KEYS:
            monkeypatch.delenv(key, raising=False)

        config = DeliveryConfig.from_env()

        assert config.http_timeout_seconds == 15.0
        assert config.sweep_interval_seconds == 0.0
        assert config.shutdown_grace_seconds == 10.0
        assert config.retry_delays_seconds == WEBHOOK_RETRY_DELAYS_SECONDS

    def test_reads_environment(self, monkeypatch):
        """Set variables are parsed as seconds."""
        monkeypatch.setenv("DELIVERY_HTTP_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("WEBHOOK_SWEEP_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("DELIVERY_SHUTDOWN_GRACE_SECONDS", "3")

        config = DeliveryConfig.from_env()

        assert config.http_timeout_seconds == 2.5
        assert config.sweep_interval_seconds == 60.0
        assert config.shutdown_grace_seconds == 3.0

    def test_invalid_number_uses_default(self, monkeypatch):
        """A value that is not a number is ignored."""
        monkeypatch.setenv("DELIVERY_HTTP_TIMEOUT_SECONDS", "soon")
        assert DeliveryConfig.from_env().http_timeout_seconds == 15.0


class TestRetryDelay:
    """Tests for the webhook retry schedule."""

    def test_default_schedule(self):
        """1s, 5s, then 25s."""
        config = DeliveryConfig()
        assert [config.retry_delay(n) for n in (1, 2, 3)] == [1, 5, 25]

    def test_past_end_of_table(self):
        """Attempt counts past the table reuse the last delay."""
        assert DeliveryConfig().retry_delay(7) == 25


class TestErrors:
    """Tests for configuration errors."""

    def test_client_not_found_is_configuration_error(self):
        assert issubclass(ClientNotFoundError, ConfigurationError)
