"""Delivery configuration.

Tunables are loaded from environment variables once at startup and passed
explicitly into the dispatcher and distributor constructors.
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger("lead-delivery-api")

# Webhook retry policy
MAX_WEBHOOK_ATTEMPTS = 3
WEBHOOK_RETRY_DELAYS_SECONDS: tuple[float, ...] = (1.0, 5.0, 25.0)

# Stored response/error text limits
WEBHOOK_RESPONSE_BODY_LIMIT = 1000
CRM_RESPONSE_BODY_LIMIT = 2000
TEST_RESPONSE_BODY_LIMIT = 500
ERROR_BODY_EXCERPT_LIMIT = 200
ERROR_TEXT_LIMIT = 1000


class ConfigurationError(Exception):
    """Raised when a delivery cannot start because configuration is missing."""

    pass


class ClientNotFoundError(ConfigurationError):
    """Raised when a CRM client id does not exist."""

    pass


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{key}={raw!r} is not a number, using {default}")
        return default


@dataclass
class DeliveryConfig:
    """Outbound delivery settings."""

    http_timeout_seconds: float = 15.0
    retry_delays_seconds: tuple[float, ...] = WEBHOOK_RETRY_DELAYS_SECONDS
    sweep_interval_seconds: float = 0.0  # 0 disables the in-process sweep
    shutdown_grace_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "DeliveryConfig":
        """Load delivery config from environment variables."""
        config = cls(
            http_timeout_seconds=_env_float("DELIVERY_HTTP_TIMEOUT_SECONDS", 15.0),
            sweep_interval_seconds=_env_float("WEBHOOK_SWEEP_INTERVAL_SECONDS", 0.0),
            shutdown_grace_seconds=_env_float("DELIVERY_SHUTDOWN_GRACE_SECONDS", 10.0),
        )
        if config.sweep_interval_seconds <= 0:
            logger.warning(
                "WEBHOOK_SWEEP_INTERVAL_SECONDS not set - pending webhooks are only "
                "recovered through POST /webhooks/sweep"
            )
        return config

    def retry_delay(self, attempts: int) -> float:
        """Delay before the next webhook attempt, given the attempts made so far.

        Counts past the end of the table reuse the last delay.
        """
        delays = self.retry_delays_seconds
        index = max(attempts - 1, 0)
        if index < len(delays):
            return delays[index]
        return delays[-1]
