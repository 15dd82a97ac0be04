"""Webhook delivery with bounded retries.

Each new lead for a webhook-enabled form gets one WebhookDelivery row. The
first attempt runs in the background right after the row is created; failed
attempts are retried after 1s, 5s and 25s until three attempts have been
made.

The in-process retry timer is an optimisation. The row's ``next_attempt_at``
is what makes retries durable: ``process_pending_webhooks`` re-triggers every
overdue row, so retries lost to a restart are picked up by the next sweep.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import httpx
from shared.signing import SIGNATURE_HEADER, sign_payload
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.config import (
    MAX_WEBHOOK_ATTEMPTS,
    TEST_RESPONSE_BODY_LIMIT,
    WEBHOOK_RESPONSE_BODY_LIMIT,
    ConfigurationError,
    DeliveryConfig,
)
from api.db.models import Form, WebhookDelivery, utcnow
from api.outbound import JSON_CONTENT_TYPE, HttpOutcome, send_json, truncate
from api.tasks import BackgroundTaskRunner
from api.webhooks.payload import sample_test_payload

logger = logging.getLogger("lead-delivery-webhook")

Clock = Callable[[], datetime]


def serialize_body(payload: dict[str, Any]) -> bytes:
    """Compact JSON encoding. The signature covers exactly these bytes."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass
class TestWebhookResult:
    """Outcome of a one-off test delivery."""

    __test__ = False  # Not a pytest test class

    success: bool
    status: int | None = None
    response: str | None = None
    error: str | None = None


class WebhookDispatcher:
    """Creates webhook delivery records and drives their retry state machine."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        runner: BackgroundTaskRunner,
        config: DeliveryConfig | None = None,
        clock: Clock = utcnow,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session_factory = session_factory
        self._runner = runner
        self._config = config or DeliveryConfig()
        self._clock = clock
        self._transport = transport

    # =========================================================================
    # Enqueue
    # =========================================================================

    async def enqueue_webhook(
        self,
        form_id: UUID,
        submission_id: UUID,
        url: str,
        payload: dict[str, Any],
        secret: str | None = None,
    ) -> UUID:
        """Persist a delivery record and start the first attempt in the background.

        Args:
            form_id: Form the lead came from.
            submission_id: The new submission.
            url: Target webhook URL.
            payload: Wire payload (see ``build_webhook_payload``).
            secret: Optional signing secret.

        Returns:
            The delivery id. The first attempt has not necessarily run yet.

        Raises:
            ConfigurationError: If no URL is given.
        """
        if not url:
            raise ConfigurationError("Webhook URL is required")

        async with self._session_factory() as session:
            delivery = WebhookDelivery(
                form_id=form_id,
                submission_id=submission_id,
                url=url,
                request_body_json=payload,
                attempts=0,
                next_attempt_at=self._clock(),
            )
            session.add(delivery)
            await session.commit()
            delivery_id = delivery.id

        logger.info(f"Queued webhook delivery {delivery_id} for submission {submission_id}")
        self._trigger(delivery_id, secret)
        return delivery_id

    def _trigger(self, delivery_id: UUID, secret: str | None) -> None:
        self._runner.submit(
            self.process_delivery(delivery_id, secret),
            key=str(delivery_id),
            name=f"webhook:{delivery_id}",
        )

    # =========================================================================
    # Attempt
    # =========================================================================

    async def process_delivery(
        self, delivery_id: UUID, secret: str | None = None
    ) -> WebhookDelivery | None:
        """Make one delivery attempt and record the outcome.

        Does nothing for unknown, already successful or exhausted deliveries.
        On failure with attempts left, a retry is scheduled on the runner.

        Returns:
            The updated delivery row, or None if it does not exist.
        """
        async with self._session_factory() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
            if delivery is None:
                logger.warning(f"Webhook delivery {delivery_id} not found")
                return None
            if delivery.success or delivery.attempts >= MAX_WEBHOOK_ATTEMPTS:
                return delivery
            url = delivery.url
            body = serialize_body(delivery.request_body_json)

        outcome = await self._post(url, body, secret)

        async with self._session_factory() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
            if delivery is None:
                return None

            attempts = delivery.attempts + 1
            delivery.attempts = attempts
            retry_delay: float | None = None

            if outcome.ok:
                delivery.success = True
                delivery.response_status = outcome.status
                delivery.response_body_text = truncate(outcome.body, WEBHOOK_RESPONSE_BODY_LIMIT)
                delivery.last_error = None
                delivery.next_attempt_at = None
                logger.info(
                    f"Webhook {delivery_id} delivered to {url} "
                    f"(HTTP {outcome.status}, attempt {attempts})"
                )
            else:
                delivery.last_error = outcome.error
                delivery.response_status = None
                delivery.response_body_text = None
                if attempts < MAX_WEBHOOK_ATTEMPTS:
                    retry_delay = self._config.retry_delay(attempts)
                    delivery.next_attempt_at = self._clock() + timedelta(seconds=retry_delay)
                    logger.warning(
                        f"Webhook {delivery_id} attempt {attempts} failed: {outcome.error} "
                        f"- retrying in {retry_delay:g}s"
                    )
                else:
                    delivery.next_attempt_at = None
                    logger.error(
                        f"Webhook {delivery_id} failed after {attempts} attempts: {outcome.error}"
                    )

            await session.commit()

        if retry_delay is not None:
            self._runner.schedule(
                retry_delay,
                lambda: self.process_delivery(delivery_id, secret),
                key=str(delivery_id),
                name=f"webhook:{delivery_id}",
            )
        return delivery

    async def _post(self, url: str, body: bytes, secret: str | None) -> HttpOutcome:
        headers = {"Content-Type": JSON_CONTENT_TYPE}
        if secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, secret)
        return await send_json(
            "POST",
            url,
            body,
            headers,
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
        )

    # =========================================================================
    # Recovery sweep
    # =========================================================================

    async def process_pending_webhooks(self) -> int:
        """Re-trigger every overdue, unfinished delivery.

        Uses each form's current webhook secret. Deliveries that already have
        a running attempt are skipped by the runner.

        Returns:
            Number of deliveries triggered.
        """
        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                select(WebhookDelivery.id, Form.webhook_secret)
                .join(Form, Form.id == WebhookDelivery.form_id)
                .where(
                    WebhookDelivery.success.is_(False),
                    WebhookDelivery.attempts < MAX_WEBHOOK_ATTEMPTS,
                    WebhookDelivery.next_attempt_at.is_not(None),
                    WebhookDelivery.next_attempt_at <= now,
                )
                .order_by(WebhookDelivery.next_attempt_at)
            )
            pending = result.all()

        for delivery_id, secret in pending:
            self._trigger(delivery_id, secret)

        if pending:
            logger.info(f"Recovery sweep triggered {len(pending)} webhook delivery(ies)")
        return len(pending)

    # =========================================================================
    # Test send
    # =========================================================================

    async def send_test_webhook(
        self,
        url: str,
        secret: str | None = None,
        sample_payload: dict[str, Any] | None = None,
    ) -> TestWebhookResult:
        """Send one sample payload right away. Nothing is persisted or retried.

        Raises:
            ConfigurationError: If no URL is given.
        """
        if not url:
            raise ConfigurationError("Webhook URL is required")

        payload = sample_payload if sample_payload is not None else sample_test_payload()
        outcome = await self._post(url, serialize_body(payload), secret)

        if outcome.ok:
            return TestWebhookResult(
                success=True,
                status=outcome.status,
                response=truncate(outcome.body, TEST_RESPONSE_BODY_LIMIT),
            )
        return TestWebhookResult(success=False, status=outcome.status, error=outcome.error)
