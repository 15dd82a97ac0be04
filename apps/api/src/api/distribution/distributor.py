"""CRM lead distribution.

Sends each lead to exactly one CRM client: the highest-priority client that
is allowed for the form and within all of its quotas. There is a single
attempt per distribution and no retry; the CrmDelivery row records it.

Quotas are checked before the delivery row is written, so two distributions
running at the same moment can both see the last free slot and overshoot a
tight quota by one.
"""

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

import httpx
from shared.schemas import AnswerValue, SubmissionMeta
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.config import CRM_RESPONSE_BODY_LIMIT, DeliveryConfig
from api.db.models import CrmClient, CrmDelivery, utcnow
from api.distribution.eligibility import QuotaEngine, select_client
from api.distribution.mapping import build_request_body, resolve_field_mapping
from api.outbound import JSON_CONTENT_TYPE, send_json, truncate

logger = logging.getLogger("lead-delivery-crm")

Clock = Callable[[], datetime]

NO_ELIGIBLE_CLIENTS_ERROR = (
    "No eligible clients available (all quotas exhausted or no clients configured)"
)


class DistributionOutcome(str, Enum):
    """How a distribution call ended."""

    DELIVERED = "delivered"
    FAILED = "failed"  # A client was chosen but the request failed
    NO_ELIGIBLE_CLIENTS = "no_eligible_clients"


@dataclass
class DistributionResult:
    """Result of distributing one submission."""

    success: bool
    outcome: DistributionOutcome
    client_id: UUID | None = None
    client_name: str | None = None
    delivery_id: UUID | None = None
    error: str | None = None
    response_status: int | None = None


def build_crm_headers(client: CrmClient) -> dict[str, str]:
    """Request headers for a CRM client.

    Custom headers are merged over the JSON content type but cannot replace
    it. A configured API key is sent as a bearer token.
    """
    headers = {"Content-Type": JSON_CONTENT_TYPE}
    for name, value in (client.headers or {}).items():
        if name.lower() == "content-type":
            continue
        headers[name] = str(value)
    if client.api_key:
        headers["Authorization"] = f"Bearer {client.api_key}"
    return headers


class CrmDistributor:
    """Picks a CRM client for a lead and delivers it once."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: DeliveryConfig | None = None,
        clock: Clock = utcnow,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or DeliveryConfig()
        self._clock = clock
        self._transport = transport

    async def distribute_submission(
        self,
        form_id: UUID,
        submission_id: UUID,
        answers: Mapping[str, AnswerValue],
        meta: SubmissionMeta,
    ) -> DistributionResult:
        """Distribute a submission to the best eligible client.

        Not idempotent: every call that finds a client makes a delivery.

        Args:
            form_id: Form the lead came from.
            submission_id: The submission.
            answers: Answer values keyed by question key.
            meta: Submission metadata for ``_meta.*`` mappings.

        Returns:
            DistributionResult. Having no eligible client is a result, not an
            error, and makes no request.
        """
        async with self._session_factory() as session:
            engine = QuotaEngine(session, clock=self._clock)
            eligible = await engine.get_eligible_clients(form_id)

        selected = select_client(eligible)
        if selected is None:
            logger.warning(f"No eligible CRM client for submission {submission_id}")
            return DistributionResult(
                success=False,
                outcome=DistributionOutcome.NO_ELIGIBLE_CLIENTS,
                error=NO_ELIGIBLE_CLIENTS_ERROR,
            )

        client = selected.client
        mapping = resolve_field_mapping(client.field_mapping, answers)
        body = build_request_body(answers, mapping, meta, submission_id, form_id)

        logger.info(
            f"Distributing submission {submission_id} to {client.name} "
            f"(priority {selected.effective_priority}, {len(eligible)} eligible)"
        )
        return await self.distribute_to_client(client, submission_id, form_id, body)

    async def distribute_to_client(
        self,
        client: CrmClient,
        submission_id: UUID,
        form_id: UUID,
        body: dict[str, Any],
    ) -> DistributionResult:
        """Record a delivery for ``client`` and send ``body`` to it once."""
        async with self._session_factory() as session:
            delivery = CrmDelivery(
                client_id=client.id,
                submission_id=submission_id,
                form_id=form_id,
                request_body=body,
                attempts=0,
            )
            session.add(delivery)
            await session.commit()
            delivery_id = delivery.id

        content = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        outcome = await send_json(
            client.http_method,
            client.api_url,
            content,
            build_crm_headers(client),
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
        )

        async with self._session_factory() as session:
            delivery = await session.get(CrmDelivery, delivery_id)
            delivery.attempts = 1
            if outcome.ok:
                delivery.success = True
                delivery.response_status = outcome.status
                delivery.response_body = truncate(outcome.body, CRM_RESPONSE_BODY_LIMIT)
            else:
                delivery.success = False
                delivery.response_status = outcome.status  # None on transport failure
                delivery.last_error = outcome.error
            await session.commit()

        if outcome.ok:
            logger.info(f"Lead {submission_id} delivered to {client.name} (HTTP {outcome.status})")
            return DistributionResult(
                success=True,
                outcome=DistributionOutcome.DELIVERED,
                client_id=client.id,
                client_name=client.name,
                delivery_id=delivery_id,
                response_status=outcome.status,
            )

        logger.error(f"Lead {submission_id} delivery to {client.name} failed: {outcome.error}")
        return DistributionResult(
            success=False,
            outcome=DistributionOutcome.FAILED,
            client_id=client.id,
            client_name=client.name,
            delivery_id=delivery_id,
            error=outcome.error,
            response_status=outcome.status,
        )
