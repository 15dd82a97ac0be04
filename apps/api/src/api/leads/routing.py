"""Routes a stored submission to its delivery channel.

A form with distribution enabled sends its leads to the CRM pool and never
to its webhook. Otherwise an enabled webhook with a URL gets the lead. Forms
with neither just store it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.db.models import Form, Submission
from api.distribution.distributor import CrmDistributor, DistributionResult
from api.webhooks.dispatcher import WebhookDispatcher
from api.webhooks.payload import answers_by_key, build_webhook_payload, submission_meta

logger = logging.getLogger("lead-delivery-api")


class LeadChannel(str, Enum):
    """Where a lead was sent."""

    DISTRIBUTION = "distribution"
    WEBHOOK = "webhook"
    NONE = "none"


@dataclass
class RoutingResult:
    """What happened to a submission after it was stored."""

    channel: LeadChannel
    webhook_delivery_id: UUID | None = None
    distribution: DistributionResult | None = None


class LeadRouter:
    """Hands new submissions to the CRM distributor or the webhook dispatcher."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        webhooks: WebhookDispatcher,
        distributor: CrmDistributor,
    ):
        self._session_factory = session_factory
        self._webhooks = webhooks
        self._distributor = distributor

    async def route_submission(self, submission_id: UUID) -> RoutingResult:
        """Deliver a stored submission through its form's channel.

        Returns:
            RoutingResult. Channel is NONE when the submission is missing or
            the form has no delivery configured.
        """
        async with self._session_factory() as session:
            submission = await session.get(Submission, submission_id)
            if submission is None:
                logger.warning(f"Submission {submission_id} not found, nothing to route")
                return RoutingResult(channel=LeadChannel.NONE)
            form = await session.get(Form, submission.form_id)

        if form.distribution_enabled:
            result = await self._distributor.distribute_submission(
                form.id,
                submission.id,
                answers_by_key(submission),
                submission_meta(form, submission),
            )
            return RoutingResult(channel=LeadChannel.DISTRIBUTION, distribution=result)

        if form.webhook_enabled and form.webhook_url:
            delivery_id = await self._webhooks.enqueue_webhook(
                form.id,
                submission.id,
                form.webhook_url,
                build_webhook_payload(form, submission),
                form.webhook_secret,
            )
            return RoutingResult(channel=LeadChannel.WEBHOOK, webhook_delivery_id=delivery_id)

        logger.debug(f"Form {form.slug} has no delivery configured")
        return RoutingResult(channel=LeadChannel.NONE)
