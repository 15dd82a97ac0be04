"""Quota accounting and CRM client eligibility.

A client can receive a lead when it is enabled, allowed for the form, and
every one of its quota rules still has headroom. Quota usage is never stored;
it is counted from successful CrmDelivery rows inside each rule's rolling
window, so deliveries age out of the window on their own.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.config import ClientNotFoundError
from api.db.models import CrmClient, CrmDelivery, CrmQuota, FormDistributionClient, utcnow

logger = logging.getLogger("lead-delivery-crm")

Clock = Callable[[], datetime]


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class QuotaStatus:
    """Snapshot of one quota rule."""

    quota_id: UUID
    lead_limit: int
    period_days: int
    current_count: int
    remaining: int
    is_available: bool

    @property
    def percent_used(self) -> int:
        """Share of the limit used, in whole percent. Can exceed 100."""
        if self.lead_limit <= 0:
            return 100
        return round(self.current_count / self.lead_limit * 100)


@dataclass
class EligibleClient:
    """A client that may receive the next lead for a form."""

    client: CrmClient
    form_client: FormDistributionClient | None
    effective_priority: int
    quota_status: list[QuotaStatus] = field(default_factory=list)


@dataclass
class ClientQuotaStats:
    """Quota usage and delivery totals for one client."""

    client_id: UUID
    client_name: str
    quotas: list[QuotaStatus]
    total_deliveries: int
    successful_deliveries: int


def select_client(eligible: Sequence[EligibleClient]) -> EligibleClient | None:
    """Pick the winner from an already priority-sorted list."""
    if not eligible:
        return None
    return eligible[0]


# =============================================================================
# Quota Engine
# =============================================================================


class QuotaEngine:
    """Evaluates quota rules and form allowlists against the delivery ledger."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def count_successful_deliveries(self, client_id: UUID, since: datetime) -> int:
        """Successful deliveries for a client created at or after ``since``."""
        result = await self.db.execute(
            select(func.count(CrmDelivery.id)).where(
                CrmDelivery.client_id == client_id,
                CrmDelivery.success.is_(True),
                CrmDelivery.created_at >= since,
            )
        )
        return result.scalar_one()

    async def check_client_quotas(
        self, client_id: UUID, quotas: Sequence[CrmQuota]
    ) -> list[QuotaStatus]:
        """Evaluate each quota rule of a client.

        Args:
            client_id: The CRM client.
            quotas: The client's quota rules.

        Returns:
            One status per rule, in the given order.
        """
        now = self.clock()
        statuses = []
        for quota in quotas:
            since = now - timedelta(days=quota.period_days)
            current = await self.count_successful_deliveries(client_id, since)
            remaining = quota.lead_limit - current
            statuses.append(
                QuotaStatus(
                    quota_id=quota.id,
                    lead_limit=quota.lead_limit,
                    period_days=quota.period_days,
                    current_count=current,
                    remaining=remaining,
                    is_available=remaining > 0,
                )
            )
        return statuses

    async def get_eligible_clients(self, form_id: UUID) -> list[EligibleClient]:
        """Clients that may receive a lead for ``form_id``, best first.

        If the form has enabled allowlist rows, only those clients are
        considered; otherwise every enabled client is. A client with no
        quota rules is always within quota. Ties keep load order.
        """
        result = await self.db.execute(
            select(CrmClient)
            .where(CrmClient.enabled.is_(True))
            .order_by(CrmClient.created_at, CrmClient.id)
        )
        clients = result.scalars().all()

        result = await self.db.execute(
            select(FormDistributionClient).where(
                FormDistributionClient.form_id == form_id,
                FormDistributionClient.enabled.is_(True),
            )
        )
        allowlist = {row.client_id: row for row in result.scalars().all()}

        eligible: list[EligibleClient] = []
        for client in clients:
            form_client = allowlist.get(client.id)
            if allowlist and form_client is None:
                continue

            statuses = await self.check_client_quotas(client.id, client.quotas)
            if not all(status.is_available for status in statuses):
                logger.debug(f"CRM client {client.name} is over quota, skipping")
                continue

            if form_client is not None and form_client.priority is not None:
                priority = form_client.priority
            else:
                priority = client.priority

            eligible.append(
                EligibleClient(
                    client=client,
                    form_client=form_client,
                    effective_priority=priority,
                    quota_status=statuses,
                )
            )

        # sorted() is stable, so equal priorities keep load order
        return sorted(eligible, key=lambda e: e.effective_priority, reverse=True)

    async def get_client_quota_stats(self, client_id: UUID) -> ClientQuotaStats:
        """Quota usage and delivery counts for a client.

        Raises:
            ClientNotFoundError: If the client does not exist.
        """
        client = await self.db.get(CrmClient, client_id)
        if client is None:
            raise ClientNotFoundError(f"CRM client {client_id} not found")

        quotas = await self.check_client_quotas(client.id, client.quotas)

        total = await self.db.execute(
            select(func.count(CrmDelivery.id)).where(CrmDelivery.client_id == client_id)
        )
        successful = await self.db.execute(
            select(func.count(CrmDelivery.id)).where(
                CrmDelivery.client_id == client_id, CrmDelivery.success.is_(True)
            )
        )

        return ClientQuotaStats(
            client_id=client.id,
            client_name=client.name,
            quotas=quotas,
            total_deliveries=total.scalar_one(),
            successful_deliveries=successful.scalar_one(),
        )
