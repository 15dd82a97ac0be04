"""CRM distribution admin routes.

Delivery logs, per-client quota usage and per-form eligibility snapshots.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from shared.schemas import DeliveryStatus
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.config import ClientNotFoundError
from api.db.database import get_db
from api.db.models import CrmDelivery
from api.distribution.eligibility import QuotaEngine, QuotaStatus

router = APIRouter(prefix="/distribution", tags=["Distribution"])


# =============================================================================
# Request/Response Models
# =============================================================================


class QuotaStatusResponse(BaseModel):
    """Usage of one quota rule."""

    quota_id: UUID
    lead_limit: int
    period_days: int
    current_count: int
    remaining: int
    percent_used: int
    is_available: bool


class ClientQuotaResponse(BaseModel):
    """Quota usage and delivery totals for a CRM client."""

    client_id: UUID
    client_name: str
    quotas: list[QuotaStatusResponse]
    total_deliveries: int
    successful_deliveries: int


class EligibleClientResponse(BaseModel):
    """A client that would be considered for the form's next lead."""

    client_id: UUID
    client_name: str
    effective_priority: int
    form_override: bool
    quotas: list[QuotaStatusResponse]


class CrmDeliveryResponse(BaseModel):
    """One CRM delivery record."""

    id: UUID
    client_id: UUID
    client_name: str | None
    form_id: UUID
    form_name: str | None
    form_slug: str | None
    submission_id: UUID
    status: DeliveryStatus
    success: bool
    attempts: int
    request_body: dict[str, Any]
    response_status: int | None
    response_body: str | None
    last_error: str | None
    created_at: datetime | None


def _quota_response(quota: QuotaStatus) -> QuotaStatusResponse:
    return QuotaStatusResponse(
        quota_id=quota.quota_id,
        lead_limit=quota.lead_limit,
        period_days=quota.period_days,
        current_count=quota.current_count,
        remaining=quota.remaining,
        percent_used=quota.percent_used,
        is_available=quota.is_available,
    )


# =============================================================================
# Routes
# =============================================================================


@router.get("/deliveries", response_model=list[CrmDeliveryResponse])
async def list_crm_deliveries(
    client_id: UUID | None = None,
    form_id: UUID | None = None,
    success: bool | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """CRM deliveries, newest first."""
    query = select(CrmDelivery)
    if client_id is not None:
        query = query.where(CrmDelivery.client_id == client_id)
    if form_id is not None:
        query = query.where(CrmDelivery.form_id == form_id)
    if success is not None:
        query = query.where(CrmDelivery.success.is_(success))

    query = query.order_by(CrmDelivery.created_at.desc()).limit(limit)
    result = await db.execute(query)

    return [
        CrmDeliveryResponse(
            id=d.id,
            client_id=d.client_id,
            client_name=d.client.name if d.client else None,
            form_id=d.form_id,
            form_name=d.form.name if d.form else None,
            form_slug=d.form.slug if d.form else None,
            submission_id=d.submission_id,
            status=d.status,
            success=d.success,
            attempts=d.attempts,
            request_body=d.request_body,
            response_status=d.response_status,
            response_body=d.response_body,
            last_error=d.last_error,
            created_at=d.created_at,
        )
        for d in result.scalars().unique().all()
    ]


@router.get("/clients/{client_id}/quota", response_model=ClientQuotaResponse)
async def get_client_quota(
    client_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Quota usage for a CRM client."""
    try:
        stats = await QuotaEngine(db).get_client_quota_stats(client_id)
    except ClientNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return ClientQuotaResponse(
        client_id=stats.client_id,
        client_name=stats.client_name,
        quotas=[_quota_response(q) for q in stats.quotas],
        total_deliveries=stats.total_deliveries,
        successful_deliveries=stats.successful_deliveries,
    )


@router.get(
    "/forms/{form_id}/eligible-clients", response_model=list[EligibleClientResponse]
)
async def get_form_eligible_clients(
    form_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Clients that could receive the form's next lead, in selection order."""
    eligible = await QuotaEngine(db).get_eligible_clients(form_id)
    return [
        EligibleClientResponse(
            client_id=e.client.id,
            client_name=e.client.name,
            effective_priority=e.effective_priority,
            form_override=e.form_client is not None and e.form_client.priority is not None,
            quotas=[_quota_response(q) for q in e.quota_status],
        )
        for e in eligible
    ]
