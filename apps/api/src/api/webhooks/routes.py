"""Webhook admin routes.

Test sends, the recovery sweep, and the delivery log.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from shared.schemas import DeliveryStatus, WireModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.config import ConfigurationError
from api.db.database import get_db
from api.db.models import WebhookDelivery
from api.services import DeliveryServices, get_delivery_services
from api.webhooks.payload import sample_test_payload

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


# =============================================================================
# Request/Response Models
# =============================================================================


class WebhookTestRequest(WireModel):
    """Target for a test delivery. Accepts camelCase or snake_case keys."""

    webhook_url: str | None = None
    webhook_secret: str | None = None
    form_id: str | None = None


class WebhookTestResponse(BaseModel):
    """Outcome of a test delivery."""

    success: bool
    status: int | None = None
    response: str | None = None
    error: str | None = None


class SweepResponse(BaseModel):
    """Recovery sweep result."""

    triggered: int


class WebhookDeliveryResponse(BaseModel):
    """One webhook delivery record."""

    id: UUID
    form_id: UUID
    submission_id: UUID
    url: str
    status: DeliveryStatus
    success: bool
    attempts: int
    last_error: str | None
    response_status: int | None
    next_attempt_at: datetime | None
    created_at: datetime | None
    updated_at: datetime | None


def _delivery_response(delivery: WebhookDelivery) -> WebhookDeliveryResponse:
    return WebhookDeliveryResponse(
        id=delivery.id,
        form_id=delivery.form_id,
        submission_id=delivery.submission_id,
        url=delivery.url,
        status=delivery.status,
        success=delivery.success,
        attempts=delivery.attempts,
        last_error=delivery.last_error,
        response_status=delivery.response_status,
        next_attempt_at=delivery.next_attempt_at,
        created_at=delivery.created_at,
        updated_at=delivery.updated_at,
    )


# =============================================================================
# Routes
# =============================================================================


@router.post("/test", response_model=WebhookTestResponse)
async def test_webhook(
    request: WebhookTestRequest,
    services: DeliveryServices = Depends(get_delivery_services),
):
    """Send a sample lead to a webhook URL and report what came back."""
    try:
        result = await services.webhooks.send_test_webhook(
            request.webhook_url or "",
            request.webhook_secret,
            sample_payload=sample_test_payload(form_id=request.form_id),
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return WebhookTestResponse(
        success=result.success,
        status=result.status,
        response=result.response,
        error=result.error,
    )


@router.post("/sweep", response_model=SweepResponse)
async def sweep_pending_webhooks(
    services: DeliveryServices = Depends(get_delivery_services),
):
    """Re-trigger overdue webhook deliveries (for external schedulers)."""
    triggered = await services.webhooks.process_pending_webhooks()
    return SweepResponse(triggered=triggered)


@router.get("/deliveries", response_model=list[WebhookDeliveryResponse])
async def list_webhook_deliveries(
    form_id: UUID | None = None,
    delivery_status: DeliveryStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Webhook deliveries, newest first."""
    query = select(WebhookDelivery)
    if form_id is not None:
        query = query.where(WebhookDelivery.form_id == form_id)

    if delivery_status == DeliveryStatus.SUCCESS:
        query = query.where(WebhookDelivery.success.is_(True))
    elif delivery_status == DeliveryStatus.PENDING:
        query = query.where(
            WebhookDelivery.success.is_(False),
            WebhookDelivery.next_attempt_at.is_not(None),
        )
    elif delivery_status == DeliveryStatus.FAILED:
        query = query.where(
            WebhookDelivery.success.is_(False),
            WebhookDelivery.next_attempt_at.is_(None),
        )

    query = query.order_by(WebhookDelivery.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return [_delivery_response(d) for d in result.scalars().all()]


@router.get("/deliveries/{delivery_id}", response_model=WebhookDeliveryResponse)
async def get_webhook_delivery(
    delivery_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """A single webhook delivery."""
    delivery = await db.get(WebhookDelivery, delivery_id)
    if delivery is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Webhook delivery not found",
        )
    return _delivery_response(delivery)
