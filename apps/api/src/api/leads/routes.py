"""Lead intake route.

Stores a submitted lead and routes it to its delivery channel in the
background. The submitter gets a response as soon as the lead is stored;
delivery failures never fail the submission.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from shared.schemas import LeadSubmissionRequest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.db.database import get_db
from api.db.models import Answer, Form, Submission
from api.services import DeliveryServices, get_delivery_services

logger = logging.getLogger("lead-delivery-api")

router = APIRouter(prefix="/leads", tags=["Leads"])


# =============================================================================
# Request/Response Models
# =============================================================================


class LeadSubmissionResponse(BaseModel):
    """Response after a lead is stored."""

    success: bool
    submission_id: UUID


# =============================================================================
# Helpers
# =============================================================================


def get_client_ip(request: Request) -> str:
    """Client IP: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


# =============================================================================
# Routes
# =============================================================================


@router.post("", response_model=LeadSubmissionResponse)
async def submit_lead(
    body: LeadSubmissionRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    services: DeliveryServices = Depends(get_delivery_services),
):
    """Store a lead for a form and start its delivery.

    Answers are stored as given, in order; validation against the form's
    questions happens before a lead reaches this endpoint.
    """
    result = await db.execute(select(Form).where(Form.slug == body.form_slug))
    form = result.scalar_one_or_none()
    if form is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Form not found",
        )

    meta = body.meta
    submission = Submission(
        form_id=form.id,
        ip=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=(meta.referrer if meta else None) or request.headers.get("referer"),
        utm_json=meta.utm() if meta else None,
        answers=[
            Answer(
                position=position,
                question_key=answer.question_key,
                question_label=answer.question_label,
                question_type=answer.question_type,
                value_json=answer.value,
            )
            for position, answer in enumerate(body.answers)
        ],
    )
    db.add(submission)
    await db.commit()

    logger.info(f"Stored submission {submission.id} for form {form.slug}")

    services.runner.submit(
        services.leads.route_submission(submission.id),
        key=f"lead:{submission.id}",
        name=f"route:{submission.id}",
    )

    return LeadSubmissionResponse(success=True, submission_id=submission.id)
