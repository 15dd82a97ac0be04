"""Webhook payload construction.

Turns a stored submission into the ``lead.created`` body sent to form owners,
and into the flat answer/metadata views the CRM distributor maps from.
"""

from datetime import datetime, timezone
from typing import Any

from shared.schemas import (
    AnswerSnapshot,
    AnswerValue,
    QuestionType,
    SubmissionMeta,
    WebhookMeta,
    WebhookPayload,
    isoformat_utc,
)

from api.db.models import Form, Submission


def _utm(submission: Submission) -> dict[str, str | None] | None:
    return dict(submission.utm_json) if submission.utm_json else None


def answers_by_key(submission: Submission) -> dict[str, AnswerValue]:
    """Map question key to answer value."""
    return {answer.question_key: answer.value_json for answer in submission.answers}


def submission_meta(form: Form, submission: Submission) -> SubmissionMeta:
    """Metadata the CRM field mapping can reference through ``_meta.*`` names."""
    return SubmissionMeta(
        form_slug=form.slug,
        form_name=form.name,
        ip=submission.ip,
        user_agent=submission.user_agent,
        referrer=submission.referrer,
        utm=_utm(submission),
        created_at=isoformat_utc(submission.created_at),
    )


def build_webhook_payload(
    form: Form,
    submission: Submission,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build the webhook body for a new lead.

    Args:
        form: The form the submission belongs to.
        submission: Submission with its answers loaded.
        now: Event timestamp (defaults to the current time).

    Returns:
        JSON-compatible dict in wire (camelCase) form.
    """
    answers = {
        answer.question_key: AnswerSnapshot(
            question_key=answer.question_key,
            question_label=answer.question_label,
            question_type=answer.question_type,
            value=answer.value_json,
        )
        for answer in submission.answers
    }

    payload = WebhookPayload(
        timestamp=isoformat_utc(now or datetime.now(timezone.utc)),
        form_id=str(form.id),
        form_slug=form.slug,
        form_name=form.name,
        submission_id=str(submission.id),
        answers=answers,
        meta=WebhookMeta(
            ip=submission.ip,
            user_agent=submission.user_agent,
            referrer=submission.referrer,
            utm=_utm(submission),
            created_at=isoformat_utc(submission.created_at),
        ),
    )
    return payload.to_wire()


def sample_test_payload(
    form_id: str | None = None, now: datetime | None = None
) -> dict[str, Any]:
    """Fixed payload sent by the webhook test endpoint."""
    timestamp = isoformat_utc(now or datetime.now(timezone.utc))
    payload = WebhookPayload(
        timestamp=timestamp,
        form_id=form_id or "test-form-id",
        form_slug="test-form",
        form_name="Test Form",
        submission_id="test-submission-id",
        answers={
            "email": AnswerSnapshot(
                question_key="email",
                question_label="Email Address",
                question_type=QuestionType.EMAIL.value,
                value="test@example.com",
            ),
            "name": AnswerSnapshot(
                question_key="name",
                question_label="Full Name",
                question_type=QuestionType.SHORT_TEXT.value,
                value="Test User",
            ),
        },
        meta=WebhookMeta(
            ip="127.0.0.1",
            user_agent="Test Webhook",
            referrer=None,
            utm=None,
            created_at=timestamp,
        ),
    )
    return payload.to_wire()
