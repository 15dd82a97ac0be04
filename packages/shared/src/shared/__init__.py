"""Shared schemas and primitives for the lead delivery service."""

from shared.schemas import (
    LEAD_CREATED_EVENT,
    AnswerSnapshot,
    AnswerValue,
    DeliveryStatus,
    HttpMethod,
    LeadSubmissionRequest,
    QuestionType,
    SubmissionClientMeta,
    SubmissionMeta,
    WebhookMeta,
    WebhookPayload,
    isoformat_utc,
)
from shared.signing import (
    SIGNATURE_HEADER,
    sign_payload,
    verify_signature,
)

__all__ = [
    "LEAD_CREATED_EVENT",
    "SIGNATURE_HEADER",
    "AnswerSnapshot",
    "AnswerValue",
    "DeliveryStatus",
    "HttpMethod",
    "LeadSubmissionRequest",
    "QuestionType",
    "SubmissionClientMeta",
    "SubmissionMeta",
    "WebhookMeta",
    "WebhookPayload",
    "isoformat_utc",
    "sign_payload",
    "verify_signature",
]
