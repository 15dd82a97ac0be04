"""Pydantic schemas for lead delivery.

These models describe the data that crosses the system boundary:
- the public lead submission accepted by the intake endpoint
- the webhook payload sent to form owners (a fixed wire contract)
- the submission metadata used when building CRM payloads

Wire names are camelCase (``formId``, ``questionKey``...). Python code uses
snake_case attribute names; dump with ``by_alias=True`` for the wire form.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# =============================================================================
# Constants
# =============================================================================

LEAD_CREATED_EVENT = "lead.created"

# Answer values collected by the form runtime: text, multi-choice, consent, empty
AnswerValue = str | list[str] | bool | None


def isoformat_utc(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with milliseconds and a ``Z`` suffix.

    Naive datetimes (SQLite returns these) are assumed to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# =============================================================================
# Enums
# =============================================================================


class QuestionType(str, Enum):
    """Question types the form builder can produce."""

    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    EMAIL = "email"
    PHONE = "phone"
    CONSENT = "consent"


class DeliveryStatus(str, Enum):
    """Admin-facing state of a delivery record."""

    SUCCESS = "success"
    PENDING = "pending"  # Retry still scheduled
    FAILED = "failed"  # Terminal, no more attempts


class HttpMethod(str, Enum):
    """HTTP methods a CRM client may be configured with."""

    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"


class WireModel(BaseModel):
    """Base model using camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Answers
# =============================================================================


class AnswerSnapshot(WireModel):
    """One answer with the question label/type captured at submission time."""

    question_key: str
    question_label: str
    question_type: str
    value: AnswerValue = None


# =============================================================================
# Lead Submission (Input from the public form runtime)
# =============================================================================


class SubmissionClientMeta(WireModel):
    """Attribution data reported by the form runtime."""

    referrer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None

    def utm(self) -> dict[str, str | None]:
        """UTM parameters keyed by their short name (source, medium...)."""
        return {
            "source": self.utm_source,
            "medium": self.utm_medium,
            "campaign": self.utm_campaign,
            "term": self.utm_term,
            "content": self.utm_content,
        }


class LeadSubmissionRequest(WireModel):
    """A filled-in form as posted by the public runtime.

    Answer validation against the form schema happens upstream; here the
    answers are stored as given.
    """

    form_slug: str = Field(min_length=1)
    answers: list[AnswerSnapshot] = Field(default_factory=list)
    meta: SubmissionClientMeta | None = None


# =============================================================================
# Submission Metadata
# =============================================================================


class SubmissionMeta(WireModel):
    """Submission metadata handed to the CRM distributor alongside the answers."""

    form_slug: str
    form_name: str
    ip: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    utm: dict[str, str | None] | None = None
    created_at: str


# =============================================================================
# Webhook Payload (Outbound wire contract)
# =============================================================================


class WebhookMeta(WireModel):
    """The ``meta`` block of a webhook payload."""

    ip: str | None = None
    user_agent: str | None = None
    referrer: str | None = None
    utm: dict[str, str | None] | None = None
    created_at: str


class WebhookPayload(WireModel):
    """Body POSTed to a form's webhook URL for every new lead.

    Field names and nesting are a public contract with form owners.
    """

    event: Literal["lead.created"] = LEAD_CREATED_EVENT
    timestamp: str = Field(default_factory=lambda: isoformat_utc(datetime.now(timezone.utc)))
    form_id: str
    form_slug: str
    form_name: str
    submission_id: str
    answers: dict[str, AnswerSnapshot] = Field(default_factory=dict)
    meta: WebhookMeta
