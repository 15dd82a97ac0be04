"""SQLAlchemy models for submissions, delivery audit records and CRM routing.

The form table is owned by the form builder; only the columns the delivery
subsystem reads are mapped here. Delivery tables are written by the webhook
dispatcher and the CRM distributor and double as the quota ledger.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from api.db.database import Base
from shared.schemas import DeliveryStatus, HttpMethod


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


# =============================================================================
# Form Model
# =============================================================================


class Form(Base):
    """Delivery-relevant view of a form."""

    __tablename__ = "forms"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Single-webhook delivery
    webhook_url: Mapped[str | None] = mapped_column(Text)
    webhook_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    webhook_secret: Mapped[str | None] = mapped_column(String(255))

    # CRM distribution (takes precedence over the webhook when enabled)
    distribution_enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )


# =============================================================================
# Submission Models
# =============================================================================


class Submission(Base):
    """One filled-in form. Never mutated after creation."""

    __tablename__ = "submissions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    form_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )

    # Client info
    ip: Mapped[str | None] = mapped_column(String(45))  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(Text)
    referrer: Mapped[str | None] = mapped_column(Text)
    utm_json: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    # Relationships
    answers: Mapped[list["Answer"]] = relationship(
        back_populates="submission",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Answer.position",
    )

    __table_args__ = (
        Index("ix_submissions_form_id", "form_id"),
        Index("ix_submissions_created_at", "created_at"),
    )


class Answer(Base):
    """Answer to one question, with the question label/type snapshot."""

    __tablename__ = "answers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    submission_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0)

    question_key: Mapped[str] = mapped_column(String(255), nullable=False)
    question_label: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(50), nullable=False)
    value_json: Mapped[Any] = mapped_column(JSON, nullable=False)

    submission: Mapped["Submission"] = relationship(back_populates="answers")

    __table_args__ = (Index("ix_answers_submission_id", "submission_id"),)


# =============================================================================
# Webhook Delivery Model
# =============================================================================


class WebhookDelivery(Base):
    """Attempt sequence for delivering one submission to a form's webhook.

    Mutated in place across retries until it succeeds or runs out of attempts.
    """

    __tablename__ = "webhook_deliveries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    form_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    submission_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    # Request snapshot
    url: Mapped[str] = mapped_column(Text, nullable=False)
    request_body_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Last response
    response_status: Mapped[int | None] = mapped_column(Integer)
    response_body_text: Mapped[str | None] = mapped_column(Text)

    # Retry state
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    next_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("ix_webhook_deliveries_form_id", "form_id"),
        Index("ix_webhook_deliveries_submission_id", "submission_id"),
        Index("ix_webhook_deliveries_next_attempt_at", "next_attempt_at"),
    )

    @property
    def status(self) -> DeliveryStatus:
        """Success, pending (retry scheduled) or failed (terminal)."""
        if self.success:
            return DeliveryStatus.SUCCESS
        if self.next_attempt_at is not None:
            return DeliveryStatus.PENDING
        return DeliveryStatus.FAILED


# =============================================================================
# CRM Distribution Models
# =============================================================================


class CrmClient(Base):
    """An outbound CRM / lead-sink integration competing for leads."""

    __tablename__ = "crm_clients"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Endpoint
    api_url: Mapped[str] = mapped_column(Text, nullable=False)
    api_key: Mapped[str | None] = mapped_column(Text)  # Sent as bearer token
    api_secret: Mapped[str | None] = mapped_column(Text)  # Reserved
    http_method: Mapped[str] = mapped_column(String(10), default=HttpMethod.POST.value)
    headers: Mapped[dict[str, str] | None] = mapped_column(JSON)

    # form field (or _meta.*) -> CRM field
    field_mapping: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)

    # Routing
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)  # Higher wins

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    # Relationships
    quotas: Mapped[list["CrmQuota"]] = relationship(
        back_populates="client", lazy="selectin", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_crm_clients_enabled", "enabled"),)

    @validates("http_method")
    def _validate_http_method(self, key: str, value: str) -> str:
        method = (value or HttpMethod.POST.value).upper()
        if method not in {m.value for m in HttpMethod}:
            raise ValueError(f"Unsupported HTTP method for CRM client: {value}")
        return method


class CrmQuota(Base):
    """Rolling-window cap: at most lead_limit successful deliveries per period_days."""

    __tablename__ = "crm_quotas"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("crm_clients.id", ondelete="CASCADE"), nullable=False
    )
    lead_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    period_days: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    client: Mapped["CrmClient"] = relationship(back_populates="quotas")

    __table_args__ = (Index("ix_crm_quotas_client_id", "client_id"),)


class CrmDelivery(Base):
    """One distribution attempt of a submission to a CRM client.

    Successful rows are what quota rules count.
    """

    __tablename__ = "crm_deliveries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("crm_clients.id", ondelete="CASCADE"), nullable=False
    )
    submission_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False
    )
    form_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )

    request_body: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    response_status: Mapped[int | None] = mapped_column(Integer)
    response_body: Mapped[str | None] = mapped_column(Text)

    success: Mapped[bool] = mapped_column(Boolean, default=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    # Relationships (for delivery logs)
    client: Mapped["CrmClient"] = relationship(lazy="joined")
    form: Mapped["Form"] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_crm_deliveries_client_id_created_at", "client_id", "created_at"),
        Index("ix_crm_deliveries_form_id", "form_id"),
        Index("ix_crm_deliveries_submission_id", "submission_id"),
    )

    @property
    def status(self) -> DeliveryStatus:
        """Success, pending (request in flight) or failed."""
        if self.success:
            return DeliveryStatus.SUCCESS
        if self.attempts == 0:
            return DeliveryStatus.PENDING
        return DeliveryStatus.FAILED


class FormDistributionClient(Base):
    """Restricts which CRM clients serve a form, with an optional priority override.

    A form without enabled rows is served by every enabled client.
    """

    __tablename__ = "form_distribution_clients"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    form_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("crm_clients.id", ondelete="CASCADE"), nullable=False
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("form_id", "client_id", name="uq_form_distribution_clients_form_client"),
        Index("ix_form_distribution_clients_form_id", "form_id"),
    )
