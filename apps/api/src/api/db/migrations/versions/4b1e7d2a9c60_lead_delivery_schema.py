"""lead_delivery_schema

Revision ID: 4b1e7d2a9c60
Revises:
Create Date: 2026-10-19 09:12:41.518204

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4b1e7d2a9c60"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create submission, delivery and CRM routing tables."""
    # Forms table (delivery-relevant columns)
    op.create_table(
        "forms",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), unique=True, nullable=False),
        # Webhook
        sa.Column("webhook_url", sa.Text),
        sa.Column("webhook_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("webhook_secret", sa.String(255)),
        # Distribution
        sa.Column(
            "distribution_enabled", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        # Timestamps
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )

    # Submissions table
    op.create_table(
        "submissions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "form_id",
            sa.Uuid,
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        # Client info
        sa.Column("ip", sa.String(45)),
        sa.Column("user_agent", sa.Text),
        sa.Column("referrer", sa.Text),
        sa.Column("utm_json", sa.JSON),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("ix_submissions_form_id", "submissions", ["form_id"])
    op.create_index("ix_submissions_created_at", "submissions", ["created_at"])

    # Answers table
    op.create_table(
        "answers",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "submission_id",
            sa.Uuid,
            sa.ForeignKey("submissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        # Question snapshot
        sa.Column("question_key", sa.String(255), nullable=False),
        sa.Column("question_label", sa.Text, nullable=False),
        sa.Column("question_type", sa.String(50), nullable=False),
        sa.Column("value_json", sa.JSON, nullable=False),
    )
    op.create_index("ix_answers_submission_id", "answers", ["submission_id"])

    # Webhook deliveries table
    op.create_table(
        "webhook_deliveries",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "form_id",
            sa.Uuid,
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("submission_id", sa.Uuid, nullable=False),
        # Request snapshot
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("request_body_json", sa.JSON, nullable=False),
        # Last response
        sa.Column("response_status", sa.Integer),
        sa.Column("response_body_text", sa.Text),
        # Retry state
        sa.Column("success", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True)),
        # Timestamps
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index(
        "ix_webhook_deliveries_form_id", "webhook_deliveries", ["form_id"]
    )
    op.create_index(
        "ix_webhook_deliveries_submission_id", "webhook_deliveries", ["submission_id"]
    )
    op.create_index(
        "ix_webhook_deliveries_next_attempt_at",
        "webhook_deliveries",
        ["next_attempt_at"],
    )

    # CRM clients table
    op.create_table(
        "crm_clients",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        # Endpoint
        sa.Column("api_url", sa.Text, nullable=False),
        sa.Column("api_key", sa.Text),
        sa.Column("api_secret", sa.Text),
        sa.Column("http_method", sa.String(10), nullable=False, server_default="POST"),
        sa.Column("headers", sa.JSON),
        sa.Column("field_mapping", sa.JSON, nullable=False),
        # Routing
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        # Timestamps
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("ix_crm_clients_enabled", "crm_clients", ["enabled"])

    # CRM quotas table
    op.create_table(
        "crm_quotas",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "client_id",
            sa.Uuid,
            sa.ForeignKey("crm_clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("lead_limit", sa.Integer, nullable=False),
        sa.Column("period_days", sa.Integer, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("ix_crm_quotas_client_id", "crm_quotas", ["client_id"])

    # CRM deliveries table
    op.create_table(
        "crm_deliveries",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "client_id",
            sa.Uuid,
            sa.ForeignKey("crm_clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "submission_id",
            sa.Uuid,
            sa.ForeignKey("submissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "form_id",
            sa.Uuid,
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("request_body", sa.JSON, nullable=False),
        sa.Column("response_status", sa.Integer),
        sa.Column("response_body", sa.Text),
        sa.Column("success", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index(
        "ix_crm_deliveries_client_id_created_at",
        "crm_deliveries",
        ["client_id", "created_at"],
    )
    op.create_index("ix_crm_deliveries_form_id", "crm_deliveries", ["form_id"])
    op.create_index(
        "ix_crm_deliveries_submission_id", "crm_deliveries", ["submission_id"]
    )

    # Form distribution clients table
    op.create_table(
        "form_distribution_clients",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "form_id",
            sa.Uuid,
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            sa.Uuid,
            sa.ForeignKey("crm_clients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("priority", sa.Integer),
        sa.UniqueConstraint(
            "form_id", "client_id", name="uq_form_distribution_clients_form_client"
        ),
    )
    op.create_index(
        "ix_form_distribution_clients_form_id",
        "form_distribution_clients",
        ["form_id"],
    )


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("form_distribution_clients")
    op.drop_table("crm_deliveries")
    op.drop_table("crm_quotas")
    op.drop_table("crm_clients")
    op.drop_table("webhook_deliveries")
    op.drop_table("answers")
    op.drop_table("submissions")
    op.drop_table("forms")
