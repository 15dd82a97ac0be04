"""Database module for the API.

Provides SQLAlchemy models, async database session management, and utilities.
"""

from api.db.database import (
    Base,
    async_session,
    build_engine,
    build_session_factory,
    get_db,
    init_db,
)
from api.db.models import (
    Answer,
    CrmClient,
    CrmDelivery,
    CrmQuota,
    Form,
    FormDistributionClient,
    Submission,
    WebhookDelivery,
)

__all__ = [
    "Answer",
    "Base",
    "CrmClient",
    "CrmDelivery",
    "CrmQuota",
    "Form",
    "FormDistributionClient",
    "Submission",
    "WebhookDelivery",
    "async_session",
    "build_engine",
    "build_session_factory",
    "get_db",
    "init_db",
]
