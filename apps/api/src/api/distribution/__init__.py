"""CRM distribution module.

Provides quota accounting, client eligibility, field mapping, and the
single-shot distributor. Routes live in ``api.distribution.routes``.
"""

from api.distribution.distributor import (
    CrmDistributor,
    DistributionOutcome,
    DistributionResult,
)
from api.distribution.eligibility import (
    ClientQuotaStats,
    EligibleClient,
    QuotaEngine,
    QuotaStatus,
    select_client,
)
from api.distribution.mapping import build_request_body, resolve_field_mapping

__all__ = [
    "ClientQuotaStats",
    "CrmDistributor",
    "DistributionOutcome",
    "DistributionResult",
    "EligibleClient",
    "QuotaEngine",
    "QuotaStatus",
    "build_request_body",
    "resolve_field_mapping",
    "select_client",
]
