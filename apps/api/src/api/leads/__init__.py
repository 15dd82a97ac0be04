"""Lead intake and routing module."""

from api.leads.routing import LeadChannel, LeadRouter, RoutingResult

__all__ = [
    "LeadChannel",
    "LeadRouter",
    "RoutingResult",
]
