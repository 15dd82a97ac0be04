"""API package for the lead delivery service.

This FastAPI application orchestrates:
- Lead intake (POST /leads)
- Webhook delivery with retries (api.webhooks)
- CRM distribution under quotas (api.distribution)
"""

from api.main import app

__all__ = ["app"]
