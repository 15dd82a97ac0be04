"""FastAPI application for lead delivery.

Provides:
- Lead intake with background delivery
- Signed webhook delivery with retries and a recovery sweep
- CRM distribution under per-client quotas and priorities
- Delivery logs and quota views for admins

Flow:
1. POST /leads - Store a submission, route it in the background
2. Distribution enabled → one CRM client gets the lead (single attempt)
3. Otherwise webhook enabled → signed POST, retried after 1s, 5s, 25s
4. POST /webhooks/sweep - Re-trigger overdue webhook deliveries
5. GET /webhooks/deliveries, GET /distribution/deliveries - Delivery logs
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from api.config import DeliveryConfig
from api.db.database import async_session
from api.distribution.routes import router as distribution_router
from api.leads.routes import router as leads_router
from api.services import DeliveryServices, get_delivery_services
from api.webhooks.routes import router as webhooks_router

# Load environment variables from project root
_project_root = os.path.dirname(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))
)
load_dotenv(os.path.join(_project_root, ".env.local"))
load_dotenv()  # Also try default .env

logger = logging.getLogger("lead-delivery-api")


# =============================================================================
# App Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle - build delivery services, run the sweep, drain on shutdown."""
    services = DeliveryServices.create(async_session, config=DeliveryConfig.from_env())
    app.state.delivery = services

    # Startup: recover anything left over from the previous process
    triggered = await services.webhooks.process_pending_webhooks()
    if triggered:
        logger.info(f"Resumed {triggered} pending webhook delivery(ies) at startup")
    await services.start_sweep_task()

    yield

    # Shutdown: stop the sweep, cancel retry timers, drain running deliveries
    await services.shutdown()


app = FastAPI(
    title="Lead Delivery API",
    description="Delivers captured leads to webhooks and CRM clients",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for the form runtime and admin frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(leads_router)
app.include_router(webhooks_router)
app.include_router(distribution_router)


# =============================================================================
# Health
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    running_deliveries: int
    scheduled_retries: int


@app.get("/health", response_model=HealthResponse)
async def health_check(services: DeliveryServices = Depends(get_delivery_services)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        running_deliveries=services.runner.running_count,
        scheduled_retries=services.runner.scheduled_count,
    )


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
