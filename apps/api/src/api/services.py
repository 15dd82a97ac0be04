"""Delivery services shared by the routers.

Built once in the app lifespan and stored on ``app.state``; routes get them
through the ``get_delivery_services`` dependency.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.config import DeliveryConfig
from api.db.models import utcnow
from api.distribution.distributor import CrmDistributor
from api.leads.routing import LeadRouter
from api.tasks import BackgroundTaskRunner
from api.webhooks.dispatcher import Clock, WebhookDispatcher

logger = logging.getLogger("lead-delivery-api")


@dataclass
class DeliveryServices:
    """Runner, dispatchers and router wired to one session factory."""

    config: DeliveryConfig
    runner: BackgroundTaskRunner
    webhooks: WebhookDispatcher
    distributor: CrmDistributor
    leads: LeadRouter
    _sweep_task: asyncio.Task | None = None

    @classmethod
    def create(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        config: DeliveryConfig | None = None,
        clock: Clock = utcnow,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "DeliveryServices":
        """Wire up the delivery components."""
        config = config or DeliveryConfig()
        runner = BackgroundTaskRunner()
        webhooks = WebhookDispatcher(
            session_factory, runner, config=config, clock=clock, transport=transport
        )
        distributor = CrmDistributor(
            session_factory, config=config, clock=clock, transport=transport
        )
        return cls(
            config=config,
            runner=runner,
            webhooks=webhooks,
            distributor=distributor,
            leads=LeadRouter(session_factory, webhooks, distributor),
        )

    # =========================================================================
    # Periodic recovery sweep
    # =========================================================================

    async def start_sweep_task(self) -> None:
        """Start the periodic webhook sweep if an interval is configured."""
        interval = self.config.sweep_interval_seconds
        if interval > 0 and self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._periodic_sweep(interval))
            logger.info(f"Webhook recovery sweep running every {interval:g}s")

    async def stop_sweep_task(self) -> None:
        """Stop the periodic sweep."""
        if self._sweep_task:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    async def _periodic_sweep(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.webhooks.process_pending_webhooks()
            except Exception:
                logger.exception("Webhook recovery sweep failed")

    async def shutdown(self) -> None:
        """Stop the sweep and drain in-flight deliveries."""
        await self.stop_sweep_task()
        await self.runner.shutdown(timeout=self.config.shutdown_grace_seconds)


def get_delivery_services(request: Request) -> DeliveryServices:
    """Dependency returning the app's delivery services."""
    return request.app.state.delivery
