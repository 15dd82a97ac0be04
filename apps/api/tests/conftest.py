"""Shared fixtures for API tests."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from api.config import DeliveryConfig
from api.db.database import build_engine, build_session_factory, get_db, init_db
from api.db.models import (
    Answer,
    CrmClient,
    CrmDelivery,
    CrmQuota,
    Form,
    FormDistributionClient,
    Submission,
)
from api.main import app
from api.services import DeliveryServices, get_delivery_services


@pytest.fixture
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = build_engine("sqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    """A session for arranging and inspecting rows."""
    async with session_factory() as session:
        yield session


# =============================================================================
# Outbound HTTP
# =============================================================================


class FakeEndpoint:
    """Records outbound requests and replays queued responses.

    Queue ``httpx.Response`` objects or exceptions; once the queue is empty
    every request gets ``default_status`` with ``default_body``.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._queue: list[httpx.Response | Exception] = []
        self.default_status = 200
        self.default_body = "ok"

    def queue(self, *responses: httpx.Response | Exception) -> None:
        self._queue.extend(responses)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._queue:
            response = self._queue.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return httpx.Response(self.default_status, text=self.default_body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


@pytest.fixture
def endpoint():
    """Fake receiver for webhook and CRM requests."""
    return FakeEndpoint()


# =============================================================================
# Model factories
# =============================================================================


class ModelFactory:
    """Creates and commits rows with sensible defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def form(self, **kwargs: Any) -> Form:
        n = self._next()
        kwargs.setdefault("name", f"Form {n}")
        kwargs.setdefault("slug", f"form-{n}")
        return await self._save(Form(**kwargs))

    async def submission(
        self,
        form: Form,
        answers: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> Submission:
        answers = {"email": "lead@example.com"} if answers is None else answers
        kwargs.setdefault("ip", "203.0.113.7")
        kwargs.setdefault("user_agent", "pytest")
        submission = Submission(
            form_id=form.id,
            answers=[
                Answer(
                    position=i,
                    question_key=key,
                    question_label=key.replace("_", " ").title(),
                    question_type="short_text",
                    value_json=value,
                )
                for i, (key, value) in enumerate(answers.items())
            ],
            **kwargs,
        )
        return await self._save(submission)

    async def client(
        self,
        quotas: list[tuple[int, int]] | None = None,
        **kwargs: Any,
    ) -> CrmClient:
        """CRM client; ``quotas`` is a list of (lead_limit, period_days)."""
        n = self._next()
        kwargs.setdefault("name", f"Client {n}")
        kwargs.setdefault("api_url", f"https://crm{n}.example.com/leads")
        client = CrmClient(
            quotas=[
                CrmQuota(lead_limit=limit, period_days=days) for limit, days in quotas or []
            ],
            **kwargs,
        )
        return await self._save(client)

    async def allow(
        self,
        form: Form,
        client: CrmClient,
        priority: int | None = None,
        enabled: bool = True,
    ) -> FormDistributionClient:
        return await self._save(
            FormDistributionClient(
                form_id=form.id, client_id=client.id, priority=priority, enabled=enabled
            )
        )

    async def crm_delivery(
        self,
        client: CrmClient,
        submission: Submission,
        success: bool = True,
        created_at: datetime | None = None,
    ) -> CrmDelivery:
        delivery = CrmDelivery(
            client_id=client.id,
            submission_id=submission.id,
            form_id=submission.form_id,
            request_body={},
            success=success,
            attempts=1,
        )
        if created_at is not None:
            delivery.created_at = created_at
        return await self._save(delivery)


@pytest.fixture
def factory(db):
    """Row factory bound to the test session."""
    return ModelFactory(db)


async def reload(session_factory, model, obj_id: UUID):
    """Fetch a fresh copy of a row in a new session."""
    async with session_factory() as session:
        return await session.get(model, obj_id)


@pytest.fixture
def fetch(session_factory):
    """Fresh-read helper: ``await fetch(Model, id)``."""

    async def _fetch(model, obj_id: UUID):
        return await reload(session_factory, model, obj_id)

    return _fetch


# =============================================================================
# App
# =============================================================================


@pytest.fixture
async def services(session_factory, endpoint):
    """Delivery services on the test DB, with immediate retries."""
    services = DeliveryServices.create(
        session_factory,
        config=DeliveryConfig(retry_delays_seconds=(0.0, 0.0, 0.0)),
        transport=endpoint.transport,
    )
    yield services
    await services.shutdown()


@pytest.fixture
async def api(session_factory, services):
    """Async client against the app with test DB and services."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_delivery_services] = lambda: services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
