"""Tests for lead intake and routing."""

from uuid import UUID, uuid4

import pytest
from fastapi import Request
from sqlalchemy import func, select

from api.db.models import CrmDelivery, Submission, WebhookDelivery
from api.leads.routes import get_client_ip
from api.leads.routing import LeadChannel

URL = "https://hooks.example.com/lead"


async def count(db, model) -> int:
    result = await db.execute(select(func.count(model.id)))
    return result.scalar_one()


class TestLeadRouter:
    """Tests for routing a stored submission."""

    @pytest.mark.asyncio
    async def test_webhook_channel(self, factory, services, endpoint, db):
        """A webhook-enabled form gets a webhook delivery."""
        form = await factory.form(webhook_url=URL, webhook_enabled=True)
        submission = await factory.submission(form)

        result = await services.leads.route_submission(submission.id)
        await services.runner.drain(timeout=5, include_timers=True)

        assert result.channel == LeadChannel.WEBHOOK
        assert result.webhook_delivery_id is not None
        assert len(endpoint.requests) == 1
        assert str(endpoint.requests[0].url) == URL
        assert await count(db, CrmDelivery) == 0

    @pytest.mark.asyncio
    async def test_distribution_takes_precedence(self, factory, services, endpoint, db):
        """With distribution enabled the webhook is never called."""
        form = await factory.form(
            webhook_url=URL, webhook_enabled=True, distribution_enabled=True
        )
        submission = await factory.submission(form, answers={"email": "a@example.com"})
        await factory.client(api_url="https://crm.example.com/in")

        result = await services.leads.route_submission(submission.id)
        await services.runner.drain(timeout=5, include_timers=True)

        assert result.channel == LeadChannel.DISTRIBUTION
        assert result.distribution.success is True
        assert [str(r.url) for r in endpoint.requests] == ["https://crm.example.com/in"]
        assert await count(db, WebhookDelivery) == 0

    @pytest.mark.asyncio
    async def test_webhook_needs_url(self, factory, services, endpoint):
        """An enabled webhook without a URL is skipped."""
        form = await factory.form(webhook_enabled=True)
        submission = await factory.submission(form)

        result = await services.leads.route_submission(submission.id)

        assert result.channel == LeadChannel.NONE
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_missing_submission(self, services):
        """Unknown submissions route nowhere."""
        result = await services.leads.route_submission(uuid4())
        assert result.channel == LeadChannel.NONE


class TestSubmitLead:
    """Tests for POST /leads."""

    @pytest.mark.asyncio
    async def test_stores_and_delivers(self, api, factory, services, fetch, endpoint, db):
        """The lead is stored, acknowledged, then delivered in the background."""
        form = await factory.form(slug="contact", webhook_url=URL, webhook_enabled=True)

        response = await api.post(
            "/leads",
            json={
                "formSlug": "contact",
                "answers": [
                    {
                        "questionKey": "email",
                        "questionLabel": "Email",
                        "questionType": "email",
                        "value": "a@example.com",
                    },
                    {
                        "questionKey": "topics",
                        "questionLabel": "Topics",
                        "questionType": "multiple_choice",
                        "value": ["pricing", "support"],
                    },
                ],
                "meta": {"utmSource": "google", "referrer": "https://ref.example"},
            },
            headers={"User-Agent": "FormRuntime/1.0", "X-Forwarded-For": "198.51.100.4, 10.0.0.1"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True

        submission = await fetch(Submission, UUID(data["submission_id"]))
        assert submission.form_id == form.id
        assert submission.ip == "198.51.100.4"
        assert submission.user_agent == "FormRuntime/1.0"
        assert submission.referrer == "https://ref.example"
        assert submission.utm_json["source"] == "google"
        assert [a.question_key for a in submission.answers] == ["email", "topics"]
        assert submission.answers[1].value_json == ["pricing", "support"]

        await services.runner.drain(timeout=5, include_timers=True)
        assert len(endpoint.requests) == 1
        assert await count(db, WebhookDelivery) == 1

    @pytest.mark.asyncio
    async def test_unknown_form(self, api):
        """Unknown slugs are 404."""
        response = await api.post("/leads", json={"formSlug": "nope", "answers": []})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_body(self, api):
        """A missing form slug is rejected."""
        response = await api.post("/leads", json={"answers": []})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_fail_submission(
        self, api, factory, services, endpoint
    ):
        """The submitter gets success even when delivery fails."""
        await factory.form(slug="contact", webhook_url=URL, webhook_enabled=True)
        endpoint.default_status = 500

        response = await api.post("/leads", json={"formSlug": "contact", "answers": []})
        await services.runner.drain(timeout=5, include_timers=True)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert len(endpoint.requests) == 3


class TestClientIp:
    """Tests for client IP resolution."""

    def _request(self, headers, client=("192.0.2.1", 1234)):
        scope = {
            "type": "http",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
            "client": client,
        }
        return Request(scope)

    def test_forwarded_for_first_hop(self):
        """The first X-Forwarded-For entry wins."""
        request = self._request({"X-Forwarded-For": " 198.51.100.4 , 10.0.0.1", "X-Real-IP": "x"})
        assert get_client_ip(request) == "198.51.100.4"

    def test_real_ip(self):
        """X-Real-IP is used without X-Forwarded-For."""
        assert get_client_ip(self._request({"X-Real-IP": "198.51.100.9"})) == "198.51.100.9"

    def test_socket_peer(self):
        """Without proxy headers the socket peer is used."""
        assert get_client_ip(self._request({})) == "192.0.2.1"

    def test_unknown(self):
        """No information at all gives 'unknown'."""
        assert get_client_ip(self._request({}, client=None)) == "unknown"
