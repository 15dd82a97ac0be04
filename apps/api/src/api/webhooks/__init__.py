"""Webhook delivery module.

Provides payload construction, signed delivery with bounded retries, and the
recovery sweep. Routes live in ``api.webhooks.routes``.
"""

from api.webhooks.dispatcher import TestWebhookResult, WebhookDispatcher, serialize_body
from api.webhooks.payload import (
    answers_by_key,
    build_webhook_payload,
    sample_test_payload,
    submission_meta,
)

__all__ = [
    "TestWebhookResult",
    "WebhookDispatcher",
    "answers_by_key",
    "build_webhook_payload",
    "sample_test_payload",
    "serialize_body",
    "submission_meta",
]
