"""Outbound HTTP delivery.

Single request primitive shared by the webhook dispatcher, the webhook test
endpoint and the CRM distributor. Delivery failures are reported in the
returned outcome, never raised.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from api.config import ERROR_BODY_EXCERPT_LIMIT, ERROR_TEXT_LIMIT

logger = logging.getLogger("lead-delivery-api")

JSON_CONTENT_TYPE = "application/json"


@dataclass
class HttpOutcome:
    """Result of one outbound request."""

    status: int | None = None
    body: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True for a 2xx response."""
        return self.error is None and self.status is not None and 200 <= self.status < 300


def truncate(text: str | None, limit: int) -> str | None:
    """Cut text to at most ``limit`` characters."""
    if text is None:
        return None
    return text[:limit]


async def send_json(
    method: str,
    url: str,
    content: bytes,
    headers: Mapping[str, str],
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> HttpOutcome:
    """Send a pre-serialized JSON body and capture the outcome.

    Args:
        method: HTTP method (POST, PUT, PATCH).
        url: Target URL.
        content: Exact body bytes (what signatures were computed over).
        headers: Request headers, including Content-Type.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).

    Returns:
        HttpOutcome with status/body on any response, error on non-2xx or
        transport failure.
    """
    try:
        async with httpx.AsyncClient(
            timeout=timeout, transport=transport, follow_redirects=True
        ) as client:
            response = await client.request(
                method, url, content=content, headers=dict(headers)
            )
    except httpx.TimeoutException as e:
        return HttpOutcome(error=truncate(f"Request timed out: {e!s}", ERROR_TEXT_LIMIT))
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        message = str(e) or type(e).__name__
        return HttpOutcome(error=truncate(message, ERROR_TEXT_LIMIT))

    body = response.text
    if 200 <= response.status_code < 300:
        return HttpOutcome(status=response.status_code, body=body)

    error = f"HTTP {response.status_code}: {body[:ERROR_BODY_EXCERPT_LIMIT]}"
    logger.debug(f"{method} {url} returned {response.status_code}")
    return HttpOutcome(status=response.status_code, body=body, error=error)
