"""HMAC-SHA256 payload signing for outbound webhooks.

Signatures are formatted as ``sha256=<hex digest>`` and sent in the
``X-Signature`` header. Receivers recompute the digest over the exact
request body bytes with the shared secret.
"""

import hashlib
import hmac

SIGNATURE_HEADER = "X-Signature"
SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def sign_payload(payload: str | bytes, secret: str) -> str:
    """Sign a raw payload with the shared secret.

    Args:
        payload: The exact body that will be sent (str is UTF-8 encoded).
        secret: Shared webhook secret.

    Returns:
        Signature string in the form ``sha256=<hex>``.
    """
    digest = hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256)
    return f"{SIGNATURE_PREFIX}{digest.hexdigest()}"


def verify_signature(payload: str | bytes, signature: str, secret: str) -> bool:
    """Check a signature against the payload using a constant-time compare."""
    expected = sign_payload(payload, secret)
    return hmac.compare_digest(_to_bytes(signature), _to_bytes(expected))
