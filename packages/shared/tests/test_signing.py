"""Tests for webhook payload signing."""

import hashlib
import hmac

from shared.signing import SIGNATURE_HEADER, sign_payload, verify_signature

PAYLOAD = '{"event":"lead.created","submissionId":"s1"}'
SECRET = "whsec_test"


class TestSignPayload:
    """Tests for sign_payload."""

    def test_format(self):
        """Signatures are sha256= followed by 64 hex chars."""
        signature = sign_payload(PAYLOAD, SECRET)
        assert signature.startswith("sha256=")
        digest = signature.removeprefix("sha256=")
        assert len(digest) == 64
        int(digest, 16)

    def test_matches_hmac_sha256(self):
        """Signature is HMAC-SHA256 of the payload with the secret."""
        expected = hmac.new(SECRET.encode(), PAYLOAD.encode(), hashlib.sha256).hexdigest()
        assert sign_payload(PAYLOAD, SECRET) == f"sha256={expected}"

    def test_str_and_bytes_agree(self):
        """Signing the UTF-8 bytes gives the same result as the string."""
        text = '{"name":"Zoë"}'
        assert sign_payload(text, SECRET) == sign_payload(text.encode("utf-8"), SECRET)

    def test_deterministic(self):
        """Same inputs, same signature."""
        assert sign_payload(PAYLOAD, SECRET) == sign_payload(PAYLOAD, SECRET)

    def test_header_name(self):
        """Receivers read the X-Signature header."""
        assert SIGNATURE_HEADER == "X-Signature"


class TestVerifySignature:
    """Tests for verify_signature."""

    def test_round_trip(self):
        """A signature verifies against the payload and secret it was made with."""
        assert verify_signature(PAYLOAD, sign_payload(PAYLOAD, SECRET), SECRET)

    def test_tampered_payload(self):
        """Changing a single byte of the payload fails verification."""
        signature = sign_payload(PAYLOAD, SECRET)
        tampered = PAYLOAD.replace("s1", "s2")
        assert not verify_signature(tampered, signature, SECRET)

    def test_wrong_secret(self):
        """A different secret fails verification."""
        signature = sign_payload(PAYLOAD, SECRET)
        assert not verify_signature(PAYLOAD, signature, "other")

    def test_malformed_signature(self):
        """Signatures of the wrong length or format fail without raising."""
        assert not verify_signature(PAYLOAD, "sha256=abc", SECRET)
        assert not verify_signature(PAYLOAD, "", SECRET)
