"""
HMAC-SHA256 webhook signature verification.

The provider's signature header has been observed both as hex and as base64,
so both encodings of the same digest are accepted.
"""

import base64
import hashlib
import hmac

import structlog

from wellbeing_webhooks.domain.errors import AuthenticationError

logger = structlog.get_logger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 digest of the raw body, the format the provider sends by default."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class SignatureVerifier:
    """Validates inbound requests against an optional shared secret."""

    def __init__(self, secret: str | None) -> None:
        self.secret = secret or None
        self.logger = logger.bind(component="signature_verifier")

    @property
    def open_mode(self) -> bool:
        return self.secret is None

    def matches(self, signature: str, body: bytes) -> bool:
        """Constant-time comparison against both hex and base64 encodings."""
        if self.secret is None:
            return True

        digest = hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).digest()
        expected_hex = digest.hex()
        expected_b64 = base64.b64encode(digest).decode("ascii")
        candidate = signature.strip()
        # Digests are ASCII; compare_digest rejects non-ASCII str operands
        if not candidate.isascii():
            return False

        return hmac.compare_digest(candidate.lower(), expected_hex) or hmac.compare_digest(
            candidate, expected_b64
        )

    def verify(self, signature: str | None, body: bytes) -> None:
        """Raise AuthenticationError unless the request is acceptable."""
        if self.open_mode:
            self.logger.warning("signature_verification_skipped", reason="no_secret_configured")
            return

        if not signature:
            self.logger.error("signature_missing", payload_length=len(body))
            raise AuthenticationError("X-Signature header is missing")

        if not self.matches(signature, body):
            self.logger.error(
                "signature_mismatch",
                signature_prefix=signature[:8],
                payload_length=len(body),
            )
            raise AuthenticationError("Invalid signature")

        self.logger.debug("signature_verified")
