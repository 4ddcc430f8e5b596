"""Webhook signature verification — constant-time HMAC over the raw body.

Security contract:
- The HMAC is computed over the exact bytes received, before JSON parsing
- Comparison uses hmac.compare_digest() (constant-time, no timing attacks)
- Verification failure -> 401 immediately, no payload processing
- Empty secret -> verification always fails (fail-closed)
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from enum import Enum

from lpo_uploader.errors import AuthenticationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-shopify-hmac-sha256"


def compute_signature(secret: str, body: bytes) -> str:
    """Base64-encoded HMAC-SHA256 of ``body``, as Shopify sends it."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify(secret: str, body: bytes, signature_header: str | None) -> bool:
    """Verify a Shopify webhook HMAC-SHA256 signature.

    Args:
        secret: Shared webhook secret
        body: Raw request body bytes
        signature_header: Value of X-Shopify-Hmac-SHA256 header

    Returns:
        True if signature is valid
    """
    if not secret:
        logger.warning("Webhook secret not set — rejecting webhook")
        return False
    if not signature_header:
        return False

    computed = compute_signature(secret, body)
    return hmac.compare_digest(
        computed.encode("ascii"), signature_header.strip().encode("utf-8", "replace")
    )


class VerificationState(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class WebhookAuthenticator:
    """Gate for one inbound delivery.

    Starts UNVERIFIED and moves once to VERIFIED or REJECTED. The raw body
    is captured at construction so nothing parsed or re-serialized can be
    signed by mistake.
    """

    def __init__(self, secret: str, body: bytes, signature_header: str | None):
        self._secret = secret
        self._body = bytes(body)
        self._signature = signature_header
        self.state = VerificationState.UNVERIFIED

    @property
    def body(self) -> bytes:
        return self._body

    def verify(self) -> bool:
        if self.state is VerificationState.UNVERIFIED:
            ok = verify_shopify(self._secret, self._body, self._signature)
            self.state = VerificationState.VERIFIED if ok else VerificationState.REJECTED
            if not ok:
                logger.warning(
                    "Webhook signature rejected (header %s)",
                    "present" if self._signature else "missing",
                )
        return self.state is VerificationState.VERIFIED

    def require_verified(self) -> bytes:
        """Return the verified raw body, or raise AuthenticationError."""
        if not self.verify():
            raise AuthenticationError()
        return self._body
