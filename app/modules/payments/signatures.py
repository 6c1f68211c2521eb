"""HMAC signature checks for payment gateway callbacks."""

from __future__ import annotations

import hashlib
import hmac
import logging

from app.shared.exceptions import SignatureVerificationException

logger = logging.getLogger(__name__)


def compute_signature(body: bytes | str, secret: str) -> str:
    """Return hex HMAC-SHA256 of ``body`` keyed with ``secret``."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> None:
    """Raise ``SignatureVerificationException`` unless ``signature`` signs the raw body."""
    if not signature:
        raise SignatureVerificationException("No signature provided")
    if not secret:
        logger.error("Webhook secret is not configured, rejecting delivery")
        raise SignatureVerificationException("Invalid signature")

    expected = compute_signature(body, secret)
    if not hmac.compare_digest(expected, signature.strip()):
        raise SignatureVerificationException("Invalid signature")


def verify_checkout_signature(order_id: str, payment_id: str, signature: str, key_secret: str) -> bool:
    """Check the signature returned to the browser by the checkout widget."""
    if not key_secret or not signature:
        return False
    expected = compute_signature(f"{order_id}|{payment_id}", key_secret)
    return hmac.compare_digest(expected, signature)
