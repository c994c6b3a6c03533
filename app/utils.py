"""
Utility functions for validation and webhook signatures.
"""

import hashlib
import hmac
import logging
import re
import time
from typing import Optional

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Stripe rejects signatures older than this many seconds by default
SIGNATURE_TOLERANCE_SECONDS = 300


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value))


def is_valid_e164(value: str) -> bool:
    """E.164-like phone number: starts with +, then digits only."""
    return len(value) >= 2 and value.startswith("+") and value[1:].isdigit()


def compute_stripe_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Verify a Stripe-Signature header.

    The header looks like ``t=1700000000,v1=<hex>,v1=<hex>``; the signature is
    an HMAC-SHA256 of ``"<t>.<raw body>"`` keyed with the endpoint secret.

    Args:
        payload: Raw request body bytes
        header: Value of the Stripe-Signature header
        secret: Webhook endpoint signing secret
        tolerance: Maximum allowed age of the timestamp in seconds
        now: Current unix time, for tests

    Returns:
        True if any v1 signature matches and the timestamp is fresh
    """
    if not header:
        logger.info("Missing Stripe-Signature header")
        return False

    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if timestamp is None or not timestamp.isdigit() or not signatures:
        logger.info("Malformed Stripe-Signature header")
        return False

    current = time.time() if now is None else now
    if abs(current - int(timestamp)) > tolerance:
        logger.info("Stripe signature timestamp outside tolerance")
        return False

    expected = compute_stripe_signature(payload, int(timestamp), secret)
    # Use constant-time comparison to prevent timing attacks
    is_valid = any(hmac.compare_digest(expected, sig) for sig in signatures)
    logger.info(f"Stripe signature verification: {'valid' if is_valid else 'invalid'}")
    return is_valid
