"""HMAC signature checks for payment provider webhooks.

A provider with no configured secret is let through with a warning so local
development works without real credentials. With a secret configured, a
missing or malformed signature is always rejected.
"""
import hashlib
import hmac
import logging
import time
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

STRIPE_TOLERANCE_SECONDS = 300


def compute_signature(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def _hex_equal(received: str, expected: str) -> bool:
    try:
        received_bytes = bytes.fromhex(received.strip())
        expected_bytes = bytes.fromhex(expected)
    except ValueError:
        return False
    if len(received_bytes) != len(expected_bytes):
        return False
    return hmac.compare_digest(received_bytes, expected_bytes)


def verify_hex_signature(provider: str, payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Check a plain hex HMAC-SHA256 of the raw body (Revolut, PayPal)."""
    if not secret:
        logger.warning("%s webhook secret not configured; skipping signature verification", provider)
        return True
    if not signature:
        logger.error("Missing %s webhook signature", provider)
        return False
    return _hex_equal(signature, compute_signature(secret, payload))


def verify_revolut_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    return verify_hex_signature("Revolut", payload, signature, secret)


def verify_paypal_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    return verify_hex_signature("PayPal", payload, signature, secret)


def parse_stripe_header(header: str) -> Optional[Tuple[int, List[str]]]:
    """Split a `t=...,v1=...` header into the timestamp and its v1 signatures."""
    parts: Dict[str, List[str]] = {}
    for element in header.split(","):
        key, sep, value = element.strip().partition("=")
        if sep and key and value:
            parts.setdefault(key, []).append(value)
    if "t" not in parts or "v1" not in parts:
        return None
    try:
        timestamp = int(parts["t"][0])
    except ValueError:
        return None
    return timestamp, parts["v1"]


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: Optional[str],
    now: Optional[int] = None,
    tolerance: int = STRIPE_TOLERANCE_SECONDS,
) -> bool:
    if not secret:
        logger.warning("Stripe webhook secret not configured; skipping signature verification")
        return True
    if not header:
        logger.error("Missing Stripe webhook signature")
        return False
    parsed = parse_stripe_header(header)
    if parsed is None:
        logger.error("Invalid Stripe signature format")
        return False
    timestamp, signatures = parsed
    current = int(time.time()) if now is None else now
    if abs(current - timestamp) > tolerance:
        logger.error("Stripe webhook signature timestamp outside tolerance")
        return False
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    expected = compute_signature(secret, signed_payload)
    return any(_hex_equal(signature, expected) for signature in signatures)
