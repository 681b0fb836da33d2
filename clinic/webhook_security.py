"""
Calendly webhook signatures

Calendly signs each delivery with the subscription's signing key. The raw
body is read once, checked, and handed back so the route can parse it.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Deliveries signed more than five minutes ago are treated as replays
SIGNATURE_TOLERANCE_SECONDS = 300

CALENDLY_SIGNATURE_HEADER = "Calendly-Webhook-Signature"


def signatures_match(expected: str, received: str) -> bool:
    if not expected or not received:
        return False
    return hmac.compare_digest(expected, received)


def hmac_hex(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(
    timestamp: Optional[str],
    max_age: int = SIGNATURE_TOLERANCE_SECONDS,
    now: Optional[int] = None,
) -> bool:
    """True when `timestamp` (Unix seconds, as sent in the header) is within max_age of now"""
    if not timestamp:
        return False

    try:
        signed_at = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Unreadable Calendly signature timestamp: {timestamp}")
        return False

    skew = abs((int(time.time()) if now is None else now) - signed_at)
    if skew > max_age:
        logger.warning(f"🚫 Calendly signature outside tolerance: {skew}s (max: {max_age}s)")
        return False
    return True


def parse_signature_header(header: str) -> dict[str, str]:
    """Split "t=<ts>,v1=<hex>" into its parts. Malformed items are skipped."""
    parts = {}
    for item in header.split(","):
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        parts[key.strip()] = value.strip()
    return parts


def check_calendly_signature(
    secret: str, raw_body: bytes, signature_header: str, now: Optional[int] = None
) -> bool:
    """
    Check a Calendly signature header against the raw body.

    Two formats are accepted:
    - "t=<timestamp>,v1=<hex>": HMAC of "<timestamp>.<body>", timestamp within 5 minutes
    - "sha256=<hex>": HMAC of the body
    """
    if not signature_header:
        return False

    if signature_header.startswith("sha256="):
        expected_header = f"sha256={hmac_hex(secret, raw_body)}"
        return signatures_match(expected_header, signature_header)

    elements = parse_signature_header(signature_header)
    timestamp = elements.get("t")
    signature = elements.get("v1")
    if not timestamp or not signature:
        logger.warning("🚫 Calendly webhook invalid signature format")
        return False

    if not verify_timestamp(timestamp, now=now):
        return False

    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected_signature = hmac_hex(secret, signed_payload)
    return signatures_match(expected_signature, signature)


async def verify_calendly_webhook(request: Request, secret: Optional[str]) -> bytes:
    """
    Read the body and check it against the Calendly-Webhook-Signature header.

    Without a signing key the check is skipped with a warning, for local
    setups that have no webhook subscription. Returns the raw body; a bad or
    missing signature is a 401.
    """
    raw_body = await request.body()

    if not secret:
        logger.warning("⚠️ CALENDLY_WEBHOOK_SIGNING_KEY not set, skipping signature verification")
        return raw_body

    signature_header = request.headers.get(CALENDLY_SIGNATURE_HEADER, "")
    if not signature_header:
        logger.warning("🚫 Calendly webhook missing signature header")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    if not check_calendly_signature(secret, raw_body, signature_header):
        logger.warning("🚫 Calendly webhook signature mismatch")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    logger.debug("✅ Calendly webhook signature verified")
    return raw_body


def create_webhook_signature(
    secret: str, payload: bytes, timestamp: Optional[int] = None, legacy: bool = False
) -> str:
    """
    Create a Calendly-style signature header for a payload.

    Args:
        secret: Signing key
        payload: Request body bytes
        timestamp: Unix time to sign with (defaults to now)
        legacy: Produce the "sha256=<hex>" form instead of "t=...,v1=..."
    """
    if legacy:
        return f"sha256={hmac_hex(secret, payload)}"

    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac_hex(secret, str(timestamp).encode("utf-8") + b"." + payload)
    return f"t={timestamp},v1={signature}"
