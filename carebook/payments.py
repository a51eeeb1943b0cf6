"""
Stripe payment collaborator.

Only two things matter to booking: whether payments are configured and creating
a PaymentIntent. Signature verification backs the payment webhook endpoint.
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import STRIPE_API_BASE, STRIPE_SECRET_KEY
from .errors import AppError

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
WEBHOOK_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str


class PaymentGateway:
    """Thin Stripe REST client"""

    def __init__(self, secret_key: Optional[str] = STRIPE_SECRET_KEY, api_base: str = STRIPE_API_BASE):
        self.secret_key = secret_key
        self.api_base = api_base

    def is_configured(self) -> bool:
        return bool(self.secret_key)

    def create_payment_intent(self, amount_cents: int, currency: str, metadata: dict) -> PaymentIntent:
        data = {
            "amount": str(amount_cents),
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = str(value)

        try:
            response = httpx.post(
                f"{self.api_base}/payment_intents",
                data=data,
                auth=(self.secret_key or "", ""),
                timeout=20.0,
            )
        except httpx.HTTPError as e:
            logger.error(f"❌ Stripe request failed: {e}")
            raise AppError("Failed to create payment intent", code="PAYMENT_INTENT_ERROR", status_code=500)

        if response.status_code >= 400:
            logger.error(f"❌ Stripe PaymentIntent error: HTTP {response.status_code} {response.text[:200]}")
            raise AppError("Failed to create payment intent", code="PAYMENT_INTENT_ERROR", status_code=500)

        body = response.json()
        logger.info(f"✅ Created PaymentIntent {body['id']} for {amount_cents} {currency}")
        return PaymentIntent(id=body["id"], client_secret=body["client_secret"])


def get_payment_gateway() -> PaymentGateway:
    """Dependency injection for the payment gateway"""
    return PaymentGateway()


def compute_stripe_signature(secret: str, timestamp: str, payload: bytes) -> str:
    signed = timestamp.encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_stripe_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: Optional[int] = None,
) -> bool:
    """Check a Stripe-Signature header (t=...,v1=...) against the raw body"""
    if not signature_header or not secret:
        return False

    parts = {}
    signatures = []
    for item in signature_header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "v1":
            signatures.append(value)
        else:
            parts[key] = value

    timestamp = parts.get("t")
    if not timestamp or not signatures:
        return False

    try:
        age = abs((now if now is not None else int(time.time())) - int(timestamp))
    except ValueError:
        return False
    if age > tolerance:
        logger.warning(f"🚫 Stripe webhook timestamp too old: {age}s (max: {tolerance}s)")
        return False

    expected = compute_stripe_signature(secret, timestamp, payload)
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)
