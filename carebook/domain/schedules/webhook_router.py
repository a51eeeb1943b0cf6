"""
Stripe Webhook Handler
Confirms or cancels capacity bookings when a payment intent settles
"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...config import STRIPE_WEBHOOK_SECRET
from ...database import get_db
from ...notifications import AppointmentNotifier
from ...payments import verify_stripe_signature
from .service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/stripe", tags=["webhooks"])

SUCCEEDED_EVENTS = ("payment_intent.succeeded",)
FAILED_EVENTS = ("payment_intent.payment_failed", "payment_intent.canceled")


@router.post("")
async def handle_stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Handle Stripe payment intent events

    Events handled:
    - payment_intent.succeeded - confirm the booking (or mark it OVERFLOW)
    - payment_intent.payment_failed / payment_intent.canceled - cancel the pending booking
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    if not STRIPE_WEBHOOK_SECRET:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured, rejecting webhook")
        raise HTTPException(status_code=503, detail="Webhook secret not configured")

    if not verify_stripe_signature(body, signature, STRIPE_WEBHOOK_SECRET):
        logger.error("❌ Invalid Stripe webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body.decode("utf-8"))
    except json.JSONDecodeError:
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    event_type = payload.get("type")
    intent = payload.get("data", {}).get("object", {})
    payment_intent_id = intent.get("id")
    logger.info(f"📥 Received Stripe webhook: {event_type} ({payment_intent_id})")

    if not payment_intent_id:
        return {"status": "ignored", "event_type": event_type}

    service = ScheduleService(db, notifier=AppointmentNotifier(background_tasks))
    if event_type in SUCCEEDED_EVENTS:
        service.handle_payment_succeeded(payment_intent_id)
    elif event_type in FAILED_EVENTS:
        service.handle_payment_failed(payment_intent_id)
    else:
        logger.info(f"ℹ️ Unhandled event type: {event_type}")

    return {"status": "success", "event_type": event_type}
