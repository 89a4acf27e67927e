"""
Webhook endpoints for external event triggers.

POST /api/webhooks/stripe - Stripe events (no auth, verified by signature)
"""

import logging

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_billing
from app.schemas import WebhookAck
from app.services import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    billing: BillingService = Depends(get_billing),
):
    """
    Credits tokens on ``payment_intent.succeeded``. Every verified event is
    acknowledged with 200 so Stripe stops retrying; a bad signature is 400.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    outcome = await billing.handle_webhook(payload, sig_header)
    if outcome.credited:
        logger.info(f"Stripe {outcome.event_type}: credited {outcome.tokens} tokens to user {outcome.user_id}")
    elif outcome.duplicate:
        logger.info(f"Stripe {outcome.event_type}: already credited for user {outcome.user_id}")
    return WebhookAck()
