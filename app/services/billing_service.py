"""
Billing - token purchases through Stripe.

The front end asks for a payment intent for a purchase kind; Stripe later
reports ``payment_intent.succeeded`` to the webhook, which credits the tokens
for that kind. Credits are keyed by payment intent id, so a replayed event
never credits twice.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.services.errors import UserNotFound, ValidationFailed
from app.services.quota_service import QuotaLedger
from app.services.stripe_service import StripeService

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


@dataclass
class WebhookOutcome:
    event_type: str
    credited: bool = False
    user_id: Optional[int] = None
    tokens: int = 0
    duplicate: bool = False


class BillingService:
    def __init__(
        self,
        ledger: QuotaLedger,
        stripe_service: StripeService,
        purchase_options: Dict[str, Dict[str, int]],
    ):
        self.ledger = ledger
        self.stripe = stripe_service
        self.purchase_options = purchase_options

    def _option(self, kind: str) -> Dict[str, int]:
        option = self.purchase_options.get(kind)
        if not option:
            raise ValidationFailed(f"Unknown purchase type: {kind}")
        return option

    async def create_payment_intent(self, user_id: int, kind: str) -> str:
        option = self._option(kind)
        return await self.stripe.create_intent(kind, option["amount_cents"], user_id)

    async def handle_webhook(self, payload: bytes, sig_header: str) -> WebhookOutcome:
        event = self.stripe.verify_webhook(payload, sig_header)
        return await self.apply_event(event)

    async def apply_event(self, event: Dict[str, Any]) -> WebhookOutcome:
        """Credit tokens for a verified Stripe event."""
        event_type = event.get("type", "")
        outcome = WebhookOutcome(event_type=event_type)
        if event_type != PAYMENT_SUCCEEDED:
            logger.debug("Ignoring Stripe event %s", event_type)
            return outcome

        intent = (event.get("data") or {}).get("object") or {}
        metadata = intent.get("metadata") or {}
        kind = metadata.get("type")
        option = self.purchase_options.get(kind or "")
        try:
            user_id = int(metadata.get("user_id") or metadata.get("userId"))
        except (TypeError, ValueError):
            user_id = None

        if option is None or user_id is None:
            logger.warning("Stripe event %s has unusable metadata: %s", event.get("id"), metadata)
            return outcome

        idempotency_key = f"stripe:{intent.get('id') or event.get('id')}"
        try:
            result = await self.ledger.credit(
                user_id,
                option["tokens"],
                reason=f"Stripe payment ({kind})",
                reference=event.get("id"),
                idempotency_key=idempotency_key,
            )
        except UserNotFound:
            logger.warning("Stripe event %s references unknown user %s", event.get("id"), user_id)
            return outcome

        outcome.user_id = user_id
        outcome.credited = result.applied
        outcome.duplicate = not result.applied
        outcome.tokens = option["tokens"] if result.applied else 0
        return outcome
