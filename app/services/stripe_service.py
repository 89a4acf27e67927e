"""
Stripe integration: payment intents for token purchases and webhook
signature verification.
"""

import asyncio
import logging
from typing import Any, Dict

import stripe

from app.config import Settings
from app.services.errors import PaymentCallFailed, WebhookSignatureInvalid

logger = logging.getLogger(__name__)


class StripeService:
    def __init__(self, config: Settings):
        self.secret_key = config.stripe_secret_key
        self.webhook_secret = config.stripe_webhook_secret
        self.currency = config.stripe_currency

    def _get_stripe_client(self) -> stripe.StripeClient:
        if not self.secret_key:
            raise PaymentCallFailed("STRIPE_SECRET_KEY is not configured")
        return stripe.StripeClient(self.secret_key)

    async def create_intent(self, kind: str, amount: int, user_id: int) -> str:
        """
        Create a PaymentIntent for ``amount`` cents and return its client secret.

        The purchase kind and user id travel in the metadata so the
        ``payment_intent.succeeded`` webhook knows whom to credit and how much.
        """
        client = self._get_stripe_client()
        params = {
            "amount": amount,
            "currency": self.currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {
                "type": kind,
                "user_id": str(user_id),
            },
        }
        try:
            intent = await asyncio.to_thread(client.payment_intents.create, params=params)
        except stripe.StripeError as exc:
            logger.error("Stripe payment intent creation failed: %s", exc)
            raise PaymentCallFailed(exc.user_message or str(exc))

        logger.info("Created payment intent %s (%s, %d cents) for user %s", intent.id, kind, amount, user_id)
        return intent.client_secret

    def verify_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Verify a Stripe webhook signature and return the parsed event dict.

        Raises WebhookSignatureInvalid if the signature or payload is bad.
        """
        if not self.webhook_secret:
            raise PaymentCallFailed("STRIPE_WEBHOOK_SECRET is not configured")

        try:
            event = stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except stripe.SignatureVerificationError:
            logger.warning("Stripe webhook signature verification failed")
            raise WebhookSignatureInvalid("Invalid webhook signature")
        except ValueError:
            logger.warning("Stripe webhook payload is not valid JSON")
            raise WebhookSignatureInvalid("Invalid webhook payload")

        return dict(event)
