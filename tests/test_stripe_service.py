"""
Stripe service and billing tests - stripe.StripeClient is patched; webhook
signatures are computed with the real scheme.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from conftest import payment_event, sign_payload
from app.config import Settings
from app.db import async_session_maker
from app.services import BillingService, QuotaLedger, SQLStorage, StripeService
from app.services.errors import PaymentCallFailed, ValidationFailed, WebhookSignatureInvalid


def _settings(**overrides) -> Settings:
    values = {
        "stripe_secret_key": "sk_test_123",
        "stripe_webhook_secret": "whsec_test_secret",
    }
    values.update(overrides)
    return Settings(**values)


# ── Payment intents ─────────────────────────────────────

class TestCreateIntent:
    @pytest.mark.asyncio
    async def test_creates_intent_with_metadata(self):
        intent = SimpleNamespace(id="pi_1", client_secret="pi_1_secret_abc")
        with patch("app.services.stripe_service.stripe.StripeClient") as client_cls:
            client_cls.return_value.payment_intents.create.return_value = intent

            secret = await StripeService(_settings()).create_intent("tokens", 1000, 7)

        assert secret == "pi_1_secret_abc"
        client_cls.assert_called_once_with("sk_test_123")
        params = client_cls.return_value.payment_intents.create.call_args.kwargs["params"]
        assert params["amount"] == 1000
        assert params["currency"] == "usd"
        assert params["metadata"] == {"type": "tokens", "user_id": "7"}

    @pytest.mark.asyncio
    async def test_stripe_error(self):
        with patch("app.services.stripe_service.stripe.StripeClient") as client_cls:
            client_cls.return_value.payment_intents.create.side_effect = stripe.StripeError("card declined")

            with pytest.raises(PaymentCallFailed):
                await StripeService(_settings()).create_intent("tokens", 1000, 7)

    @pytest.mark.asyncio
    async def test_missing_secret_key(self):
        with pytest.raises(PaymentCallFailed):
            await StripeService(_settings(stripe_secret_key=None)).create_intent("tokens", 1000, 7)


# ── Webhook verification ────────────────────────────────

class TestVerifyWebhook:
    def test_valid_signature(self):
        payload = payment_event(7)
        event = StripeService(_settings()).verify_webhook(payload.encode(), sign_payload(payload))
        assert isinstance(event, dict)
        assert event["type"] == "payment_intent.succeeded"
        assert event["data"]["object"]["metadata"]["user_id"] == "7"

    def test_wrong_secret(self):
        payload = payment_event(7)
        with pytest.raises(WebhookSignatureInvalid):
            StripeService(_settings()).verify_webhook(
                payload.encode(), sign_payload(payload, secret="whsec_other")
            )

    def test_tampered_payload(self):
        payload = payment_event(7)
        header = sign_payload(payload)
        tampered = payment_event(8)
        with pytest.raises(WebhookSignatureInvalid):
            StripeService(_settings()).verify_webhook(tampered.encode(), header)


# ── Billing ─────────────────────────────────────────────

class TestBilling:
    def _billing(self, stripe_service=None):
        storage = SQLStorage(async_session_maker)
        ledger = QuotaLedger(storage)
        options = _settings().purchase_options
        return storage, BillingService(ledger, stripe_service or MagicMock(), options)

    @pytest.mark.asyncio
    async def test_unknown_purchase_type(self):
        _, billing = self._billing()
        with pytest.raises(ValidationFailed):
            await billing.create_payment_intent(1, "lifetime")

    @pytest.mark.asyncio
    async def test_apply_event_credits_once_per_intent(self):
        storage, billing = self._billing()
        user = await storage.create_user(username="buyer", hashed_password=None, starting_balance=0)
        event = {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_9", "metadata": {"type": "subscription", "user_id": str(user.id)}}},
        }

        first = await billing.apply_event(event)
        # Stripe may resend the same intent under a new event id
        second = await billing.apply_event(dict(event, id="evt_2"))

        assert first.credited is True
        assert first.tokens == 20000
        assert second.credited is False
        assert second.duplicate is True
        assert (await storage.get_user(user.id)).token_balance == 20000

    @pytest.mark.asyncio
    async def test_apply_event_without_data(self):
        _, billing = self._billing()
        outcome = await billing.apply_event({"id": "evt_4", "type": "payment_intent.succeeded", "data": None})
        assert outcome.credited is False
        assert outcome.duplicate is False

    @pytest.mark.asyncio
    async def test_apply_event_bad_metadata(self):
        _, billing = self._billing()
        outcome = await billing.apply_event({
            "id": "evt_3",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_3", "metadata": {"type": "tokens", "user_id": "abc"}}},
        })
        assert outcome.credited is False
        assert outcome.duplicate is False
