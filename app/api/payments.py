"""
Token purchase endpoints.

POST /api/create-payment-intent - start a Stripe payment for a purchase type (authenticated)
GET  /api/payments/config       - publishable key for Stripe.js
GET  /api/tokens/history        - the caller's token ledger (authenticated)
"""

from typing import List

from fastapi import APIRouter, Depends, Query

from app.api.auth import get_current_user
from app.api.deps import get_billing, get_storage
from app.config import settings
from app.db import User
from app.schemas import (
    PaymentIntentRequest, PaymentIntentResponse, PaymentConfigResponse, TokenTransactionResponse
)
from app.services import BillingService, Storage

router = APIRouter(tags=["payments"])


@router.post("/create-payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    body: PaymentIntentRequest,
    current_user: User = Depends(get_current_user),
    billing: BillingService = Depends(get_billing),
):
    """Price is decided server-side from the purchase type."""
    client_secret = await billing.create_payment_intent(current_user.id, body.type)
    return PaymentIntentResponse(client_secret=client_secret)


@router.get("/payments/config", response_model=PaymentConfigResponse)
async def payment_config():
    return PaymentConfigResponse(publishable_key=settings.stripe_publishable_key)


@router.get("/tokens/history", response_model=List[TokenTransactionResponse])
async def token_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """Most recent balance changes first."""
    entries = await storage.get_token_history(current_user.id, limit=limit)
    return [TokenTransactionResponse.model_validate(e) for e in entries]
