from app.services.auth_service import (
    verify_password, get_password_hash, create_access_token,
    decode_access_token, authenticate_user, register_user,
)
from app.services.storage import Storage, SQLStorage, DebitResult, CreditResult
from app.services.quota_service import QuotaLedger
from app.services.llm_service import LLMService, Completion, StructuredCompletion
from app.services.qualtrics_service import QualtricsService, QualtricsCredentials
from app.services.stripe_service import StripeService
from app.services.billing_service import BillingService, WebhookOutcome
from app.services.survey_workflow import SurveyWorkflow, ChatResult, GenerationResult

__all__ = [
    "verify_password",
    "get_password_hash",
    "create_access_token",
    "decode_access_token",
    "authenticate_user",
    "register_user",
    "Storage",
    "SQLStorage",
    "DebitResult",
    "CreditResult",
    "QuotaLedger",
    "LLMService",
    "Completion",
    "StructuredCompletion",
    "QualtricsService",
    "QualtricsCredentials",
    "StripeService",
    "BillingService",
    "WebhookOutcome",
    "SurveyWorkflow",
    "ChatResult",
    "GenerationResult",
]
