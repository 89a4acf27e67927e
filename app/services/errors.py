"""Domain errors raised by the services and rendered by the API layer.

Each error carries the HTTP status it maps to and may add extra fields to the
JSON error body (``to_body``).
"""

from typing import Any, Dict, Optional


class SurveyPilotError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message}


class NotFound(SurveyPilotError):
    status_code = 404


class UserNotFound(NotFound):
    def __init__(self, user_id: int):
        super().__init__("User not found")
        self.user_id = user_id


class ValidationFailed(SurveyPilotError):
    status_code = 400


class CredentialsInvalid(SurveyPilotError):
    status_code = 400


class WebhookSignatureInvalid(SurveyPilotError):
    status_code = 400


class InsufficientQuota(SurveyPilotError):
    """Balance too low. Always reports the current balance."""

    status_code = 402

    def __init__(self, token_balance: int, message: str = "Insufficient token balance"):
        super().__init__(message)
        self.token_balance = token_balance

    def to_body(self) -> Dict[str, Any]:
        return {"message": self.message, "tokenBalance": self.token_balance}


class InsufficientTokens(InsufficientQuota):
    """A specific debit amount exceeds the balance."""

    def __init__(self, token_balance: int, requested: int):
        super().__init__(
            token_balance,
            f"Insufficient tokens: requested {requested}, available {token_balance}",
        )
        self.requested = requested


class ExternalServiceError(SurveyPilotError):
    status_code = 500


class GenerationFailed(ExternalServiceError):
    """The AI provider failed or returned something unusable.

    ``tokens_used`` is non-zero when the provider billed the call anyway
    (e.g. a reply that could not be parsed).
    """

    def __init__(self, message: str, tokens_used: int = 0):
        super().__init__(message)
        self.tokens_used = tokens_used


class PlatformCallFailed(ExternalServiceError):
    """A Qualtrics call failed. ``remote_survey_id`` is set when a partial
    survey was already created on the platform."""

    def __init__(self, message: str, remote_survey_id: Optional[str] = None):
        super().__init__(message)
        self.remote_survey_id = remote_survey_id


class PaymentCallFailed(ExternalServiceError):
    pass


class SurveyPublishFailed(SurveyPilotError):
    """The AI call was paid for but the survey never reached the platform."""

    status_code = 502

    def __init__(self, message: str, tokens_charged: int, token_balance: int):
        super().__init__(message)
        self.tokens_charged = tokens_charged
        self.token_balance = token_balance

    def to_body(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "tokensCharged": self.tokens_charged,
            "tokenBalance": self.token_balance,
        }
