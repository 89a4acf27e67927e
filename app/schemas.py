"""Pydantic schemas for API request/response validation.

JSON bodies use camelCase keys (the front end's convention); Python code uses
snake_case attribute names. Both spellings are accepted on input.
"""

from datetime import datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, EmailStr, field_validator


class CamelModel(BaseModel):
    class Config:
        populate_by_name = True
        from_attributes = True


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# ============ User Schemas ============

class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=6)
    email: Optional[EmailStr] = None


class UserLogin(BaseModel):
    username: str
    password: str


class UserResponse(CamelModel):
    id: int
    username: str
    email: Optional[str] = None
    token_balance: int = Field(alias="tokenBalance")
    qualtrics_configured: bool = Field(alias="qualtricsConfigured")
    created_at: datetime = Field(alias="createdAt")


class LoginResponse(CamelModel):
    access_token: str = Field(alias="accessToken")
    token_type: str = Field("bearer", alias="tokenType")
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


# ============ Chat Schemas ============

class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)


class ChatResponse(CamelModel):
    message: str
    token_balance: int = Field(alias="tokenBalance")
    tokens_used: int = Field(alias="tokensUsed")


# ============ Survey Schemas ============

class QuestionValidation(BaseModel):
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None


class SurveyQuestion(BaseModel):
    type: str = "text"
    text: str = Field(min_length=1)
    choices: Optional[List[str]] = None
    validation: Optional[QuestionValidation] = None


class SurveyDocument(BaseModel):
    """Structured survey drafted by the AI model."""
    title: str = Field(min_length=1)
    description: str = ""
    questions: List[SurveyQuestion] = Field(default_factory=list)


class GenerateSurveyRequest(BaseModel):
    prompt: Optional[str] = None


class GenerateSurveyResponse(CamelModel):
    survey_id: str = Field(alias="surveyId")
    survey_data: SurveyDocument = Field(alias="surveyData")
    token_balance: int = Field(alias="tokenBalance")


class SurveyResponse(CamelModel):
    id: int
    user_id: int = Field(alias="userId")
    qualtrics_id: str = Field(alias="qualtricsId")
    name: str
    created_at: datetime = Field(alias="createdAt")


# ============ Settings Schemas ============

class QualtricsSettingsRequest(CamelModel):
    qualtrics_api_token: str = Field(alias="qualtricsApiToken")
    qualtrics_datacenter: str = Field(alias="qualtricsDatacenter")
    qualtrics_brand_id: str = Field(alias="qualtricsBrandId")

    @field_validator("qualtrics_api_token", "qualtrics_datacenter", "qualtrics_brand_id")
    @classmethod
    def not_blank(cls, value: str) -> str:
        return _not_blank(value)


# ============ Token & Payment Schemas ============

class TokenTransactionResponse(CamelModel):
    id: int
    kind: str
    delta: int
    balance_after: int = Field(alias="balanceAfter")
    reason: Optional[str] = None
    reference: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")


class PaymentIntentRequest(BaseModel):
    type: Literal["subscription", "tokens"]


class PaymentIntentResponse(CamelModel):
    client_secret: str = Field(alias="clientSecret")


class PaymentConfigResponse(CamelModel):
    publishable_key: Optional[str] = Field(None, alias="publishableKey")


class WebhookAck(BaseModel):
    received: bool = True
