"""
Shared fixtures: in-memory database, stub AI / Qualtrics / Stripe collaborators
and an ASGI test client wired to them.
"""

import hashlib
import hmac
import json
import os
import time

# Settings are read at import time; point them at test values first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_PUBLISHABLE_KEY"] = "pk_test_123"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import update

from app.config import settings
from app.db import init_db, drop_db, async_session_maker, User
from app.main import app, attach_services
from app.schemas import SurveyDocument
from app.services import Completion, StructuredCompletion, StripeService


SAMPLE_SURVEY = {
    "title": "Customer Satisfaction",
    "description": "Tell us about your experience.",
    "questions": [
        {
            "type": "multiple_choice",
            "text": "How did you hear about us?",
            "choices": ["Search", "Friend", "Ad"],
            "validation": {"required": True},
        },
        {"type": "rating", "text": "How satisfied are you?", "choices": ["1", "2", "3", "4", "5"]},
        {"type": "text", "text": "Anything else?"},
    ],
}


class StubLLM:
    """Stands in for LLMService; charges a fixed cost per call."""

    def __init__(self, cost: int = 10):
        self.cost = cost
        self.error = None
        self.chat_calls = []
        self.survey_prompts = []
        self.document = SurveyDocument.model_validate(SAMPLE_SURVEY)

    async def complete(self, conversation):
        self.chat_calls.append(conversation)
        if self.error:
            raise self.error
        return Completion(text="What is your survey about?", tokens_used=self.cost, model="stub-model")

    async def generate_structured(self, prompt):
        self.survey_prompts.append(prompt)
        if self.error:
            raise self.error
        return StructuredCompletion(document=self.document, tokens_used=self.cost, model="stub-model")


class StubQualtrics:
    def __init__(self):
        self.accept_credentials = True
        self.error = None
        self.published = []

    async def verify_credentials(self, credentials):
        return self.accept_credentials

    async def create_survey(self, credentials, document):
        if self.error:
            raise self.error
        self.published.append((credentials, document))
        return "SV_123"


class RecordingStripeService(StripeService):
    """Real webhook verification; payment intents are recorded instead of sent."""

    def __init__(self):
        super().__init__(settings)
        self.intents = []

    async def create_intent(self, kind, amount, user_id):
        self.intents.append({"type": kind, "amount": amount, "user_id": user_id})
        return f"pi_{len(self.intents)}_secret_test"


def sign_payload(payload: str, secret: str = "whsec_test_secret") -> str:
    """Build a Stripe-Signature header the way Stripe does (v1 HMAC-SHA256)."""
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def payment_event(user_id, kind="tokens", intent_id="pi_test_1", event_id="evt_test_1",
                  event_type="payment_intent.succeeded", user_key="user_id") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "metadata": {"type": kind, user_key: str(user_id)},
            }
        },
    })


async def set_balance(user_id: int, balance: int) -> None:
    async with async_session_maker() as db:
        await db.execute(update(User).where(User.id == user_id).values(token_balance=balance))
        await db.commit()


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create a fresh database for each test"""
    await init_db()
    yield
    await drop_db()


@pytest.fixture
def llm():
    return StubLLM()


@pytest.fixture
def qualtrics():
    return StubQualtrics()


@pytest.fixture
def stripe_service():
    return RecordingStripeService()


@pytest_asyncio.fixture
async def client(llm, qualtrics, stripe_service):
    """Async test client with stub collaborators on app.state"""
    attach_services(app, llm=llm, qualtrics=qualtrics, stripe_service=stripe_service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def user(client: AsyncClient):
    """Registered user: {"id", "headers"}"""
    response = await client.post(
        "/api/register", json={"username": "researcher", "password": "secret123"}
    )
    assert response.status_code == 201
    user_id = response.json()["id"]

    response = await client.post(
        "/api/login", json={"username": "researcher", "password": "secret123"}
    )
    assert response.status_code == 200
    token = response.json()["accessToken"]
    return {"id": user_id, "headers": {"Authorization": f"Bearer {token}"}}


@pytest_asyncio.fixture
async def configured_user(client: AsyncClient, user):
    """Registered user with Qualtrics credentials saved"""
    response = await client.post(
        "/api/settings/qualtrics",
        headers=user["headers"],
        json={
            "qualtricsApiToken": "qt-token",
            "qualtricsDatacenter": "iad1",
            "qualtricsBrandId": "brand-1",
        },
    )
    assert response.status_code == 200
    return user
