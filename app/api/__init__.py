from app.api.auth import router as auth_router, get_current_user
from app.api.chat import router as chat_router
from app.api.surveys import router as surveys_router
from app.api.qualtrics_settings import router as qualtrics_settings_router
from app.api.payments import router as payments_router
from app.api.webhooks import router as webhooks_router

__all__ = [
    "auth_router",
    "chat_router",
    "surveys_router",
    "qualtrics_settings_router",
    "payments_router",
    "webhooks_router",
    "get_current_user",
]
