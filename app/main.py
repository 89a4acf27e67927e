"""
SurveyPilot - Main Application Entry Point
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.db import init_db, async_session_maker
from app.api import (
    auth_router,
    chat_router,
    surveys_router,
    qualtrics_settings_router,
    payments_router,
    webhooks_router,
)
from app.services import (
    BillingService,
    LLMService,
    QualtricsService,
    QuotaLedger,
    SQLStorage,
    Storage,
    StripeService,
    SurveyWorkflow,
)
from app.services.errors import SurveyPilotError
from app.structured_logging import configure_logging, generate_request_id, set_request_context

logger = logging.getLogger(__name__)

# Global start time for uptime tracking
_app_start_time = None


def attach_services(
    app: FastAPI,
    storage: Optional[Storage] = None,
    llm: Optional[LLMService] = None,
    qualtrics: Optional[QualtricsService] = None,
    stripe_service: Optional[StripeService] = None,
) -> None:
    """Build the service graph and hang it off ``app.state``.

    Any collaborator can be passed in to replace the real one.
    """
    storage = storage or SQLStorage(async_session_maker)
    ledger = QuotaLedger(storage)
    llm = llm or LLMService(settings)
    qualtrics = qualtrics or QualtricsService(settings)
    stripe_service = stripe_service or StripeService(settings)

    app.state.storage = storage
    app.state.ledger = ledger
    app.state.qualtrics = qualtrics
    app.state.workflow = SurveyWorkflow(storage, ledger, llm, qualtrics)
    app.state.billing = BillingService(ledger, stripe_service, settings.purchase_options)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup and shutdown"""
    global _app_start_time
    _app_start_time = time.time()

    configure_logging(settings.log_level, json_logs=settings.log_json)
    settings.validate_required()

    logger.info("SurveyPilot starting up...")
    await init_db()
    logger.info("Database initialized")

    attach_services(app)
    logger.info(f"Services ready (model: {settings.openai_model})")

    yield

    logger.info("SurveyPilot shutdown complete.")


app = FastAPI(
    title=settings.app_name,
    description="AI survey generator with token quotas, Qualtrics publishing and Stripe top-ups",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    set_request_context(request_id=request_id, user_id=None)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(SurveyPilotError)
async def surveypilot_error_handler(request: Request, exc: SurveyPilotError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Include routers
app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(chat_router, prefix=settings.api_prefix)
app.include_router(surveys_router, prefix=settings.api_prefix)
app.include_router(qualtrics_settings_router, prefix=settings.api_prefix)
app.include_router(payments_router, prefix=settings.api_prefix)
app.include_router(webhooks_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "name": settings.app_name,
        "status": "healthy",
        "version": "1.0.0",
    }


@app.get("/health")
async def health():
    """Detailed health check with a database probe and uptime."""
    db_status = "connected"
    try:
        async with async_session_maker() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"error: {e}"

    uptime = time.time() - _app_start_time if _app_start_time else 0

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": "1.0.0",
        "uptime_seconds": round(uptime, 1),
        "database": db_status,
        "chat_model": settings.openai_model,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
