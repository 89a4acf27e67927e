"""
Chat API - token-metered conversation with the survey assistant.

The full conversation is sent with every request and is not stored; the
response carries the assistant reply and the balance after charging the
provider-reported cost.
"""

from fastapi import APIRouter, Depends

from app.api.auth import get_current_user
from app.api.deps import get_workflow
from app.db import User
from app.schemas import ChatRequest, ChatResponse
from app.services import SurveyWorkflow

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    current_user: User = Depends(get_current_user),
    workflow: SurveyWorkflow = Depends(get_workflow),
):
    """
    Send the conversation and get the assistant's reply.

    402 with the current balance when the user has no tokens left; the AI
    provider is not called in that case.
    """
    result = await workflow.chat(current_user.id, request.messages)
    return ChatResponse(
        message=result.message,
        token_balance=result.token_balance,
        tokens_used=result.tokens_used,
    )
