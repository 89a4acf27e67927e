"""
Survey endpoints.

POST /api/surveys/generate - draft a survey with the AI model and publish it to Qualtrics
GET  /api/surveys          - list the caller's published surveys
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from app.api.auth import get_current_user
from app.api.deps import get_storage, get_workflow
from app.db import User
from app.schemas import GenerateSurveyRequest, GenerateSurveyResponse, SurveyResponse
from app.services import Storage, SurveyWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/surveys", tags=["surveys"])


@router.post("/generate", response_model=GenerateSurveyResponse)
async def generate_survey(
    body: GenerateSurveyRequest,
    current_user: User = Depends(get_current_user),
    workflow: SurveyWorkflow = Depends(get_workflow),
):
    """
    Generate a survey from a natural-language prompt.

    - 400: prompt missing or Qualtrics credentials not set
    - 402: no tokens left
    - 502: generated and charged, but Qualtrics rejected it (no survey saved)
    """
    result = await workflow.generate_survey(current_user.id, body.prompt)
    logger.info("User %s published survey %s", current_user.id, result.survey_id)
    return GenerateSurveyResponse(
        survey_id=result.survey_id,
        survey_data=result.document,
        token_balance=result.token_balance,
    )


@router.get("", response_model=List[SurveyResponse])
async def list_surveys(
    current_user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """Return the caller's surveys, newest first."""
    surveys = await storage.get_user_surveys(current_user.id)
    return [SurveyResponse.model_validate(s) for s in surveys]
