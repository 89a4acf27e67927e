"""Qualtrics integration settings"""

from fastapi import APIRouter, Depends

from app.api.auth import get_current_user
from app.api.deps import get_qualtrics, get_storage
from app.db import User
from app.schemas import QualtricsSettingsRequest, MessageResponse
from app.services import QualtricsCredentials, QualtricsService, Storage
from app.services.errors import CredentialsInvalid

router = APIRouter(prefix="/settings", tags=["settings"])


@router.post("/qualtrics", response_model=MessageResponse)
async def update_qualtrics_settings(
    body: QualtricsSettingsRequest,
    current_user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
    qualtrics: QualtricsService = Depends(get_qualtrics),
):
    """Verify the credentials against Qualtrics, then save them."""
    credentials = QualtricsCredentials(
        api_token=body.qualtrics_api_token,
        datacenter=body.qualtrics_datacenter,
        brand_id=body.qualtrics_brand_id,
    )
    if not await qualtrics.verify_credentials(credentials):
        raise CredentialsInvalid("Invalid Qualtrics credentials")

    await storage.update_qualtrics_credentials(
        current_user.id,
        api_token=credentials.api_token,
        datacenter=credentials.datacenter,
        brand_id=credentials.brand_id,
    )
    return MessageResponse(message="Credentials updated successfully")
