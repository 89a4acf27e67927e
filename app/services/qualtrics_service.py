"""
Qualtrics v3 API client.

Verifies a user's API credentials and publishes a generated survey: one call
creates the survey shell, then each question is added in document order, one
request at a time. A failure part-way leaves the partial survey on Qualtrics;
no rollback is attempted.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.config import Settings
from app.schemas import SurveyDocument, SurveyQuestion
from app.services.errors import PlatformCallFailed

logger = logging.getLogger(__name__)

# Internal question types -> Qualtrics question types
QUESTION_TYPE_MAP = {
    "multiple_choice": "MC",
    "text": "TE",
    "rating": "Matrix",
}
DEFAULT_QUESTION_TYPE = "TE"

_DATACENTER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.-]*$")


@dataclass(frozen=True)
class QualtricsCredentials:
    api_token: str
    datacenter: str
    brand_id: str

    @classmethod
    def from_user(cls, user) -> Optional["QualtricsCredentials"]:
        """Credentials saved on a user, or None if any part is missing."""
        if not (user.qualtrics_api_token and user.qualtrics_datacenter and user.qualtrics_brand_id):
            return None
        return cls(
            api_token=user.qualtrics_api_token,
            datacenter=user.qualtrics_datacenter,
            brand_id=user.qualtrics_brand_id,
        )


def map_question_type(question_type: str) -> str:
    return QUESTION_TYPE_MAP.get(question_type, DEFAULT_QUESTION_TYPE)


def build_question_payload(question: SurveyQuestion) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "questionText": question.text,
        "questionType": map_question_type(question.type),
    }
    if question.choices:
        payload["choices"] = [{"text": choice} for choice in question.choices]
    if question.validation is not None:
        payload["validation"] = question.validation.model_dump(exclude_none=True)
    return payload


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}: {exc.response.text[:200]}"
    return str(exc) or exc.__class__.__name__


class QualtricsService:
    def __init__(
        self,
        config: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url_template = config.qualtrics_base_url
        self.timeout = config.qualtrics_timeout_seconds
        self._transport = transport

    def base_url(self, credentials: QualtricsCredentials) -> str:
        if not _DATACENTER_RE.match(credentials.datacenter):
            raise ValueError(f"Invalid Qualtrics datacenter: {credentials.datacenter!r}")
        return self.base_url_template.format(datacenter=credentials.datacenter)

    def _client(self, credentials: QualtricsCredentials) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url(credentials),
            headers={
                "X-API-TOKEN": credentials.api_token,
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def verify_credentials(self, credentials: QualtricsCredentials) -> bool:
        """True if Qualtrics accepts the token on this datacenter."""
        try:
            async with self._client(credentials) as client:
                r = await client.get("/whoami")
                r.raise_for_status()
        except ValueError as e:
            logger.info("Qualtrics credentials rejected: %s", e)
            return False
        except httpx.HTTPError as e:
            logger.info("Qualtrics credentials rejected: %s", _describe(e))
            return False
        return True

    async def create_survey(
        self, credentials: QualtricsCredentials, document: SurveyDocument
    ) -> str:
        """Create the survey and its questions; returns the Qualtrics survey id."""
        try:
            base_client = self._client(credentials)
        except ValueError as e:
            raise PlatformCallFailed(f"Failed to create survey: {e}")

        async with base_client as client:
            try:
                r = await client.post(
                    "/survey-definitions",
                    json={
                        "name": document.title,
                        "projectCategory": credentials.brand_id,
                    },
                )
                r.raise_for_status()
                body = r.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error("Qualtrics survey creation failed: %s", _describe(e))
                raise PlatformCallFailed(f"Failed to create survey: {_describe(e)}")

            result = body.get("result") if isinstance(body, dict) else None
            if not isinstance(result, dict):
                logger.error("Qualtrics survey creation returned an unexpected body: %.200s", r.text)
                raise PlatformCallFailed("Failed to create survey: unexpected response body")

            survey_id = result.get("SurveyID") or result.get("id")
            if not survey_id:
                raise PlatformCallFailed("Failed to create survey: response carried no survey id")

            # Sequential: each add targets the id assigned above
            for position, question in enumerate(document.questions, start=1):
                try:
                    r = await client.post(
                        f"/survey-definitions/{survey_id}/questions",
                        json=build_question_payload(question),
                    )
                    r.raise_for_status()
                except httpx.HTTPError as e:
                    logger.error(
                        "Qualtrics question %d/%d failed for survey %s: %s",
                        position, len(document.questions), survey_id, _describe(e),
                    )
                    raise PlatformCallFailed(
                        f"Failed to add question {position}: {_describe(e)}",
                        remote_survey_id=survey_id,
                    )

        logger.info("Created Qualtrics survey %s with %d questions", survey_id, len(document.questions))
        return survey_id
