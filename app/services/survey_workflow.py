"""
Token-metered AI workflow.

Both operations follow the same pattern:
1. Pre-check that the user has at least one token left (the AI provider is
   never called otherwise)
2. Call the provider
3. Charge the provider-reported cost, clamped at the current balance
4. Persist / respond with the post-debit balance

Provider cost is charged whenever the provider billed us, including when the
reply was unusable or the Qualtrics publish step failed afterwards.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from app.db.models import Survey
from app.schemas import ChatMessage, SurveyDocument
from app.services.errors import (
    GenerationFailed,
    InsufficientQuota,
    PlatformCallFailed,
    SurveyPublishFailed,
    UserNotFound,
    ValidationFailed,
)
from app.services.llm_service import LLMService, StructuredCompletion
from app.services.qualtrics_service import QualtricsCredentials, QualtricsService
from app.services.quota_service import QuotaLedger
from app.services.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    message: str
    tokens_used: int
    token_balance: int


@dataclass
class GenerationResult:
    survey_id: str
    document: SurveyDocument
    token_balance: int
    tokens_used: int
    survey: Optional[Survey] = None


class SurveyWorkflow:
    def __init__(
        self,
        storage: Storage,
        ledger: QuotaLedger,
        llm: LLMService,
        qualtrics: QualtricsService,
    ):
        self.storage = storage
        self.ledger = ledger
        self.llm = llm
        self.qualtrics = qualtrics

    async def chat(self, user_id: int, messages: List[ChatMessage]) -> ChatResult:
        """Answer a conversation and charge its cost."""
        if not messages:
            raise ValidationFailed("At least one message is required")

        await self.ledger.require_positive(user_id)

        conversation = [{"role": m.role, "content": m.content} for m in messages]
        try:
            completion = await self.llm.complete(conversation)
        except GenerationFailed as e:
            await self._charge_failed_generation(user_id, e, "chat")
            raise

        debit = await self.ledger.charge_usage(
            user_id, completion.tokens_used, reason=f"chat ({completion.model})"
        )
        return ChatResult(
            message=completion.text,
            tokens_used=debit.charged,
            token_balance=debit.balance,
        )

    async def generate_survey(self, user_id: int, prompt: Optional[str]) -> GenerationResult:
        """
        Draft a survey from ``prompt``, publish it to the user's Qualtrics
        account and record it locally.

        Preconditions, each checked before the AI provider is called:
        user exists -> Qualtrics credentials saved -> balance above zero.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValidationFailed("Prompt is required")

        user = await self.storage.get_user(user_id)
        if not user:
            raise UserNotFound(user_id)

        credentials = QualtricsCredentials.from_user(user)
        if credentials is None:
            raise ValidationFailed("Qualtrics credentials not set")

        if user.token_balance <= 0:
            raise InsufficientQuota(user.token_balance)

        try:
            structured = await self.llm.generate_structured(prompt)
        except GenerationFailed as e:
            await self._charge_failed_generation(user_id, e, "survey generation")
            raise

        document = structured.document
        try:
            survey_id = await self.qualtrics.create_survey(credentials, document)
        except PlatformCallFailed as e:
            raise await self._publish_failed(user_id, structured, e.message, e.remote_survey_id) from e
        except Exception as e:
            # Already billed by the provider
            logger.exception("Unexpected error publishing survey for user %s", user_id)
            message = str(e) or e.__class__.__name__
            raise await self._publish_failed(user_id, structured, message, None) from e

        debit = await self.ledger.charge_usage(
            user_id,
            structured.tokens_used,
            reason=f"survey generation ({structured.model})",
            reference=survey_id,
        )
        survey = await self.storage.create_survey(user_id, survey_id, document.title)

        return GenerationResult(
            survey_id=survey_id,
            document=document,
            token_balance=debit.balance,
            tokens_used=debit.charged,
            survey=survey,
        )

    async def _charge_failed_generation(self, user_id: int, error: GenerationFailed, what: str) -> None:
        if error.tokens_used:
            await self.ledger.charge_usage(
                user_id, error.tokens_used, reason=f"{what}, unusable AI reply"
            )

    async def _publish_failed(
        self,
        user_id: int,
        structured: StructuredCompletion,
        message: str,
        remote_survey_id: Optional[str],
    ) -> SurveyPublishFailed:
        """Charge for a survey that never reached Qualtrics and build the error."""
        debit = await self.ledger.charge_usage(
            user_id,
            structured.tokens_used,
            reason=f"survey generation ({structured.model}), publish failed",
            reference=remote_survey_id,
        )
        logger.warning(
            "Survey for user %s generated but not published (%d tokens charged): %s",
            user_id, debit.charged, message,
        )
        return SurveyPublishFailed(
            f"Survey was generated but could not be published: {message}",
            tokens_charged=debit.charged,
            token_balance=debit.balance,
        )
