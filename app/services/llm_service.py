"""
LLM Service - OpenAI API wrapper for chat and survey drafting

Provides:
- Chat completion behind a fixed system preamble, with provider token usage
- Survey generation in JSON mode, parsed into a SurveyDocument
- Timeout handling; every provider problem surfaces as GenerationFailed

The SDK's automatic retries are disabled: a failed call is reported to the
caller immediately.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import List, Dict, Optional

from openai import AsyncOpenAI, APIError
from pydantic import ValidationError
import tiktoken

from app.config import Settings
from app.schemas import SurveyDocument
from app.services.errors import GenerationFailed

logger = logging.getLogger(__name__)


CHAT_SYSTEM_PREAMBLE = """You are SurveyPilot, an assistant that helps researchers design surveys.
Help the user clarify the goal of their survey, the audience, and the questions to ask.
Suggest question wording, answer choices and question types (multiple choice, free text, rating).
Keep answers concise and practical."""

SURVEY_SYSTEM_PROMPT = """You are a survey design expert. Generate a survey based on the user's requirements.
Output a JSON object with:
- "title": short survey title
- "description": one or two sentences for respondents
- "questions": array of objects with
    "type": one of "multiple_choice", "text", "rating"
    "text": the question wording
    "choices": array of strings (multiple_choice and rating only)
    "validation": {"required": boolean, "min": number (optional), "max": number (optional)}"""


@dataclass
class Completion:
    """Assistant reply with the provider-billed token cost"""
    text: str
    tokens_used: int
    model: str


@dataclass
class StructuredCompletion:
    """Parsed survey document with the provider-billed token cost"""
    document: SurveyDocument
    tokens_used: int
    model: str


class LLMService:
    """
    OpenAI chat-completion client.

    ``complete`` answers a conversation; ``generate_structured`` drafts a
    survey document from a single prompt. Both report ``tokens_used`` as the
    provider's total (prompt + completion) for the exchange.
    """

    def __init__(self, config: Settings):
        self.client = AsyncOpenAI(
            api_key=config.openai_api_key,
            timeout=config.ai_request_timeout_seconds,
            max_retries=0,
        )
        self.model = config.openai_model
        self.temperature = config.temperature
        self.max_tokens = config.max_tokens
        self.timeout = config.ai_request_timeout_seconds
        self._encoding = None

    @property
    def encoding(self):
        # Loaded lazily: tiktoken fetches the BPE file on first use
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self.model)
            except KeyError:
                # Fall back to o200k_base for newer models
                self._encoding = tiktoken.get_encoding("o200k_base")
        return self._encoding

    def count_tokens(self, text: str) -> int:
        """Count tokens in a text string."""
        return len(self.encoding.encode(text))

    def count_message_tokens(self, messages: List[Dict[str, str]]) -> int:
        """
        Count tokens in a list of messages.

        Accounts for message formatting overhead.
        """
        total = 0
        for message in messages:
            total += 4  # Approximate overhead per message
            total += self.count_tokens(message.get("content", ""))
            total += self.count_tokens(message.get("role", ""))
        total += 2  # Priming tokens
        return total

    async def complete(self, conversation: List[Dict[str, str]]) -> Completion:
        """
        Answer a conversation.

        Args:
            conversation: ordered {"role", "content"} dicts, without a system message

        Returns:
            Completion with the assistant text and token cost
        """
        messages = [{"role": "system", "content": CHAT_SYSTEM_PREAMBLE}, *conversation]
        content, tokens_used, model = await self._create(messages)
        if not content:
            raise GenerationFailed("OpenAI returned empty response", tokens_used=tokens_used)
        return Completion(text=content, tokens_used=tokens_used, model=model)

    async def generate_structured(self, prompt: str) -> StructuredCompletion:
        """Draft a survey document for a natural-language request."""
        messages = [
            {"role": "system", "content": SURVEY_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        content, tokens_used, model = await self._create(
            messages, response_format={"type": "json_object"}
        )
        if not content:
            raise GenerationFailed("OpenAI returned empty response", tokens_used=tokens_used)

        try:
            document = SurveyDocument.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Unusable survey document from OpenAI: {e}")
            raise GenerationFailed(
                f"Failed to generate survey: invalid survey document ({e.__class__.__name__})",
                tokens_used=tokens_used,
            )
        return StructuredCompletion(document=document, tokens_used=tokens_used, model=model)

    async def _create(self, messages: List[Dict[str, str]], **kwargs):
        """Run one completion; returns (content, total tokens, model)."""
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    **kwargs
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"OpenAI request timed out after {self.timeout}s")
            raise GenerationFailed(f"AI request timed out after {self.timeout:g}s")
        except APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise GenerationFailed(str(e))

        usage = response.usage
        if not response.choices:
            raise GenerationFailed(
                "OpenAI returned no choices",
                tokens_used=usage.total_tokens if usage is not None else 0,
            )
        content = response.choices[0].message.content or ""
        if usage is not None:
            tokens_used = usage.total_tokens
        else:
            tokens_used = self.count_message_tokens(messages) + self.count_tokens(content)
            logger.warning(f"No usage reported by provider; estimated {tokens_used} tokens")

        return content, tokens_used, response.model
