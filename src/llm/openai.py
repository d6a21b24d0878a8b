"""OpenAI LLM backend."""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from src.core.config import settings
from src.llm.base import BackendError, ErrorClassification, ErrorKind, classification_for

logger = logging.getLogger(__name__)


def classify_openai_error(exc: BaseException) -> ErrorClassification:
    """Map an openai SDK exception onto an ErrorKind."""
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(exc, openai.APITimeoutError):
        return classification_for(ErrorKind.TIMEOUT)
    if isinstance(exc, openai.APIConnectionError):
        return classification_for(ErrorKind.NETWORK)
    if isinstance(exc, openai.AuthenticationError):
        return classification_for(ErrorKind.AUTH)
    if isinstance(exc, openai.PermissionDeniedError):
        return classification_for(ErrorKind.PERMISSION)
    if isinstance(exc, openai.RateLimitError):
        return classification_for(ErrorKind.QUOTA)
    if isinstance(exc, openai.InternalServerError):
        return classification_for(ErrorKind.UNAVAILABLE)
    return classification_for(ErrorKind.UNKNOWN)


class OpenAIBackend:
    """Backend for OpenAI chat completions bound to a single API key."""

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.model = model or settings.openai_model
        # Retries are handled by RetryingSummarizer
        self._client = AsyncOpenAI(api_key=api_key, max_retries=0, timeout=60.0)

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 4000,
    ) -> str:
        """
        Generate content using OpenAI.

        Raises:
            BackendError: Classified provider failure
        """
        messages = []

        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})

        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_output_tokens,
            )
        except openai.OpenAIError as e:
            classification = classify_openai_error(e)
            logger.debug(f"OpenAI call failed ({classification.kind.value}): {e}")
            raise BackendError(classification, str(e)) from e
        except Exception as e:
            logger.warning(f"Unexpected OpenAI failure: {e}")
            raise BackendError(classification_for(ErrorKind.UNKNOWN), str(e)) from e

        content = response.choices[0].message.content or ""
        logger.debug(f"Generated content with {len(content)} characters")
        return content
