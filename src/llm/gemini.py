"""Google Gemini LLM backend."""

import asyncio
import logging
from typing import Optional

import httpx
from google import genai
from google.genai import errors, types

from src.core.config import settings
from src.llm.base import BackendError, ErrorClassification, ErrorKind, classification_for

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_MS = 60_000


def classify_gemini_error(exc: BaseException) -> ErrorClassification:
    """
    Map a google-genai / transport exception onto an ErrorKind.

    Gemini reports a bad key as 400 INVALID_ARGUMENT with reason
    API_KEY_INVALID, so the message is checked as well as the code.
    """
    if isinstance(exc, errors.APIError):
        code = exc.code
        status = (exc.status or "").upper()
        text = str(exc)

        if code == 401 or status == "UNAUTHENTICATED" or "API_KEY_INVALID" in text:
            return classification_for(ErrorKind.AUTH)
        if code == 403 or status == "PERMISSION_DENIED":
            return classification_for(ErrorKind.PERMISSION)
        if code == 429 or status == "RESOURCE_EXHAUSTED":
            return classification_for(ErrorKind.QUOTA)
        if code == 504 or status == "DEADLINE_EXCEEDED":
            return classification_for(ErrorKind.TIMEOUT)
        if code in (500, 502, 503) or status == "UNAVAILABLE":
            return classification_for(ErrorKind.UNAVAILABLE)
        return classification_for(ErrorKind.UNKNOWN)

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return classification_for(ErrorKind.TIMEOUT)
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return classification_for(ErrorKind.NETWORK)
    return classification_for(ErrorKind.UNKNOWN)


class GeminiBackend:
    """Backend for Google Gemini bound to a single API key."""

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.model = model or settings.gemini_model
        self._client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=REQUEST_TIMEOUT_MS),
        )

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 4000,
    ) -> str:
        """
        Generate content using Gemini.

        Args:
            prompt: User prompt
            system_instruction: Optional system instruction
            temperature: Creativity level (0.0-1.0)
            max_output_tokens: Maximum tokens in response

        Returns:
            Generated text content (may be empty)

        Raises:
            BackendError: Classified provider failure
        """
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except (errors.APIError, httpx.HTTPError, asyncio.TimeoutError, ConnectionError) as e:
            classification = classify_gemini_error(e)
            logger.debug(f"Gemini call failed ({classification.kind.value}): {e}")
            raise BackendError(classification, str(e)) from e
        except Exception as e:
            logger.warning(f"Unexpected Gemini failure: {e}")
            raise BackendError(classification_for(ErrorKind.UNKNOWN), str(e)) from e

        text = response.text or ""
        logger.debug(f"Generated content with {len(text)} characters")
        return text
