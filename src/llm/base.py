"""Unified LLM interface for provider switching."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from src.core.config import settings

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Backend failure categories the retry policy understands."""

    AUTH = "auth"
    PERMISSION = "permission"
    QUOTA = "quota"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Tag attached to every backend failure."""

    kind: ErrorKind
    retryable: bool


# Kinds that may succeed on a later attempt
RETRYABLE_KINDS = frozenset(
    {ErrorKind.QUOTA, ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.UNAVAILABLE}
)


def classification_for(kind: ErrorKind) -> ErrorClassification:
    """Build the classification for a kind using the default retry rules."""
    return ErrorClassification(kind=kind, retryable=kind in RETRYABLE_KINDS)


class BackendError(Exception):
    """Provider error already classified by the adapter that raised it."""

    def __init__(self, classification: ErrorClassification, detail: str):
        super().__init__(detail)
        self.classification = classification
        self.detail = detail

    @property
    def kind(self) -> ErrorKind:
        return self.classification.kind

    @property
    def retryable(self) -> bool:
        return self.classification.retryable


class LLMBackend(Protocol):
    """Protocol for LLM backends."""

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 4000,
    ) -> str:
        """
        Generate content from the LLM.

        Raises:
            BackendError: For any provider failure
        """
        ...


BackendFactory = Callable[[str], LLMBackend]


def get_llm_backend(api_key: Optional[str] = None) -> LLMBackend:
    """
    Build a backend for the configured LLM_PROVIDER.

    Args:
        api_key: Key to use; defaults to the globally configured key

    Returns:
        LLMBackend instance (either Gemini or OpenAI)

    Raises:
        ValueError: If provider is not supported or no key is available
    """
    provider = settings.llm_provider.lower()
    key = api_key or settings.default_api_key

    if provider == "gemini":
        from src.llm.gemini import GeminiBackend

        if not key:
            raise ValueError("GEMINI_API_KEY is required when LLM_PROVIDER=gemini")
        logger.debug(f"Using Gemini LLM provider (model: {settings.gemini_model})")
        return GeminiBackend(api_key=key)

    elif provider == "openai":
        from src.llm.openai import OpenAIBackend

        if not key:
            raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        logger.debug(f"Using OpenAI LLM provider (model: {settings.openai_model})")
        return OpenAIBackend(api_key=key)

    else:
        raise ValueError(
            f"Unsupported LLM_PROVIDER: {provider}. Supported: gemini, openai"
        )


def validate_api_key_format(api_key: str) -> bool:
    """Basic shape check for provider API keys before storing them."""
    if len(api_key) <= 20:
        return False
    return all(c.isascii() and (c.isalnum() or c in "_-") for c in api_key)
