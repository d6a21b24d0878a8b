"""Bounded-retry wrapper around a single LLM summarize call."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.llm.base import (
    BackendError,
    ErrorClassification,
    ErrorKind,
    LLMBackend,
    classification_for,
)

logger = logging.getLogger(__name__)

EMPTY_SUMMARY_PLACEHOLDER = "Generated summary (no text returned)"

KEY_TIP = "An admin can update the API key using /update_api_key in private chat."

ERROR_TEXT: dict[ErrorKind, tuple[str, str]] = {
    ErrorKind.AUTH: (
        "Invalid API key. Please check your API key and ensure it's correct.",
        KEY_TIP,
    ),
    ErrorKind.PERMISSION: (
        "Permission denied. Your API key may not have access to the model API. "
        "Please check your API key permissions.",
        KEY_TIP,
    ),
    ErrorKind.QUOTA: (
        "API quota exceeded. Your API key has reached its rate limit or quota.",
        "Please wait a moment and try again, or check your API quota.",
    ),
    ErrorKind.TIMEOUT: (
        "Request timeout. The API request took too long after multiple retries.",
        "Please try again, or summarize a shorter range.",
    ),
    ErrorKind.NETWORK: (
        "Network error. Could not connect to the model API after multiple retries.",
        "Please try again in a few minutes.",
    ),
    ErrorKind.UNAVAILABLE: (
        "The model API is temporarily unavailable after multiple retries.",
        "Please try again in a few minutes.",
    ),
}

FATAL_KINDS = frozenset({ErrorKind.AUTH, ErrorKind.PERMISSION, ErrorKind.QUOTA})
TRANSIENT_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.UNAVAILABLE})


@dataclass
class RetryOutcome:
    """Per-call retry bookkeeping."""

    attempts: int = 0
    last_error: Optional[ErrorClassification] = None
    next_delay: float = 0.0
    total_delay: float = 0.0


class SummaryError(Exception):
    """Summarization failed; carries user-facing text and a remediation tip."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        remediation: str,
        outcome: Optional[RetryOutcome] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.remediation = remediation
        self.outcome = outcome


class FatalBackendError(SummaryError):
    """Credential, permission or exhausted-quota failure; retrying cannot help."""


class TransientBackendError(SummaryError):
    """Timeout or connectivity failure that persisted across every attempt."""


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, BackendError) and exc.retryable


def _to_summary_error(error: BackendError, outcome: RetryOutcome) -> SummaryError:
    kind = error.kind
    if kind in ERROR_TEXT:
        message, remediation = ERROR_TEXT[kind]
    else:
        message = f"Failed to generate summary: {error.detail or 'Unknown error'}"
        remediation = "Please check your API key and try again."

    if kind in FATAL_KINDS:
        error_cls = FatalBackendError
    elif kind in TRANSIENT_KINDS:
        error_cls = TransientBackendError
    else:
        error_cls = SummaryError
    return error_cls(kind, message, remediation, outcome)


class RetryingSummarizer:
    """
    Calls an LLM backend with exponential backoff between retryable failures.

    Backoff is ``backoff_base * 2**(attempt - 1)`` seconds, so 1s then 2s for
    the default three attempts. Which failures are retried is decided solely
    by the classification the backend attached to its BackendError.
    """

    def __init__(
        self,
        backend: LLMBackend,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.backend = backend
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._sleep = sleep

    async def summarize(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
    ) -> str:
        """
        Generate a summary for prompt.

        Returns:
            Summary text, or a placeholder if the backend returned nothing

        Raises:
            FatalBackendError: auth/permission failure, or quota on the last attempt
            TransientBackendError: timeout/network failures on every attempt
            SummaryError: any other backend failure
        """
        outcome = RetryOutcome()

        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            outcome.last_error = error.classification
            outcome.next_delay = delay
            outcome.total_delay += delay
            logger.warning(
                f"LLM attempt {retry_state.attempt_number}/{self.max_attempts} failed "
                f"({error.kind.value}), retrying in {delay:.1f}s"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base),
            retry=retry_if_exception(_is_retryable),
            sleep=self._sleep,
            before_sleep=before_sleep,
            reraise=True,
        )

        text = ""
        try:
            async for attempt in retrying:
                with attempt:
                    outcome.attempts = attempt.retry_state.attempt_number
                    text = await self.backend.generate_content(
                        prompt,
                        system_instruction=system_instruction,
                    )
        except BackendError as e:
            outcome.last_error = e.classification
            logger.error(
                f"LLM call failed after {outcome.attempts} attempt(s): "
                f"{e.kind.value} ({e.detail})"
            )
            raise _to_summary_error(e, outcome) from e
        except Exception as e:
            error = BackendError(classification_for(ErrorKind.UNKNOWN), str(e))
            outcome.last_error = error.classification
            logger.error(f"LLM call raised an unclassified error: {e}")
            raise _to_summary_error(error, outcome) from e

        if outcome.attempts > 1:
            logger.info(f"LLM call succeeded on attempt {outcome.attempts}")
        return text or EMPTY_SUMMARY_PLACEHOLDER
