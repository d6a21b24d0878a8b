"""Unit tests for the retrying summarizer."""

from unittest.mock import AsyncMock

import pytest

from src.llm.base import BackendError, ErrorKind, classification_for
from src.services.tldr.summarizer import (
    EMPTY_SUMMARY_PLACEHOLDER,
    FatalBackendError,
    RetryingSummarizer,
    SummaryError,
    TransientBackendError,
)
from tests.conftest import FakeBackend


def backend_error(kind: ErrorKind, detail: str = "failure") -> BackendError:
    return BackendError(classification_for(kind), detail)


def sleep_delays(sleep: AsyncMock) -> list[float]:
    return [call.args[0] for call in sleep.await_args_list]


class TestRetryingSummarizer:
    """Test cases for RetryingSummarizer."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sleep = AsyncMock()

    @pytest.mark.asyncio
    async def test_returns_text_on_first_success(self):
        """Test a successful call makes one attempt and never sleeps."""
        backend = FakeBackend(["the summary"])
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        assert await summarizer.summarize("prompt") == "the summary"
        assert len(backend.prompts) == 1
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_transient_failures_with_backoff(self):
        """Test two transient failures then success sleeps 1s then 2s."""
        backend = FakeBackend(
            [backend_error(ErrorKind.TIMEOUT), backend_error(ErrorKind.NETWORK), "recovered"]
        )
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        assert await summarizer.summarize("prompt") == "recovered"
        assert len(backend.prompts) == 3
        assert sleep_delays(self.sleep) == [1, 2]

    @pytest.mark.asyncio
    async def test_backoff_base_scales_delays(self):
        """Test that backoff_base multiplies the exponential delays."""
        backend = FakeBackend([backend_error(ErrorKind.UNAVAILABLE), "ok"])
        summarizer = RetryingSummarizer(backend, backoff_base=0.5, sleep=self.sleep)

        await summarizer.summarize("prompt")
        assert sleep_delays(self.sleep) == [0.5]

    @pytest.mark.asyncio
    async def test_permission_error_is_not_retried(self):
        """Test that a permission failure surfaces after a single attempt."""
        backend = FakeBackend([backend_error(ErrorKind.PERMISSION)])
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        with pytest.raises(FatalBackendError) as exc_info:
            await summarizer.summarize("prompt")

        assert exc_info.value.kind == ErrorKind.PERMISSION
        assert exc_info.value.outcome.attempts == 1
        assert "Permission denied" in exc_info.value.message
        assert "/update_api_key" in exc_info.value.remediation
        assert len(backend.prompts) == 1
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self):
        """Test that an invalid key fails fast."""
        backend = FakeBackend([backend_error(ErrorKind.AUTH)])
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        with pytest.raises(FatalBackendError) as exc_info:
            await summarizer.summarize("prompt")

        assert "Invalid API key" in exc_info.value.message
        assert len(backend.prompts) == 1

    @pytest.mark.asyncio
    async def test_quota_is_retried_then_fatal(self):
        """Test that quota errors are retried but reported as fatal when exhausted."""
        backend = FakeBackend([backend_error(ErrorKind.QUOTA)] * 3)
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        with pytest.raises(FatalBackendError) as exc_info:
            await summarizer.summarize("prompt")

        assert exc_info.value.kind == ErrorKind.QUOTA
        assert len(backend.prompts) == 3
        assert sleep_delays(self.sleep) == [1, 2]

    @pytest.mark.asyncio
    async def test_exhausted_transient_failures(self):
        """Test that persistent timeouts become TransientBackendError after max attempts."""
        backend = FakeBackend([backend_error(ErrorKind.TIMEOUT)] * 3)
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        with pytest.raises(TransientBackendError) as exc_info:
            await summarizer.summarize("prompt")

        outcome = exc_info.value.outcome
        assert outcome.attempts == 3
        assert outcome.total_delay == 3
        assert outcome.last_error.kind == ErrorKind.TIMEOUT
        assert len(backend.prompts) == 3

    @pytest.mark.asyncio
    async def test_unknown_error_is_not_retried(self):
        """Test that unclassified failures surface immediately with their detail."""
        backend = FakeBackend([backend_error(ErrorKind.UNKNOWN, "boom")])
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        with pytest.raises(SummaryError) as exc_info:
            await summarizer.summarize("prompt")

        assert not isinstance(exc_info.value, (FatalBackendError, TransientBackendError))
        assert exc_info.value.message == "Failed to generate summary: boom"
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_summary_error(self):
        """Test that a non-BackendError failure gets the generic failure message."""
        backend = FakeBackend([ValueError("bad payload")])
        summarizer = RetryingSummarizer(backend, sleep=self.sleep)

        with pytest.raises(SummaryError) as exc_info:
            await summarizer.summarize("prompt")

        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert exc_info.value.message == "Failed to generate summary: bad payload"
        assert exc_info.value.remediation == "Please check your API key and try again."
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert len(backend.prompts) == 1
        self.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_text_returns_placeholder(self):
        """Test that an empty response is replaced with the placeholder text."""
        summarizer = RetryingSummarizer(FakeBackend([""]), sleep=self.sleep)

        assert await summarizer.summarize("prompt") == EMPTY_SUMMARY_PLACEHOLDER

    def test_rejects_zero_attempts(self):
        """Test that max_attempts must be positive."""
        with pytest.raises(ValueError):
            RetryingSummarizer(FakeBackend(), max_attempts=0)
