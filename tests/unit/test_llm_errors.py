"""Unit tests for provider error classification and backend selection."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from google.genai import errors

from src.core.config import settings
from src.llm.base import BackendError, ErrorKind, get_llm_backend, validate_api_key_format
from src.llm.gemini import GeminiBackend, classify_gemini_error
from src.llm.openai import OpenAIBackend, classify_openai_error

OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def gemini_error(code: int, status: str, message: str = "error") -> errors.APIError:
    error_cls = errors.ServerError if code >= 500 else errors.ClientError
    return error_cls(code, {"error": {"code": code, "message": message, "status": status}})


def openai_status_error(error_cls, status_code: int):
    response = httpx.Response(status_code, request=OPENAI_REQUEST)
    return error_cls(message="error", response=response, body=None)


class TestClassifyGeminiError:
    """Test cases for classify_gemini_error."""

    @pytest.mark.parametrize(
        "code,status,kind",
        [
            (401, "UNAUTHENTICATED", ErrorKind.AUTH),
            (403, "PERMISSION_DENIED", ErrorKind.PERMISSION),
            (429, "RESOURCE_EXHAUSTED", ErrorKind.QUOTA),
            (504, "DEADLINE_EXCEEDED", ErrorKind.TIMEOUT),
            (503, "UNAVAILABLE", ErrorKind.UNAVAILABLE),
            (500, "INTERNAL", ErrorKind.UNAVAILABLE),
            (400, "FAILED_PRECONDITION", ErrorKind.UNKNOWN),
        ],
    )
    def test_api_errors(self, code, status, kind):
        """Test that API status codes map to the expected kinds."""
        classification = classify_gemini_error(gemini_error(code, status))

        assert classification.kind == kind

    def test_retryability(self):
        """Test that quota is retryable and permission is not."""
        assert classify_gemini_error(gemini_error(429, "RESOURCE_EXHAUSTED")).retryable is True
        assert classify_gemini_error(gemini_error(403, "PERMISSION_DENIED")).retryable is False

    def test_transport_errors(self):
        """Test timeouts and connection failures outside the SDK error types."""
        assert classify_gemini_error(httpx.ReadTimeout("slow")).kind == ErrorKind.TIMEOUT
        assert classify_gemini_error(asyncio.TimeoutError()).kind == ErrorKind.TIMEOUT
        assert classify_gemini_error(httpx.ConnectError("down")).kind == ErrorKind.NETWORK
        assert classify_gemini_error(ConnectionResetError()).kind == ErrorKind.NETWORK
        assert classify_gemini_error(RuntimeError("odd")).kind == ErrorKind.UNKNOWN


class TestClassifyOpenAIError:
    """Test cases for classify_openai_error."""

    def test_status_errors(self):
        """Test that SDK status errors map to the expected kinds."""
        assert classify_openai_error(
            openai_status_error(openai.AuthenticationError, 401)
        ).kind == ErrorKind.AUTH
        assert classify_openai_error(
            openai_status_error(openai.PermissionDeniedError, 403)
        ).kind == ErrorKind.PERMISSION
        assert classify_openai_error(
            openai_status_error(openai.RateLimitError, 429)
        ).kind == ErrorKind.QUOTA
        assert classify_openai_error(
            openai_status_error(openai.InternalServerError, 503)
        ).kind == ErrorKind.UNAVAILABLE
        assert classify_openai_error(
            openai_status_error(openai.BadRequestError, 400)
        ).kind == ErrorKind.UNKNOWN

    def test_timeout_is_checked_before_connection(self):
        """Test that APITimeoutError is a timeout, not a generic network error."""
        timeout = openai.APITimeoutError(request=OPENAI_REQUEST)
        connection = openai.APIConnectionError(request=OPENAI_REQUEST)

        assert classify_openai_error(timeout).kind == ErrorKind.TIMEOUT
        assert classify_openai_error(connection).kind == ErrorKind.NETWORK


class TestBackendWrapping:
    """Test cases for how backends surface unexpected SDK failures."""

    @pytest.mark.asyncio
    async def test_gemini_unexpected_error_is_unknown(self):
        """Test that a non-API Gemini exception is wrapped as an unknown BackendError."""
        backend = GeminiBackend("AIzaSyTestKey_0123456789abcdef")
        backend._client = MagicMock()
        backend._client.aio.models.generate_content = AsyncMock(side_effect=ValueError("bad"))

        with pytest.raises(BackendError) as exc_info:
            await backend.generate_content("prompt")

        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert exc_info.value.detail == "bad"
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_openai_unexpected_error_is_unknown(self):
        """Test that a non-SDK OpenAI exception is wrapped as an unknown BackendError."""
        backend = OpenAIBackend("sk-test-0123456789abcdefghij")
        backend._client = MagicMock()
        backend._client.chat.completions.create = AsyncMock(side_effect=KeyError("choices"))

        with pytest.raises(BackendError) as exc_info:
            await backend.generate_content("prompt")

        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert isinstance(exc_info.value.__cause__, KeyError)


class TestBackendSelection:
    """Test cases for get_llm_backend and key validation."""

    def test_unsupported_provider(self):
        """Test that an unknown provider is rejected."""
        with patch.object(settings, "llm_provider", "claude"):
            with pytest.raises(ValueError, match="Unsupported LLM_PROVIDER"):
                get_llm_backend("x" * 30)

    def test_missing_key(self):
        """Test that a provider without any key is rejected."""
        with patch.object(settings, "llm_provider", "openai"), patch.object(
            settings, "openai_api_key", ""
        ):
            with pytest.raises(ValueError, match="OPENAI_API_KEY"):
                get_llm_backend(None)

    def test_openai_backend_uses_given_key(self):
        """Test that the per-group key is passed to the OpenAI backend."""
        with patch.object(settings, "llm_provider", "openai"):
            backend = get_llm_backend("sk-test-0123456789abcdefghij")

        assert type(backend).__name__ == "OpenAIBackend"

    @pytest.mark.parametrize(
        "key,valid",
        [
            ("AIzaSyTestKey_0123456789abcdef", True),
            ("sk-proj-abcdefghijklmnopqrstuvwxyz", True),
            ("short", False),
            ("a" * 20, False),
            ("has spaces in the key value!!", False),
            ("ключ" * 10, False),
        ],
    )
    def test_validate_api_key_format(self, key, valid):
        """Test the API key shape check."""
        assert validate_api_key_format(key) is valid
