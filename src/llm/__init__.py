"""LLM integrations for tldreply."""

from src.llm.base import (
    BackendError,
    BackendFactory,
    ErrorClassification,
    ErrorKind,
    LLMBackend,
    get_llm_backend,
    validate_api_key_format,
)

__all__ = [
    "BackendError",
    "BackendFactory",
    "ErrorClassification",
    "ErrorKind",
    "LLMBackend",
    "get_llm_backend",
    "validate_api_key_format",
]
