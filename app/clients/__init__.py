"""Expose constructed client wrappers."""

from .gemini import GeminiClient
from .groq import GroqClient
from .llm import (
    GenerationResult,
    InvalidCredentialError,
    LLMGateway,
    LLMGatewayError,
    LLMResponseFormatError,
    QuotaExceededError,
    UsageSink,
)
from .sqlite_store import SQLiteStore

__all__ = [
    "GeminiClient",
    "GenerationResult",
    "GroqClient",
    "InvalidCredentialError",
    "LLMGateway",
    "LLMGatewayError",
    "LLMResponseFormatError",
    "QuotaExceededError",
    "SQLiteStore",
    "UsageSink",
]
