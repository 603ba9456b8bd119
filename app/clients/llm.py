"""Provider-neutral contract shared by the Gemini and Groq clients."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from app.schemas.analysis import Citation

ResponseFormat = Literal["text", "json"]

INVALID_CREDENTIAL_MESSAGE = (
    "Invalid {provider} API Key. Please check your API key configuration."
)
QUOTA_EXCEEDED_MESSAGE = (
    "{provider} API has daily usage limits. Please try again later."
)

_CODE_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class LLMGatewayError(RuntimeError):
    """Raised when a model provider cannot fulfill a request."""


class InvalidCredentialError(LLMGatewayError):
    """Raised when the provider rejects (or was never given) an API key."""

    def __init__(self, provider: str, detail: str | None = None) -> None:
        message = INVALID_CREDENTIAL_MESSAGE.format(provider=provider)
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.provider = provider


class QuotaExceededError(LLMGatewayError):
    """Raised on rate limiting or exhausted quota."""

    def __init__(self, provider: str) -> None:
        super().__init__(QUOTA_EXCEEDED_MESSAGE.format(provider=provider))
        self.provider = provider


class LLMResponseFormatError(LLMGatewayError):
    """Raised when a JSON-mode response is not valid JSON."""


@dataclass(slots=True)
class GenerationResult:
    text: str
    citations: list[Citation] = field(default_factory=list)

    def json(self) -> Any:
        """Parse the text as JSON, tolerating Markdown code fences."""
        return parse_json_payload(self.text)


class UsageSink(Protocol):
    def record(self, operation: str, input_chars: int, output_chars: int) -> None:
        ...


class LLMGateway(Protocol):
    """Anything that can turn a prompt into text plus grounding citations."""

    async def generate(
        self,
        prompt: str,
        *,
        operation: str,
        use_search: bool = False,
        response_format: ResponseFormat = "text",
        temperature: float = 0.7,
    ) -> GenerationResult:
        ...


def strip_code_fences(payload: str) -> str:
    cleaned = payload.strip()
    match = _CODE_FENCE_RE.match(cleaned)
    if match:
        return match.group(2).strip()
    return cleaned


def parse_json_payload(payload: str) -> Any:
    cleaned = strip_code_fences(payload)
    if not cleaned:
        raise LLMResponseFormatError("Model returned an empty JSON response.")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise LLMResponseFormatError(
            f"Model returned malformed JSON: {exc.msg}"
        ) from exc


__all__ = [
    "GenerationResult",
    "InvalidCredentialError",
    "LLMGateway",
    "LLMGatewayError",
    "LLMResponseFormatError",
    "QuotaExceededError",
    "ResponseFormat",
    "UsageSink",
    "parse_json_payload",
    "strip_code_fences",
]
