"""Client for Groq's OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.clients.llm import (
    GenerationResult,
    InvalidCredentialError,
    LLMGatewayError,
    QuotaExceededError,
    ResponseFormat,
    UsageSink,
)
from app.core.config import GroqSettings
from app.utils.http import RetryConfig, request_with_retry

_PROVIDER = "Groq"

logger = logging.getLogger(__name__)


class GroqClient:
    """Alternate gateway backed by Groq-hosted open models."""

    def __init__(
        self,
        settings: GroqSettings,
        usage: UsageSink | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._settings = settings
        self._usage = usage
        self._transport = transport
        self._retry_config = retry_config or RetryConfig()

    async def generate(
        self,
        prompt: str,
        *,
        operation: str,
        use_search: bool = False,
        response_format: ResponseFormat = "text",
        temperature: float = 0.7,
    ) -> GenerationResult:
        api_key = (self._settings.api_key or "").strip()
        if not api_key:
            raise InvalidCredentialError(_PROVIDER, "GROQ_API_KEY is not set")
        if use_search:
            logger.debug("Groq has no search grounding; ignoring flag for %s.", operation)

        body: dict[str, Any] = {
            "model": self._settings.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": self._settings.max_tokens,
        }
        if response_format == "json":
            body["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await request_with_retry(
                    client.post,
                    self._settings.base_url,
                    json=body,
                    headers=headers,
                    retry_config=self._retry_config,
                )
        except httpx.HTTPStatusError as exc:
            raise _map_status_error(exc, operation) from exc
        except httpx.HTTPError as exc:
            raise LLMGatewayError(f"Groq {operation} failed: {exc}") from exc

        text = _message_content(response)
        if self._usage is not None:
            self._usage.record(operation, len(prompt), len(text))
        return GenerationResult(text=text, citations=[])


def _map_status_error(exc: httpx.HTTPStatusError, operation: str) -> LLMGatewayError:
    status = exc.response.status_code
    if status in (401, 403):
        return InvalidCredentialError(_PROVIDER)
    if status == 429:
        logger.warning("Groq rate limit hit during %s.", operation)
        return QuotaExceededError(_PROVIDER)
    return LLMGatewayError(f"Groq {operation} failed with HTTP {status}: {exc.response.text}")


def _message_content(response: httpx.Response) -> str:
    try:
        payload = response.json()
        content = payload["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise LLMGatewayError("Groq returned an unexpected response shape.") from exc
    return content or ""


__all__ = ["GroqClient"]
