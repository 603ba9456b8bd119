"""Client wrapper for interacting with Google Gemini models."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable

import google.generativeai as genai
from google.api_core.exceptions import (
    GoogleAPICallError,
    GoogleAPIError,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    ResourceExhausted,
    Unauthenticated,
)
from google.generativeai.types import BlockedPromptException, StopCandidateException

from app.clients.llm import (
    GenerationResult,
    InvalidCredentialError,
    LLMGatewayError,
    QuotaExceededError,
    ResponseFormat,
    UsageSink,
)
from app.core.config import GeminiSettings
from app.schemas.analysis import Citation


_TEXT_FALLBACKS: tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.0-flash",
    "gemini-1.5-flash",
)
_INVALID_KEY_MARKERS = ("API key not valid", "API_KEY_INVALID")
_PROVIDER = "Gemini"

logger = logging.getLogger(__name__)


class GeminiClient:
    """Send prompts to Gemini and normalize the answer for the pipeline."""

    def __init__(self, settings: GeminiSettings, usage: UsageSink | None = None) -> None:
        self._settings = settings
        self._usage = usage
        # Configure the global client once per process.
        genai.configure(api_key=settings.api_key)

    async def generate(
        self,
        prompt: str,
        *,
        operation: str,
        use_search: bool = False,
        response_format: ResponseFormat = "text",
        temperature: float = 0.7,
    ) -> GenerationResult:
        if not (self._settings.api_key or "").strip():
            raise InvalidCredentialError(_PROVIDER, "GEMINI_API_KEY is not set")

        generation_config: dict[str, Any] = {"temperature": temperature}
        if response_format == "json":
            generation_config["response_mime_type"] = "application/json"
        # Search grounding and JSON mime type cannot be combined.
        tools = "google_search_retrieval" if use_search and response_format == "text" else None

        def _invoke() -> Any:
            return self._invoke_with_models(
                models=self._text_model_candidates(),
                env_var="GEMINI_MODEL_NAME",
                error_prefix=f"Gemini {operation} failed",
                call=lambda model: model.generate_content(
                    prompt,
                    generation_config=generation_config,
                    tools=tools,
                ),
            )

        response = await asyncio.to_thread(_invoke)
        try:
            text = response.text or ""
        except ValueError as exc:
            # Raised by the SDK when the candidate was blocked or empty.
            raise LLMGatewayError(f"Gemini {operation} returned no text: {exc}") from exc

        if self._usage is not None:
            self._usage.record(operation, len(prompt), len(text))
        return GenerationResult(text=text, citations=_extract_citations(response))

    def _invoke_with_models(
        self,
        *,
        models: Iterable[str],
        env_var: str,
        error_prefix: str,
        call: Callable[[genai.GenerativeModel], Any],
    ) -> Any:
        """Try the configured model followed by fallbacks when available."""

        model_sequence = list(models)
        last_not_found: NotFound | None = None
        for index, model_name in enumerate(model_sequence):
            generative_model = genai.GenerativeModel(model_name)
            try:
                return call(generative_model)
            except NotFound as exc:
                last_not_found = exc
                logger.warning(
                    "Gemini model '%s' not found (attempt %d/%d); trying fallback.",
                    model_name,
                    index + 1,
                    len(model_sequence),
                )
                continue
            except ResourceExhausted as exc:
                logger.warning("Gemini quota exhausted: %s", exc.message)
                raise QuotaExceededError(_PROVIDER) from exc
            except (InvalidArgument, PermissionDenied, Unauthenticated) as exc:
                if _is_invalid_key(exc) or not isinstance(exc, InvalidArgument):
                    raise InvalidCredentialError(_PROVIDER) from exc
                raise LLMGatewayError(f"{error_prefix}: {exc.message}") from exc
            except GoogleAPICallError as exc:  # pragma: no cover - network call
                raise LLMGatewayError(f"{error_prefix}: {exc.message}") from exc
            except GoogleAPIError as exc:
                # RetryError and auth transport errors carry no HTTP status.
                raise LLMGatewayError(f"{error_prefix}: {exc}") from exc
            except (BlockedPromptException, StopCandidateException) as exc:
                raise LLMGatewayError(f"{error_prefix}: response was blocked ({exc})") from exc

        if last_not_found is not None:
            primary = model_sequence[0] if model_sequence else "unknown"
            raise LLMGatewayError(
                "Gemini model '"
                f"{primary}"
                "' is not available. Update "
                f"{env_var} to a supported value."
            ) from last_not_found

        raise LLMGatewayError(f"{error_prefix}: Unknown error invoking Gemini.")

    def _text_model_candidates(self) -> list[str]:
        return self._collect_candidates(
            self._settings.model_name,
            _TEXT_FALLBACKS,
        )

    @staticmethod
    def _collect_candidates(
        configured: str | None,
        fallbacks: tuple[str, ...],
    ) -> list[str]:
        """Return distinct model names prioritizing the configured value."""
        seen: set[str] = set()
        candidates: list[str] = []
        for name in (configured, *fallbacks):
            if not name:
                continue
            cleaned = name.strip()
            if not cleaned or cleaned in seen:
                continue
            seen.add(cleaned)
            candidates.append(cleaned)
        return candidates


def _is_invalid_key(exc: GoogleAPICallError) -> bool:
    message = str(exc.message or exc)
    return any(marker in message for marker in _INVALID_KEY_MARKERS)


def _extract_citations(response: Any) -> list[Citation]:
    """Collect web sources from the first candidate's grounding metadata."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []

    citations: list[Citation] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None)
        if not uri:
            continue
        title = getattr(web, "title", None) or uri
        citations.append(Citation(uri=uri, title=title))
    return citations


__all__ = ["GeminiClient"]
