"""Retry helper for outbound HTTP calls to model providers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryConfig:
    attempts: int = 3
    backoff_seconds: float = 1.0


def is_retryable(exc: httpx.HTTPError) -> bool:
    """Transport failures and 5xx responses; 4xx answers will not change on retry."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return True


async def request_with_retry(
    func: Callable[..., Awaitable[httpx.Response]],
    *args,
    retry_config: RetryConfig | None = None,
    **kwargs,
) -> httpx.Response:
    """Call ``func`` until it returns a 2xx/3xx response or attempts run out."""
    config = retry_config or RetryConfig()
    if config.attempts < 1:
        raise ValueError("RetryConfig.attempts must be at least 1")

    for attempt in range(1, config.attempts + 1):
        try:
            response = await func(*args, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPError as exc:
            if not is_retryable(exc) or attempt == config.attempts:
                raise
            delay = config.backoff_seconds * attempt
            logger.warning(
                "HTTP attempt %d/%d failed (%s); retrying in %.1fs",
                attempt,
                config.attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")


__all__ = ["RetryConfig", "is_retryable", "request_with_retry"]
