"""
FastAPI application entrypoint for the Greybrainer analysis service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import router as api_router
from app.clients.llm import InvalidCredentialError, LLMGatewayError, QuotaExceededError
from app.core.config import get_settings
from app.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def _gateway_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Surface provider failures that escape the orchestrator with their message."""
    if isinstance(exc, InvalidCredentialError):
        status = HTTPStatus.UNAUTHORIZED
    elif isinstance(exc, QuotaExceededError):
        status = HTTPStatus.TOO_MANY_REQUESTS
    else:
        status = HTTPStatus.BAD_GATEWAY
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info(
            "Starting Greybrainer API (%s, provider=%s)",
            settings.environment,
            settings.llm_provider,
        )
        yield
        logger.info("Shutting down Greybrainer API")

    app = FastAPI(
        title="Greybrainer Analysis Service",
        version="0.1.0",
        description="REST API for layered movie analysis and report synthesis.",
        lifespan=lifespan,
    )
    app.add_exception_handler(LLMGatewayError, _gateway_error_handler)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]


if __name__ == "__main__":  # pragma: no cover - manual server start
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=False)
