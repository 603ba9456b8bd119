"""
FastAPI routes for the Greybrainer analysis service.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException

from app.core.config import AppSettings
from app.dependencies import get_analysis_orchestrator, get_app_settings, get_usage_ledger
from app.schemas import (
    ActualPerformance,
    AnalysisInput,
    AnalysisState,
    LayerEditRequest,
    MagicFactorAnalysis,
    PersonnelRequest,
    ReviewLayer,
    SuggestionChoice,
    TokenBudgetConfig,
    UsageLogEntry,
)
from app.services import InputValidationError

router = APIRouter()
logger = logging.getLogger(__name__)


def _bad_request(exc: InputValidationError) -> NoReturn:
    raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok", "provider": settings.llm_provider}


@router.get("/analysis", response_model=AnalysisState)
async def get_analysis_state(
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    """Return the current run, including any inline errors."""
    return orchestrator.state


@router.post("/analysis", response_model=AnalysisState)
async def submit_analysis(
    payload: AnalysisInput,
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    """
    Start a new run.

    The response is either awaiting a title choice or carries the finished
    layer analyses.
    """
    try:
        return await orchestrator.submit(payload)
    except InputValidationError as exc:
        _bad_request(exc)


@router.post("/analysis/suggestions/select", response_model=AnalysisState)
async def select_suggestion(
    payload: SuggestionChoice,
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    try:
        return await orchestrator.select_suggestion(payload.title)
    except InputValidationError as exc:
        _bad_request(exc)


@router.post("/analysis/suggestions/proceed", response_model=AnalysisState)
async def proceed_with_original_title(
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    try:
        return await orchestrator.proceed_with_original()
    except InputValidationError as exc:
        _bad_request(exc)


@router.post("/analysis/suggestions/cancel", response_model=AnalysisState)
async def cancel_suggestions(
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    try:
        return orchestrator.cancel_suggestions()
    except InputValidationError as exc:
        _bad_request(exc)


@router.patch("/analysis/layers/{layer_id}", response_model=AnalysisState)
async def edit_layer(
    layer_id: ReviewLayer,
    payload: LayerEditRequest,
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    """Apply reviewer edits to a layer's text or score."""
    try:
        return orchestrator.edit_layer(layer_id, payload)
    except InputValidationError as exc:
        _bad_request(exc)


@router.post("/analysis/report", response_model=AnalysisState)
async def generate_report(
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    """Synthesize the summary report; provider failures come back inline."""
    try:
        return await orchestrator.generate_report()
    except InputValidationError as exc:
        _bad_request(exc)


@router.put("/analysis/report/actual-performance", response_model=AnalysisState)
async def update_actual_performance(
    payload: ActualPerformance,
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    try:
        return orchestrator.update_actual_performance(payload)
    except InputValidationError as exc:
        _bad_request(exc)


@router.post("/analysis/personnel", response_model=MagicFactorAnalysis)
async def analyze_personnel(
    payload: PersonnelRequest,
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> MagicFactorAnalysis:
    """Describe the signature style of a director or actor."""
    try:
        return await orchestrator.analyze_personnel(payload)
    except InputValidationError as exc:
        _bad_request(exc)


@router.post("/analysis/morphokinetics", response_model=AnalysisState)
async def analyze_morphokinetics(
    orchestrator: Annotated[Any, Depends(get_analysis_orchestrator)],
) -> AnalysisState:
    try:
        return await orchestrator.analyze_morphokinetics()
    except InputValidationError as exc:
        _bad_request(exc)


@router.get("/usage", response_model=list[UsageLogEntry])
async def list_usage(
    ledger: Annotated[Any, Depends(get_usage_ledger)],
) -> list[UsageLogEntry]:
    """Return estimated usage, newest first."""
    return ledger.entries


@router.delete("/usage", status_code=HTTPStatus.NO_CONTENT)
async def clear_usage(
    ledger: Annotated[Any, Depends(get_usage_ledger)],
) -> None:
    ledger.clear()
    logger.info("Token usage log cleared")


@router.get("/usage/config", response_model=TokenBudgetConfig)
async def get_usage_config(
    ledger: Annotated[Any, Depends(get_usage_ledger)],
) -> TokenBudgetConfig:
    return ledger.config


@router.put("/usage/config", response_model=TokenBudgetConfig)
async def update_usage_config(
    payload: TokenBudgetConfig,
    ledger: Annotated[Any, Depends(get_usage_ledger)],
) -> TokenBudgetConfig:
    return ledger.update_config(payload)


__all__ = ["router"]
