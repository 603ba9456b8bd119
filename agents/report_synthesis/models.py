"""
Data models shared across the report synthesis package.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from app.schemas.analysis import (
    FinancialState,
    LayerAnalysisResult,
    PersonnelAggregate,
    ReviewStage,
    SummaryReport,
)


class ReportRequest(TypedDict):
    """Snapshot of a run handed to the workflow."""

    run_id: int
    title: str
    stage: ReviewStage
    layers: list[LayerAnalysisResult]
    personnel: PersonnelAggregate
    enable_roi: bool


class ReportState(TypedDict, total=False):
    """State tracked inside the LangGraph workflow."""

    request: ReportRequest
    financials: Optional[FinancialState]
    report: SummaryReport
    report_error: str


__all__ = ["ReportRequest", "ReportState"]
