"""Report synthesis sub-agent package.

Runs the budget lookup, ROI commentary and final report steps of an
analysis run as a LangGraph workflow.
"""

from __future__ import annotations

from agents.report_synthesis.graph import (
    create_report_graph,
    run_budget_lookup,
    run_roi_assessment,
)
from agents.report_synthesis.models import ReportRequest, ReportState
from agents.report_synthesis.tools import ReportTools

__all__ = [
    "ReportRequest",
    "ReportState",
    "ReportTools",
    "create_report_graph",
    "run_budget_lookup",
    "run_roi_assessment",
]
