"""
LangGraph workflow definition for the report synthesis sub-agent.
"""

from __future__ import annotations

import logging
from typing import Any

from langgraph.graph import END, START, StateGraph

from agents.report_synthesis.models import ReportRequest, ReportState
from agents.report_synthesis.tools import ReportTools
from app.clients.llm import LLMGatewayError
from app.schemas.analysis import FinancialState

NO_BUDGET_FOUND = "No budget figure could be found for this title."

logger = logging.getLogger(__name__)


async def run_budget_lookup(
    financials: FinancialState,
    *,
    run_id: int,
    title: str,
    tools: ReportTools,
) -> FinancialState:
    """Fetch the production budget once; later calls are no-ops."""
    if not financials.needs_budget_fetch():
        return financials

    loading = financials.model_copy(update={"is_loading_budget": True})
    tools.publish(run_id, loading)
    try:
        parsed = await tools.fetch_financials(title)
    except Exception as exc:
        if isinstance(exc, LLMGatewayError):
            logger.warning("Budget lookup for %s failed: %s", title, exc)
        else:
            logger.exception("Budget lookup for %s raised unexpectedly", title)
        failed = loading.model_copy(
            update={
                "is_loading_budget": False,
                "budget_error": str(exc) or type(exc).__name__,
            }
        )
        tools.publish(run_id, failed)
        return failed

    update: dict[str, Any] = {
        "is_loading_budget": False,
        "fetched_budget": parsed.budget,
        "currency": parsed.currency,
        "duration_estimate": parsed.duration,
        "budget_sources": parsed.sources,
    }
    if parsed.budget is None:
        update["budget_error"] = NO_BUDGET_FOUND
    loaded = loading.model_copy(update=update)
    tools.publish(run_id, loaded)
    return loaded


async def run_roi_assessment(
    financials: FinancialState,
    *,
    request: ReportRequest,
    tools: ReportTools,
) -> FinancialState:
    """Produce ROI commentary once a budget is known."""
    budget = financials.budget_for_roi()
    if budget is None or not financials.needs_roi():
        return financials

    loading = financials.model_copy(update={"is_loading_roi": True})
    tools.publish(request["run_id"], loading)
    try:
        roi_text = await tools.assess_roi(
            title=request["title"],
            budget=budget,
            duration=loading.duration_estimate,
            is_estimated=loading.user_budget is None,
            layers=request["layers"],
        )
    except LLMGatewayError as exc:
        logger.warning("ROI commentary for %s failed: %s", request["title"], exc)
        settled = loading.model_copy(update={"is_loading_roi": False, "roi_error": str(exc)})
    else:
        settled = loading.model_copy(update={"is_loading_roi": False, "roi_text": roi_text})
    tools.publish(request["run_id"], settled)
    return settled


async def _fetch_budget(state: ReportState, tools: ReportTools) -> ReportState:
    request = state["request"]
    financials = state.get("financials") or FinancialState()
    state["financials"] = await run_budget_lookup(
        financials,
        run_id=request["run_id"],
        title=request["title"],
        tools=tools,
    )
    return state


async def _assess_roi(state: ReportState, tools: ReportTools) -> ReportState:
    financials = state.get("financials")
    if financials is None:
        return state
    state["financials"] = await run_roi_assessment(
        financials, request=state["request"], tools=tools
    )
    return state


async def _synthesize_report(state: ReportState, tools: ReportTools) -> ReportState:
    """Run the final synthesis; failures are kept on the state, not raised."""
    request = state["request"]
    financials = state.get("financials") if request["enable_roi"] else None
    try:
        state["report"] = await tools.synthesize_report(request, financials)
    except LLMGatewayError as exc:
        logger.warning("Report synthesis for %s failed: %s", request["title"], exc)
        state["report_error"] = str(exc)
    return state


def _route_from_start(state: ReportState) -> str:
    if state["request"]["enable_roi"]:
        return "fetch_budget"
    return "synthesize_report"


def create_report_graph(tools: ReportTools) -> Any:
    """Compile and return the report LangGraph workflow."""
    graph = StateGraph(ReportState)

    async def fetch_budget_node(state: ReportState) -> ReportState:
        return await _fetch_budget(state, tools)

    async def assess_roi_node(state: ReportState) -> ReportState:
        return await _assess_roi(state, tools)

    async def synthesize_report_node(state: ReportState) -> ReportState:
        return await _synthesize_report(state, tools)

    graph.add_node("fetch_budget", fetch_budget_node)
    graph.add_node("assess_roi", assess_roi_node)
    graph.add_node("synthesize_report", synthesize_report_node)

    graph.add_conditional_edges(
        START,
        _route_from_start,
        {"fetch_budget": "fetch_budget", "synthesize_report": "synthesize_report"},
    )
    graph.add_edge("fetch_budget", "assess_roi")
    graph.add_edge("assess_roi", "synthesize_report")
    graph.add_edge("synthesize_report", END)
    return graph.compile()


__all__ = ["create_report_graph", "run_budget_lookup", "run_roi_assessment"]
