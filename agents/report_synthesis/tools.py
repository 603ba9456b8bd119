"""Tool abstractions used by the report synthesis agent."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from agents.report_synthesis.models import ReportRequest
from app.clients.llm import LLMGateway
from app.schemas.analysis import (
    FinancialState,
    LayerAnalysisResult,
    SocialSnippets,
    SummaryReport,
)
from app.services.citations import filter_relevant_citations, merge_citations
from app.services.prompts import (
    build_final_report_prompt,
    build_financials_prompt,
    build_roi_prompt,
)
from app.services.text_extraction import (
    ParsedFinancials,
    parse_financials,
    split_final_report,
)

FINANCIALS_TEMPERATURE = 0.2
ROI_TEMPERATURE = 0.6
REPORT_TEMPERATURE = 0.7

ProgressCallback = Callable[[int, FinancialState], None]

logger = logging.getLogger(__name__)


class ReportTools:
    """Facade over the gateway calls needed while building a report."""

    def __init__(
        self,
        gateway: LLMGateway,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._gateway = gateway
        self._on_progress = on_progress

    def publish(self, run_id: int, financials: FinancialState) -> None:
        """Expose intermediate financial state (loading flags) to the caller."""
        if self._on_progress is not None:
            self._on_progress(run_id, financials)

    async def fetch_financials(self, title: str) -> ParsedFinancials:
        prompt = build_financials_prompt(title)
        result = await self._gateway.generate(
            prompt,
            operation=f"Fetch Movie Financials: {title}",
            use_search=True,
            temperature=FINANCIALS_TEMPERATURE,
        )
        parsed = parse_financials(result.json())
        parsed.sources = filter_relevant_citations(
            merge_citations(result.citations, parsed.sources)
        )
        return parsed

    async def assess_roi(
        self,
        *,
        title: str,
        budget: float,
        duration: Optional[str],
        is_estimated: bool,
        layers: Sequence[LayerAnalysisResult],
    ) -> str:
        prompt = build_roi_prompt(title, budget, duration, is_estimated, layers)
        result = await self._gateway.generate(
            prompt,
            operation=f"Qualitative ROI Analysis: {title}",
            temperature=ROI_TEMPERATURE,
        )
        return result.text.strip()

    async def synthesize_report(
        self,
        request: ReportRequest,
        financials: Optional[FinancialState],
    ) -> SummaryReport:
        prompt = build_final_report_prompt(
            request["title"],
            request["stage"],
            request["layers"],
            request["personnel"],
            financials,
        )
        result = await self._gateway.generate(
            prompt,
            operation=f"Final Report: {request['title']}",
            temperature=REPORT_TEMPERATURE,
        )
        parsed = split_final_report(result.text)
        if not parsed.body_text:
            logger.warning("Final report for %s came back without a body.", request["title"])
        return SummaryReport(
            body_text=parsed.body_text,
            social_snippets=SocialSnippets(twitter=parsed.twitter, linkedin=parsed.linkedin),
            overall_improvements=parsed.overall_improvements,
            financials=financials,
        )


__all__ = ["ProgressCallback", "ReportTools"]
