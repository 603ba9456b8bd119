"""
Workflow engine that drives a movie analysis run end to end.

A run resolves the title (optionally through a suggestion round-trip), fans
the three layer analyses out concurrently, folds their personnel data, looks
up the budget when ROI commentary is requested, and on demand synthesizes the
final report. Every write-back carries the run id it was started under and is
dropped when a newer run has begun.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional, Sequence

import agents.report_synthesis as report_synthesis
from app.clients.llm import LLMGateway, LLMGatewayError
from app.core.constants import LAYER_DEFINITIONS, MAX_SCORE
from app.schemas.analysis import (
    ActualPerformance,
    AnalysisInput,
    AnalysisPhase,
    AnalysisState,
    FinancialState,
    LayerAnalysisResult,
    LayerDefinition,
    LayerEditRequest,
    MagicFactorAnalysis,
    PersonnelAggregate,
    PersonnelRequest,
    ReviewLayer,
)
from app.services.citations import filter_relevant_citations, merge_citations
from app.services.prompts import (
    build_layer_prompt,
    build_morphokinetics_prompt,
    build_personnel_prompt,
    build_title_suggestions_prompt,
)
from app.services.text_extraction import (
    parse_layer_response,
    parse_morphokinetics,
    parse_title_suggestions,
)

SUGGESTION_TEMPERATURE = 0.3
LAYER_TEMPERATURE = 0.7
PERSONNEL_TEMPERATURE = 0.7
MORPHOKINETICS_TEMPERATURE = 0.7

EMPTY_RESPONSE_ERROR = "The model returned an empty response."

StateListener = Callable[[AnalysisState], None]

logger = logging.getLogger(__name__)


class InputValidationError(ValueError):
    """Raised for requests rejected before any model call is made."""


def aggregate_personnel(layers: Iterable[LayerAnalysisResult]) -> PersonnelAggregate:
    """
    Fold director, cast and citations over layers in fixed layer order.

    The last non-empty director and cast win. Citations are unioned by URI and
    the first title seen for a URI is kept.
    """
    order = {definition.id: index for index, definition in enumerate(LAYER_DEFINITIONS)}
    ordered = sorted(layers, key=lambda layer: order.get(layer.layer_id, len(order)))

    director: Optional[str] = None
    cast: Optional[list[str]] = None
    for layer in ordered:
        if layer.director_found:
            director = layer.director_found
        if layer.cast_found:
            cast = list(layer.cast_found)
    citations = merge_citations(*(layer.citations for layer in ordered))
    return PersonnelAggregate(director=director, cast=cast, citations=citations)


class AnalysisOrchestrator:
    """Own the analysis state and move it through its phases."""

    def __init__(
        self,
        gateway: LLMGateway,
        *,
        layer_definitions: Sequence[LayerDefinition] = LAYER_DEFINITIONS,
    ) -> None:
        self._gateway = gateway
        self._definitions = tuple(layer_definitions)
        self._state = AnalysisState()
        self._listeners: list[StateListener] = []
        self._report_tools = report_synthesis.ReportTools(
            gateway, on_progress=self._on_financial_progress
        )
        self._report_graph = report_synthesis.create_report_graph(self._report_tools)

    @property
    def state(self) -> AnalysisState:
        return self._state.model_copy(deep=True)

    @property
    def run_id(self) -> int:
        return self._state.run_id

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener failed")

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._state.run_id

    def _start_run(self, data: Optional[AnalysisInput], phase: AnalysisPhase) -> int:
        run_id = self._state.run_id + 1
        self._state = AnalysisState(run_id=run_id, phase=phase, input=data)
        self._notify()
        return run_id

    @staticmethod
    def _validated_input(data: AnalysisInput) -> AnalysisInput:
        title = (data.title or "").strip()
        if not title:
            raise InputValidationError("Please enter a movie or series title.")
        return data.model_copy(update={"title": title})

    async def submit(self, data: AnalysisInput) -> AnalysisState:
        """Start a run, asking the model whether the title needs correcting."""
        data = self._validated_input(data)
        title = data.title
        run_id = self._start_run(data, AnalysisPhase.RESOLVING_TITLE)
        logger.info("Starting analysis run %d for %s", run_id, title)

        suggestions: list[str] = []
        suggestion_notice: Optional[str] = None
        try:
            result = await self._gateway.generate(
                build_title_suggestions_prompt(title),
                operation=f"Movie Title Suggestions: {title}",
                response_format="json",
                temperature=SUGGESTION_TEMPERATURE,
            )
            suggestions = parse_title_suggestions(result.json())
        except Exception as exc:
            if isinstance(exc, LLMGatewayError):
                logger.warning("Title suggestions for %s failed; using input title: %s", title, exc)
            else:
                logger.exception("Title suggestions for %s raised unexpectedly", title)
            suggestion_notice = f"Title suggestions unavailable: {str(exc) or type(exc).__name__}"

        if not self._is_current(run_id):
            logger.debug("Discarding title suggestions from stale run %d", run_id)
            return self.state

        self._state.notice = suggestion_notice
        if any(suggestion.casefold() != title.casefold() for suggestion in suggestions):
            self._state.suggestions = suggestions
            self._state.original_title = title
            self._state.phase = AnalysisPhase.AWAITING_USER_CHOICE
            self._notify()
            return self.state

        await self._analyze_layers(run_id, title)
        return self.state

    async def analyze_title(self, data: AnalysisInput) -> AnalysisState:
        """Start a run on the given title without the suggestion round-trip."""
        data = self._validated_input(data)
        run_id = self._start_run(data, AnalysisPhase.ANALYZING_LAYERS)
        logger.info("Starting analysis run %d for %s", run_id, data.title)
        await self._analyze_layers(run_id, data.title)
        return self.state

    def _require_pending_choice(self) -> None:
        if self._state.phase != AnalysisPhase.AWAITING_USER_CHOICE:
            raise InputValidationError("There are no title suggestions awaiting a choice.")

    async def select_suggestion(self, title: str) -> AnalysisState:
        self._require_pending_choice()
        chosen = (title or "").strip()
        if not chosen:
            raise InputValidationError("Please choose a title.")
        return await self._confirm_title(chosen)

    async def proceed_with_original(self) -> AnalysisState:
        self._require_pending_choice()
        original = self._state.original_title or (self._state.input.title if self._state.input else "")
        return await self._confirm_title(original)

    def cancel_suggestions(self) -> AnalysisState:
        """Abandon the pending choice and return to idle with no draft."""
        self._require_pending_choice()
        self._start_run(None, AnalysisPhase.IDLE)
        return self.state

    async def _confirm_title(self, title: str) -> AnalysisState:
        run_id = self._state.run_id
        if self._state.input is not None:
            self._state.input = self._state.input.model_copy(update={"title": title})
        self._state.suggestions = []
        await self._analyze_layers(run_id, title)
        return self.state

    async def _analyze_layers(self, run_id: int, title: str) -> None:
        data = self._state.input or AnalysisInput(title=title)
        self._state.phase = AnalysisPhase.ANALYZING_LAYERS
        self._state.layers = [
            LayerAnalysisResult(
                layer_id=definition.id,
                title=definition.title,
                short_title=definition.short_title,
                description=definition.description,
                is_loading=True,
            )
            for definition in self._definitions
        ]
        self._state.personnel = PersonnelAggregate()
        self._state.financials = (
            FinancialState(user_budget=data.user_budget) if data.enable_roi else None
        )
        self._state.report = None
        self._notify()

        outcomes = await asyncio.gather(
            *(self._run_layer(run_id, title, data, definition) for definition in self._definitions),
            return_exceptions=True,
        )
        if not self._is_current(run_id):
            logger.debug("Run %d superseded during layer analysis", run_id)
            return

        for definition, outcome in zip(self._definitions, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Layer %s raised unexpectedly",
                    definition.id.value,
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
                self._write_layer(run_id, definition.id, is_loading=False, error=str(outcome))

        self._state.personnel = aggregate_personnel(self._state.layers)
        self._notify()

        financials = self._state.financials
        if data.enable_roi and financials is not None and financials.needs_budget_fetch():
            self._state.phase = AnalysisPhase.FINANCIALS_PENDING
            self._notify()
            financials = await report_synthesis.run_budget_lookup(
                financials, run_id=run_id, title=title, tools=self._report_tools
            )
            if not self._is_current(run_id):
                return
            self._state.financials = financials

        self._state.phase = AnalysisPhase.LAYERS_DONE
        self._notify()

    async def _run_layer(
        self,
        run_id: int,
        title: str,
        data: AnalysisInput,
        definition: LayerDefinition,
    ) -> None:
        prompt = build_layer_prompt(
            title, data.stage, definition.id, definition.title, definition.description
        )
        try:
            result = await self._gateway.generate(
                prompt,
                operation=f"Layer Analysis: {definition.title}",
                use_search=True,
                temperature=LAYER_TEMPERATURE,
            )
        except LLMGatewayError as exc:
            logger.warning("Layer %s failed for %s: %s", definition.id.value, title, exc)
            self._write_layer(run_id, definition.id, is_loading=False, error=str(exc))
            return

        raw_text = result.text.strip()
        if not raw_text:
            self._write_layer(run_id, definition.id, is_loading=False, error=EMPTY_RESPONSE_ERROR)
            return

        parsed = parse_layer_response(raw_text, definition.id)
        self._write_layer(
            run_id,
            definition.id,
            raw_text=raw_text,
            cleaned_text=parsed.cleaned_text,
            edited_text=parsed.cleaned_text,
            director_found=parsed.director,
            cast_found=parsed.cast,
            citations=filter_relevant_citations(merge_citations(result.citations)),
            suggested_score=parsed.suggested_score,
            user_score=parsed.suggested_score,
            improvement_items=parsed.improvement_items,
            plot_shape=parsed.plot_shape,
            is_loading=False,
            error=None,
        )

    def _write_layer(self, run_id: int, layer_id: ReviewLayer, **updates) -> bool:
        if not self._is_current(run_id):
            logger.debug("Discarding stale %s result from run %d", layer_id.value, run_id)
            return False
        for index, layer in enumerate(self._state.layers):
            if layer.layer_id == layer_id:
                self._state.layers[index] = layer.model_copy(update=updates)
                self._notify()
                return True
        return False

    def edit_layer(self, layer_id: ReviewLayer, edits: LayerEditRequest) -> AnalysisState:
        """Apply reviewer edits to a settled layer's text and score."""
        layer = self._state.layer(layer_id)
        if layer is None or layer.is_loading:
            raise InputValidationError(f"Layer {layer_id.value} has no finished analysis to edit.")
        if edits.user_score is not None and edits.user_score > MAX_SCORE:
            raise InputValidationError(f"Scores must be between 0 and {MAX_SCORE}.")

        updates: dict[str, object] = {}
        if edits.edited_text is not None:
            updates["edited_text"] = edits.edited_text
        if edits.user_score is not None:
            updates["user_score"] = edits.user_score
        if updates:
            self._write_layer(self._state.run_id, layer_id, **updates)
        return self.state

    async def generate_report(self) -> AnalysisState:
        """Run the report workflow; failures leave the layers intact for a retry."""
        if self._state.phase not in (AnalysisPhase.LAYERS_DONE, AnalysisPhase.DONE):
            raise InputValidationError(
                "Layer analysis must finish before a report can be generated."
            )
        data = self._state.input
        if data is None:
            raise InputValidationError("There is no analysis to report on.")

        run_id = self._state.run_id
        previous_report = self._state.report
        self._state.phase = AnalysisPhase.REPORT_PENDING
        self._state.error = None
        self._notify()

        request: report_synthesis.ReportRequest = {
            "run_id": run_id,
            "title": data.title,
            "stage": data.stage,
            "layers": [layer.model_copy(deep=True) for layer in self._state.layers],
            "personnel": self._state.personnel.model_copy(deep=True),
            "enable_roi": data.enable_roi,
        }
        financials = self._state.financials
        if data.enable_roi and financials is None:
            financials = FinancialState(user_budget=data.user_budget)

        try:
            final_state = await self._report_graph.ainvoke(
                {"request": request, "financials": financials}
            )
        except Exception as exc:
            if self._is_current(run_id):
                self._state.phase = AnalysisPhase.LAYERS_DONE
                self._state.error = str(exc)
                self._notify()
            raise

        if not self._is_current(run_id):
            logger.debug("Discarding report from stale run %d", run_id)
            return self.state

        if final_state.get("financials") is not None:
            self._state.financials = final_state["financials"]
        report = final_state.get("report")
        if report is None:
            self._state.phase = AnalysisPhase.LAYERS_DONE
            self._state.error = final_state.get("report_error") or "Report generation failed."
        else:
            if previous_report is not None and previous_report.actual_performance is not None:
                report = report.model_copy(
                    update={"actual_performance": previous_report.actual_performance}
                )
            self._state.report = report
            self._state.phase = AnalysisPhase.DONE
        self._notify()
        return self.state

    def _on_financial_progress(self, run_id: int, financials: FinancialState) -> None:
        if not self._is_current(run_id):
            logger.debug("Discarding stale financial update from run %d", run_id)
            return
        self._state.financials = financials
        self._notify()

    def update_actual_performance(self, performance: ActualPerformance) -> AnalysisState:
        """Attach post-release numbers to the finished report."""
        if self._state.report is None:
            raise InputValidationError("Generate a report before adding actual performance.")
        self._state.report = self._state.report.model_copy(
            update={"actual_performance": performance}
        )
        self._notify()
        return self.state

    async def analyze_personnel(self, request: PersonnelRequest) -> MagicFactorAnalysis:
        name = request.name.strip()
        if not name:
            raise InputValidationError("Please enter a name to analyze.")
        run_id = self._state.run_id
        try:
            result = await self._gateway.generate(
                build_personnel_prompt(name, request.kind),
                operation=f"Personnel Analysis: {name}",
                use_search=True,
                temperature=PERSONNEL_TEMPERATURE,
            )
            analysis = MagicFactorAnalysis(
                name=name,
                kind=request.kind,
                analysis_text=result.text.strip(),
                citations=filter_relevant_citations(result.citations),
            )
        except LLMGatewayError as exc:
            logger.warning("Personnel analysis for %s failed: %s", name, exc)
            analysis = MagicFactorAnalysis(name=name, kind=request.kind, error=str(exc))

        if not self._is_current(run_id):
            logger.debug("Discarding personnel analysis from stale run %d", run_id)
            return analysis

        key = (name.casefold(), request.kind)
        self._state.magic_factors = [
            existing
            for existing in self._state.magic_factors
            if (existing.name.casefold(), existing.kind) != key
        ] + [analysis]
        self._notify()
        return analysis

    async def analyze_morphokinetics(self) -> AnalysisState:
        data = self._state.input
        if data is None or self._state.phase in (
            AnalysisPhase.IDLE,
            AnalysisPhase.RESOLVING_TITLE,
            AnalysisPhase.AWAITING_USER_CHOICE,
        ):
            raise InputValidationError("Start an analysis before requesting morphokinetics.")

        run_id = self._state.run_id
        summary = None
        if self._state.report is not None:
            summary = self._state.report.body_text
        else:
            story = self._state.layer(ReviewLayer.STORY)
            if story is not None and not story.error:
                summary = story.edited_text or None

        try:
            result = await self._gateway.generate(
                build_morphokinetics_prompt(data.title, data.stage, summary),
                operation=f"Morphokinetics Analysis: {data.title}",
                temperature=MORPHOKINETICS_TEMPERATURE,
            )
        except LLMGatewayError as exc:
            logger.warning("Morphokinetics analysis for %s failed: %s", data.title, exc)
            if self._is_current(run_id):
                self._state.morphokinetics_error = str(exc)
                self._notify()
            return self.state

        if not self._is_current(run_id):
            logger.debug("Discarding morphokinetics from stale run %d", run_id)
            return self.state
        self._state.morphokinetics = parse_morphokinetics(result.text)
        self._state.morphokinetics_error = None
        self._notify()
        return self.state


__all__ = [
    "AnalysisOrchestrator",
    "InputValidationError",
    "StateListener",
    "aggregate_personnel",
]
