try:
    from . import _bootstrap  # noqa: F401
    from ._stubs import ScriptedGateway
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _stubs import ScriptedGateway  # type: ignore

import asyncio

import pytest

from agents.report_synthesis.graph import NO_BUDGET_FOUND
from app.clients.llm import QuotaExceededError
from app.core.constants import LAYER_DEFINITIONS
from app.schemas import (
    ActualPerformance,
    AnalysisInput,
    AnalysisPhase,
    Citation,
    LayerAnalysisResult,
    LayerEditRequest,
    PersonnelRequest,
    ReviewLayer,
    ReviewStage,
)
from app.services import AnalysisOrchestrator, InputValidationError, aggregate_personnel
from app.services.analysis_orchestrator import EMPTY_RESPONSE_ERROR

LAYER_OPERATIONS = [f"Layer Analysis: {definition.title}" for definition in LAYER_DEFINITIONS]


def _result(layer_id: ReviewLayer, **fields) -> LayerAnalysisResult:
    definition = next(item for item in LAYER_DEFINITIONS if item.id == layer_id)
    return LayerAnalysisResult(
        layer_id=layer_id,
        title=definition.title,
        short_title=definition.short_title,
        description=definition.description,
        **fields,
    )


def test_aggregate_personnel_last_non_empty_director_wins() -> None:
    layers = [
        _result(ReviewLayer.PERFORMANCE, director_found="Director C", cast_found=["Actor"]),
        _result(ReviewLayer.STORY, director_found="Director A"),
        _result(ReviewLayer.CONCEPTUALIZATION, director_found=None),
    ]

    aggregate = aggregate_personnel(layers)

    assert aggregate.director == "Director C"
    assert aggregate.cast == ["Actor"]


def test_aggregate_personnel_merges_citations_by_uri() -> None:
    layers = [
        _result(ReviewLayer.STORY, citations=[Citation(uri="https://variety.com/a", title="First")]),
        _result(
            ReviewLayer.CONCEPTUALIZATION,
            citations=[
                Citation(uri="https://variety.com/a", title="Second"),
                Citation(uri="https://imdb.com/b", title="IMDb"),
            ],
        ),
    ]

    aggregate = aggregate_personnel(layers)

    assert [(c.uri, c.title) for c in aggregate.citations] == [
        ("https://variety.com/a", "First"),
        ("https://imdb.com/b", "IMDb"),
    ]


@pytest.mark.asyncio
async def test_dune_end_to_end_without_roi_makes_no_financial_calls() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.analyze_title(
        AnalysisInput(title="Dune", stage=ReviewStage.MOVIE_RELEASED)
    )

    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert sorted(gateway.operations) == sorted(LAYER_OPERATIONS)
    assert all(call["use_search"] for call in gateway.calls)

    story = state.layer(ReviewLayer.STORY)
    assert story.suggested_score == pytest.approx(8.0)
    assert story.user_score == pytest.approx(8.0)
    assert story.plot_shape is not None and len(story.plot_shape.points) == 3
    assert story.improvement_items == [
        "Give Chani more screen time.",
        "Clarify the politics of the Landsraad.",
    ]
    assert state.personnel.director == "Denis Villeneuve"
    assert state.personnel.cast == ["Timothée Chalamet", "Zendaya", "Rebecca Ferguson"]
    assert state.financials is None

    state = await orchestrator.generate_report()

    assert len(gateway.calls) == 4
    assert gateway.operations[-1] == "Final Report: Dune"
    assert state.phase == AnalysisPhase.DONE
    assert state.report.body_text == "Dune is a towering achievement in modern science fiction filmmaking."
    assert state.report.financials is None
    assert state.report.social_snippets.twitter.startswith("Dune is spectacle")
    assert state.report.overall_improvements == ["Deepen Chani's arc.", "Trim the exposition."]


@pytest.mark.asyncio
async def test_one_failed_layer_does_not_block_siblings_or_report() -> None:
    gateway = ScriptedGateway(
        {"Layer Analysis: Magic of Conceptualization": QuotaExceededError("Gemini")}
    )
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    concept = state.layer(ReviewLayer.CONCEPTUALIZATION)
    assert concept.error and "daily usage limits" in concept.error
    assert concept.raw_text == ""
    assert concept.is_loading is False
    for layer_id in (ReviewLayer.STORY, ReviewLayer.PERFORMANCE):
        layer = state.layer(layer_id)
        assert layer.error is None
        assert layer.raw_text
    assert state.personnel.director is None
    assert state.personnel.cast == ["Timothée Chalamet", "Zendaya", "Rebecca Ferguson"]

    state = await orchestrator.generate_report()

    assert state.phase == AnalysisPhase.DONE
    report_prompt = gateway.prompts_for("Final Report")[0]
    assert '2. Conceptualization: "No analysis."' in report_prompt


@pytest.mark.asyncio
async def test_unexpected_layer_exception_is_recorded_on_that_layer() -> None:
    gateway = ScriptedGateway({"Layer Analysis: Magic of Story/Script": RuntimeError("boom")})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    assert state.layer(ReviewLayer.STORY).error == "boom"
    assert state.layer(ReviewLayer.PERFORMANCE).error is None
    assert state.phase == AnalysisPhase.LAYERS_DONE


@pytest.mark.asyncio
async def test_empty_layer_response_is_an_error() -> None:
    gateway = ScriptedGateway({"Layer Analysis: Magic of Performance/Execution": "   "})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    assert state.layer(ReviewLayer.PERFORMANCE).error == EMPTY_RESPONSE_ERROR


@pytest.mark.asyncio
async def test_layer_citations_are_deduplicated_in_personnel() -> None:
    orchestrator = AnalysisOrchestrator(ScriptedGateway())

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    uris = [citation.uri for citation in state.personnel.citations]
    assert uris.count("https://variety.com/dune-review") == 1
    titles = {citation.uri: citation.title for citation in state.personnel.citations}
    assert titles["https://variety.com/dune-review"] == "Variety"


@pytest.mark.asyncio
async def test_layers_run_concurrently() -> None:
    started: list[str] = []
    release = asyncio.Event()

    def waiting_reply(text: str):
        async def reply(prompt: str) -> str:
            started.append(text)
            await release.wait()
            return text

        return reply

    gateway = ScriptedGateway(
        {operation: waiting_reply(f"{operation}\n\nSuggested Score: 5/10") for operation in LAYER_OPERATIONS}
    )
    orchestrator = AnalysisOrchestrator(gateway)

    task = asyncio.create_task(orchestrator.analyze_title(AnalysisInput(title="Dune")))
    for _ in range(10):
        await asyncio.sleep(0)
    assert len(started) == 3
    assert all(layer.is_loading for layer in orchestrator.state.layers)

    release.set()
    state = await asyncio.wait_for(task, timeout=1)
    assert all(layer.suggested_score == 5 for layer in state.layers)


@pytest.mark.asyncio
async def test_stale_run_results_are_discarded() -> None:
    release = asyncio.Event()

    async def slow_story(prompt: str) -> str:
        if '"Old Title"' in prompt:
            await release.wait()
            return "Stale story\n\nSuggested Score: 1/10"
        return "Fresh story\n\nSuggested Score: 9/10"

    gateway = ScriptedGateway({"Layer Analysis: Magic of Story/Script": slow_story})
    orchestrator = AnalysisOrchestrator(gateway)

    first = asyncio.create_task(orchestrator.analyze_title(AnalysisInput(title="Old Title")))
    for _ in range(10):
        await asyncio.sleep(0)
    first_run = orchestrator.run_id

    second_state = await orchestrator.analyze_title(AnalysisInput(title="New Title"))
    release.set()
    await asyncio.wait_for(first, timeout=1)

    state = orchestrator.state
    assert state.run_id == first_run + 1 == second_state.run_id
    assert state.input.title == "New Title"
    assert state.layer(ReviewLayer.STORY).cleaned_text == "Fresh story"
    assert state.phase == AnalysisPhase.LAYERS_DONE


@pytest.mark.asyncio
async def test_empty_title_is_rejected_without_calls() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)

    with pytest.raises(InputValidationError):
        await orchestrator.submit(AnalysisInput(title="   "))

    assert gateway.calls == []
    assert orchestrator.state.phase == AnalysisPhase.IDLE


@pytest.mark.asyncio
async def test_submit_waits_for_choice_when_suggestions_differ() -> None:
    gateway = ScriptedGateway({"Movie Title Suggestions": '["Dune", "Dune: Part Two"]'})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.submit(AnalysisInput(title="Dnue"))

    assert state.phase == AnalysisPhase.AWAITING_USER_CHOICE
    assert state.suggestions == ["Dune", "Dune: Part Two"]
    assert state.original_title == "Dnue"
    assert gateway.calls[0]["response_format"] == "json"
    run_id = state.run_id

    state = await orchestrator.select_suggestion("Dune")

    assert state.run_id == run_id
    assert state.input.title == "Dune"
    assert state.suggestions == []
    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert all('"Dune"' in prompt for prompt in gateway.prompts_for("Layer Analysis"))


@pytest.mark.asyncio
async def test_proceed_with_original_title() -> None:
    gateway = ScriptedGateway({"Movie Title Suggestions": '["Dune"]'})
    orchestrator = AnalysisOrchestrator(gateway)
    await orchestrator.submit(AnalysisInput(title="Dnue"))

    state = await orchestrator.proceed_with_original()

    assert state.input.title == "Dnue"
    assert state.phase == AnalysisPhase.LAYERS_DONE


@pytest.mark.asyncio
async def test_cancel_suggestions_returns_to_idle() -> None:
    gateway = ScriptedGateway({"Movie Title Suggestions": '["Dune"]'})
    orchestrator = AnalysisOrchestrator(gateway)
    await orchestrator.submit(AnalysisInput(title="Dnue"))

    state = orchestrator.cancel_suggestions()

    assert state.phase == AnalysisPhase.IDLE
    assert state.input is None
    assert state.suggestions == []
    with pytest.raises(InputValidationError):
        await orchestrator.select_suggestion("Dune")


@pytest.mark.asyncio
async def test_matching_suggestion_goes_straight_to_layers() -> None:
    gateway = ScriptedGateway({"Movie Title Suggestions": '["dune"]'})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.submit(AnalysisInput(title="Dune"))

    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert len(gateway.calls) == 4


@pytest.mark.asyncio
async def test_suggestion_failure_is_not_fatal() -> None:
    gateway = ScriptedGateway({"Movie Title Suggestions": "this is not json"})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.submit(AnalysisInput(title="Dune"))

    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert state.notice.startswith("Title suggestions unavailable")
    assert state.error is None
    assert all(layer.raw_text for layer in state.layers)


@pytest.mark.asyncio
async def test_unexpected_suggestion_exception_still_analyzes_input_title() -> None:
    gateway = ScriptedGateway({"Movie Title Suggestions": RuntimeError("socket closed")})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.submit(AnalysisInput(title="Dune"))

    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert state.notice == "Title suggestions unavailable: socket closed"
    assert state.error is None
    assert sorted(gateway.operations[1:]) == sorted(LAYER_OPERATIONS)


@pytest.mark.asyncio
async def test_roi_flow_fetches_budget_then_roi_then_report() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)
    seen_loading: list[bool] = []
    orchestrator.subscribe(
        lambda snapshot: seen_loading.append(
            bool(snapshot.financials and snapshot.financials.is_loading_budget)
        )
    )

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune", enable_roi=True))

    assert gateway.operations[-1] == "Fetch Movie Financials: Dune"
    assert any(seen_loading)
    assert state.financials.fetched_budget == pytest.approx(165_000_000)
    assert state.financials.currency == "USD"
    assert state.financials.duration_estimate == "2 years"
    assert state.financials.is_loading_budget is False
    assert [source.title for source in state.financials.budget_sources] == ["Box Office Mojo"]

    state = await orchestrator.generate_report()

    assert gateway.operations[-2:] == ["Qualitative ROI Analysis: Dune", "Final Report: Dune"]
    assert len(gateway.calls) == 6
    assert state.report.financials.roi_text.startswith("Disclaimer")
    roi_prompt = gateway.prompts_for("Qualitative ROI Analysis")[0]
    assert "AI-estimated" in roi_prompt


@pytest.mark.asyncio
async def test_user_budget_skips_lookup() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)

    await orchestrator.analyze_title(
        AnalysisInput(title="Dune", enable_roi=True, user_budget=5_000_000)
    )
    state = await orchestrator.generate_report()

    assert "Fetch Movie Financials: Dune" not in gateway.operations
    assert "user-provided budget" in gateway.prompts_for("Qualitative ROI Analysis")[0]
    assert state.report.financials.user_budget == pytest.approx(5_000_000)


@pytest.mark.asyncio
async def test_missing_budget_skips_roi_commentary() -> None:
    gateway = ScriptedGateway({"Fetch Movie Financials": '{"budget": null, "sources": []}'})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune", enable_roi=True))
    assert state.financials.budget_error == NO_BUDGET_FOUND

    state = await orchestrator.generate_report()

    assert "Qualitative ROI Analysis: Dune" not in gateway.operations
    assert gateway.operations.count("Fetch Movie Financials: Dune") == 1
    assert state.phase == AnalysisPhase.DONE


@pytest.mark.asyncio
async def test_unexpected_budget_exception_still_allows_report() -> None:
    gateway = ScriptedGateway({"Fetch Movie Financials": RuntimeError("boom")})
    orchestrator = AnalysisOrchestrator(gateway)

    state = await orchestrator.analyze_title(AnalysisInput(title="Dune", enable_roi=True))

    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert state.financials.is_loading_budget is False
    assert state.financials.budget_error == "boom"
    assert all(layer.raw_text for layer in state.layers)

    state = await orchestrator.generate_report()

    assert state.phase == AnalysisPhase.DONE
    assert gateway.operations.count("Fetch Movie Financials: Dune") == 1
    assert "Qualitative ROI Analysis: Dune" not in gateway.operations


@pytest.mark.asyncio
async def test_report_failure_keeps_layers_and_allows_retry() -> None:
    gateway = ScriptedGateway({"Final Report": QuotaExceededError("Gemini")})
    orchestrator = AnalysisOrchestrator(gateway)
    await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    state = await orchestrator.generate_report()

    assert state.phase == AnalysisPhase.LAYERS_DONE
    assert state.report is None
    assert "daily usage limits" in state.error
    assert all(layer.raw_text for layer in state.layers)

    gateway.replies["Final Report"] = "A recovered report."
    state = await orchestrator.generate_report()

    assert state.phase == AnalysisPhase.DONE
    assert state.error is None
    assert state.report.body_text == "A recovered report."


@pytest.mark.asyncio
async def test_report_requires_finished_layers() -> None:
    orchestrator = AnalysisOrchestrator(ScriptedGateway())

    with pytest.raises(InputValidationError):
        await orchestrator.generate_report()


@pytest.mark.asyncio
async def test_edits_flow_into_report_prompt() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)
    await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    with pytest.raises(InputValidationError):
        orchestrator.edit_layer(ReviewLayer.STORY, LayerEditRequest(user_score=11))

    state = orchestrator.edit_layer(
        ReviewLayer.STORY, LayerEditRequest(edited_text="My own take.", user_score=6)
    )
    assert state.layer(ReviewLayer.STORY).edited_text == "My own take."

    await orchestrator.generate_report()

    prompt = gateway.prompts_for("Final Report")[0]
    assert '1. Story/Script: "My own take."' in prompt
    assert "The overall score is 7.8/10." in prompt


@pytest.mark.asyncio
async def test_actual_performance_survives_report_regeneration() -> None:
    orchestrator = AnalysisOrchestrator(ScriptedGateway())
    await orchestrator.analyze_title(AnalysisInput(title="Dune"))

    with pytest.raises(InputValidationError):
        orchestrator.update_actual_performance(ActualPerformance(rt_critics_score=83))

    await orchestrator.generate_report()
    orchestrator.update_actual_performance(ActualPerformance(rt_critics_score=83))
    state = await orchestrator.generate_report()

    assert state.report.actual_performance.rt_critics_score == 83


@pytest.mark.asyncio
async def test_personnel_analysis_replaces_previous_entry() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)

    await orchestrator.analyze_personnel(PersonnelRequest(name="Denis Villeneuve"))
    analysis = await orchestrator.analyze_personnel(PersonnelRequest(name="denis villeneuve "))

    assert analysis.analysis_text == "Villeneuve favors scale and silence."
    assert [item.name for item in orchestrator.state.magic_factors] == ["denis villeneuve"]


@pytest.mark.asyncio
async def test_personnel_failure_is_reported_inline() -> None:
    gateway = ScriptedGateway({"Personnel Analysis": QuotaExceededError("Gemini")})
    orchestrator = AnalysisOrchestrator(gateway)

    analysis = await orchestrator.analyze_personnel(PersonnelRequest(name="Zendaya", kind="Actor"))

    assert analysis.error and analysis.analysis_text == ""


@pytest.mark.asyncio
async def test_morphokinetics_uses_story_summary() -> None:
    gateway = ScriptedGateway()
    orchestrator = AnalysisOrchestrator(gateway)

    with pytest.raises(InputValidationError):
        await orchestrator.analyze_morphokinetics()

    await orchestrator.analyze_title(AnalysisInput(title="Dune"))
    state = await orchestrator.analyze_morphokinetics()

    assert state.morphokinetics.overall_summary == "Measured build to an explosive midpoint."
    assert state.morphokinetics.key_moments[0].is_twist is True
    assert "lean coming-of-age epic" in gateway.prompts_for("Morphokinetics Analysis")[0]


@pytest.mark.asyncio
async def test_listener_failures_do_not_break_the_run() -> None:
    orchestrator = AnalysisOrchestrator(ScriptedGateway())

    def broken(_snapshot) -> None:
        raise RuntimeError("listener bug")

    unsubscribe = orchestrator.subscribe(broken)
    state = await orchestrator.analyze_title(AnalysisInput(title="Dune"))
    unsubscribe()

    assert state.phase == AnalysisPhase.LAYERS_DONE
