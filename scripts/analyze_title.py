#!/usr/bin/env python
"""Run a layered analysis of a movie or series from the terminal."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import get_settings  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.dependencies import get_analysis_orchestrator  # noqa: E402
from app.schemas import AnalysisInput, AnalysisState, ReviewStage  # noqa: E402

_STAGES = {
    "idea": ReviewStage.IDEA_ANNOUNCEMENT,
    "trailer": ReviewStage.TRAILER,
    "released": ReviewStage.MOVIE_RELEASED,
}


def _print_items(items) -> None:
    if not items:
        return
    if isinstance(items, list):
        for item in items:
            print(f"  - {item}")
    else:
        print(f"  {items}")


def _print_layers(state: AnalysisState) -> None:
    for layer in state.layers:
        print(f"== {layer.title} ==")
        if layer.error:
            print(f"Error: {layer.error}\n")
            continue
        score = "n/a" if layer.suggested_score is None else f"{layer.suggested_score:g}/10"
        print(f"Suggested score: {score}")
        print(layer.cleaned_text)
        if layer.improvement_items:
            print("Potential enhancements:")
            _print_items(layer.improvement_items)
        if layer.plot_shape:
            shape = layer.plot_shape
            print(f"Story shape: {shape.shape_name} ({len(shape.points)} points)")
        print()

    personnel = state.personnel
    if personnel.director:
        print(f"Director: {personnel.director}")
    if personnel.cast:
        print(f"Main cast: {', '.join(personnel.cast)}")
    for citation in personnel.citations:
        print(f"Source: {citation.title} <{citation.uri}>")


def _print_report(state: AnalysisState) -> None:
    if state.report is None:
        print(f"Report failed: {state.error}", file=sys.stderr)
        return
    report = state.report
    print("\n== Greybrainer Summary Report ==")
    print(report.body_text)
    if report.overall_improvements:
        print("Overall improvement opportunities:")
        _print_items(report.overall_improvements)
    if report.financials and report.financials.roi_text:
        print("\n== ROI commentary ==")
        print(report.financials.roi_text)
    if report.social_snippets.twitter:
        print(f"\nTwitter: {report.social_snippets.twitter}")


async def run(args: argparse.Namespace) -> int:
    orchestrator = get_analysis_orchestrator()
    data = AnalysisInput(
        title=args.title,
        stage=_STAGES[args.stage],
        user_budget=args.budget,
        enable_roi=args.roi,
    )
    state = await orchestrator.analyze_title(data)
    _print_layers(state)
    if not args.report:
        return 0
    state = await orchestrator.generate_report()
    _print_report(state)
    return 0 if state.report is not None else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Analyze a title across the Story, Conceptualization and Performance layers."
    )
    parser.add_argument("title", help="Movie or series title.")
    parser.add_argument(
        "--stage",
        choices=sorted(_STAGES),
        default="released",
        help="Lifecycle stage the analysis is written for.",
    )
    parser.add_argument(
        "--budget",
        type=float,
        default=None,
        help="Known production budget in USD; skips the budget lookup.",
    )
    parser.add_argument(
        "--roi",
        action="store_true",
        help="Look up the budget (unless given) and add ROI commentary to the report.",
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Also synthesize the summary report after the layers finish.",
    )
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)
    try:
        return asyncio.run(run(args))
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
