"""
Prompt builders for every model call the analysis pipeline makes.

Builders are pure: the same arguments always give the same prompt. Each one
embeds the anchors that ``app.services.text_extraction`` looks for.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from app.core.constants import MAX_SCORE
from app.schemas.analysis import (
    FinancialState,
    ImprovementItems,
    LayerAnalysisResult,
    PersonnelAggregate,
    ReviewLayer,
    ReviewStage,
)
from app.services.text_extraction import (
    DIRECTOR_LABEL,
    ENHANCEMENTS_LABEL,
    LINKEDIN_END,
    LINKEDIN_START,
    MAIN_CAST_LABEL,
    MORPHO_MOMENTS_HEADER,
    MORPHO_SUMMARY_HEADER,
    MORPHO_TIMELINE_HEADER,
    OVERALL_IMPROVEMENTS_MARKER,
    PLOT_POINTS_LABEL,
    SCORE_LABEL,
    SHAPE_END,
    SHAPE_JUSTIFICATION_LABEL,
    SHAPE_NAME_LABEL,
    SHAPE_START,
    TWITTER_END,
    TWITTER_START,
)

NO_ANALYSIS_PLACEHOLDER = "No analysis."
NOT_ANALYZED_PLACEHOLDER = "Not analyzed."
NOT_SCORED = "Not Scored"
REPORT_LINK_PLACEHOLDER = "[LINK_TO_FULL_REPORT_HERE]"
ROI_EXCERPT_CHARS = 200

_STAGE_CONTEXT = {
    ReviewStage.IDEA_ANNOUNCEMENT: 'The movie/series "{title}" has just been announced.',
    ReviewStage.TRAILER: 'A trailer for the movie/series "{title}" has been released.',
    ReviewStage.MOVIE_RELEASED: 'The movie/series "{title}" has been released.',
}

_STORY_FOCUS = (
    'When analyzing the "Magic of Story/Script", provide a comprehensive analysis '
    "(250-350 words) covering:\n"
    "1. Plot Structure & Pacing.\n"
    "2. Character Development (arcs, relatability).\n"
    "3. Dialogue (quality, naturalness, contribution).\n"
    "4. Thematic Depth.\n"
    "5. Originality & Genre Conventions (usage, subversion, similarity to existing works).\n"
    "6. World-Building (if relevant)."
)

_CASTING_FOCUS = (
    'Within your analysis of "Magic of Conceptualization", pay specific attention to '
    "the casting choices. State whether the casting appears Character-centric, "
    'Star-centric, Predictable, or Inspired ("Magic in Casting") and include that '
    "assessment in the main analysis text."
)


def _join(lines: Iterable[Optional[str]]) -> str:
    """Join non-empty prompt sections with blank lines between them."""
    return "\n\n".join(line.strip() for line in lines if line and line.strip())


def _layer_by_id(
    layers: Sequence[LayerAnalysisResult], layer_id: ReviewLayer
) -> Optional[LayerAnalysisResult]:
    for layer in layers:
        if layer.layer_id == layer_id:
            return layer
    return None


def _layer_text(layer: Optional[LayerAnalysisResult]) -> str:
    if layer is None or layer.error:
        return ""
    return (layer.edited_text or layer.cleaned_text or "").strip()


def _format_items(items: Optional[ImprovementItems]) -> str:
    if not items:
        return "N/A"
    if isinstance(items, list):
        return "\n".join(f"- {item}" for item in items)
    return items


def overall_user_score(layers: Sequence[LayerAnalysisResult]) -> Optional[float]:
    scores = [layer.user_score for layer in layers if layer.user_score is not None]
    if not scores:
        return None
    return sum(scores) / len(scores)


def format_overall_score(layers: Sequence[LayerAnalysisResult]) -> str:
    score = overall_user_score(layers)
    if score is None:
        return NOT_SCORED
    return f"{score:.1f}/{MAX_SCORE}"


def _shape_instructions(title: str) -> str:
    return "\n".join(
        [
            "Additionally, analyze the story's narrative structure using Kurt Vonnegut's "
            "story shapes theory.",
            "1. Identify which common story shape it most closely resembles "
            "(e.g., Man in Hole, Boy Meets Girl, Cinderella, From Bad to Worse, Which Way is Up?).",
            f'2. Give a brief (2-3 sentences) justification for why this shape fits "{title}".',
            "3. Give 3-5 key plot points mapping the trajectory, each with a time from 0.0 "
            "(beginning) to 1.0 (end), a fortune from -1.0 (ill fortune) to 1.0 "
            "(good fortune), and a 5-15 word description.",
            "Format this after the main analysis, score, and enhancements exactly as:",
            SHAPE_START,
            f"{SHAPE_NAME_LABEL} [Shape Name]",
            f"{SHAPE_JUSTIFICATION_LABEL} [Your justification text here.]",
            f"{PLOT_POINTS_LABEL} [(time1, fortune1, 'description1'), (time2, fortune2, 'description2'), ...]",
            SHAPE_END,
            "Example:",
            SHAPE_START,
            f"{SHAPE_NAME_LABEL} Man in Hole",
            f"{SHAPE_JUSTIFICATION_LABEL} The protagonist starts in a decent position, faces a "
            "significant downturn, but eventually climbs out to an even better state.",
            f"{PLOT_POINTS_LABEL} [(0.0, 0.2, 'Starts content'), (0.3, -0.8, 'Major crisis hits'), "
            "(0.7, -0.1, 'Begins recovery'), (1.0, 0.6, 'Ends in better state')]",
            SHAPE_END,
        ]
    )


def build_layer_prompt(
    title: str,
    stage: ReviewStage,
    layer: ReviewLayer,
    layer_title: str,
    layer_description: str,
) -> str:
    """Prompt for one layer analysis, including the structured-field anchors."""
    search_instructions = None
    if layer == ReviewLayer.CONCEPTUALIZATION:
        search_instructions = (
            f'Using your search capabilities, identify the director of "{title}". '
            f'If found, state it on its own line as "{DIRECTOR_LABEL} [Name found]".'
        )
    elif layer == ReviewLayer.PERFORMANCE:
        search_instructions = (
            f'Using your search capabilities, identify up to 3-4 key main cast members of "{title}". '
            f'If found, list them on one line as "{MAIN_CAST_LABEL} [Actor 1, Actor 2, Actor 3]".'
        )

    return _join(
        [
            'You are an expert film and television critic using the "Greybrainer" methodology.',
            f'Analyze "{title}" ({stage.value}) focusing on "{layer_title}" ({layer_description}).',
            _STAGE_CONTEXT[stage].format(title=title),
            search_instructions,
            _CASTING_FOCUS if layer == ReviewLayer.CONCEPTUALIZATION else None,
            "Provide a concise (150-250 words unless stated otherwise) insightful analysis of "
            "the originality and potential impact of this layer.",
            _STORY_FOCUS if layer == ReviewLayer.STORY else None,
            "Your tone: analytical, academic, engaging. Highlight standout or derivative aspects.",
            "Based on your qualitative analysis, conclude with a suggested score for this layer "
            f'out of {MAX_SCORE} (e.g., "{SCORE_LABEL} 7.5/{MAX_SCORE}").',
            f'After the main analysis and score, add a section titled "{ENHANCEMENTS_LABEL}" '
            "followed by 1-3 concise bullet points (50-100 words total) on how this layer "
            "could have been improved. Use standard bullet points (- item).",
            _shape_instructions(title) if layer == ReviewLayer.STORY else None,
        ]
    )


def _personnel_context(personnel: Optional[PersonnelAggregate]) -> Optional[str]:
    if personnel is None or not (personnel.director or personnel.cast):
        return None
    parts = ["Key personnel considered:"]
    if personnel.director:
        parts.append(f"Director - {personnel.director}.")
    if personnel.cast:
        parts.append(f"Main Cast - {', '.join(personnel.cast)}.")
    return " ".join(parts)


def _financial_context(financials: Optional[FinancialState]) -> Optional[str]:
    if financials is None:
        return None
    lines: list[str] = []
    if financials.user_budget is not None:
        lines.append(f"The user provided an estimated budget of {financials.user_budget:,.0f} USD.")
    elif financials.fetched_budget is not None:
        line = (
            f"An AI-estimated budget of approximately {financials.fetched_budget:,.0f} "
            f"{financials.currency or 'USD'} was found."
        )
        if financials.duration_estimate:
            line += f" The estimated production duration was {financials.duration_estimate}."
        lines.append(line + " This financial data is approximate.")
    if financials.roi_text:
        lines.append(
            "A qualitative ROI analysis was also generated, considering this budget "
            "against creative factors."
        )
    return "\n".join(lines) or None


def build_final_report_prompt(
    title: str,
    stage: ReviewStage,
    layers: Sequence[LayerAnalysisResult],
    personnel: Optional[PersonnelAggregate] = None,
    financials: Optional[FinancialState] = None,
) -> str:
    story = _layer_by_id(layers, ReviewLayer.STORY)
    concept = _layer_by_id(layers, ReviewLayer.CONCEPTUALIZATION)
    performance = _layer_by_id(layers, ReviewLayer.PERFORMANCE)
    overall_score = format_overall_score(layers)
    safe_title = re.sub(r"[^a-zA-Z0-9]", "", title)
    score_context = None
    if overall_user_score(layers) is not None:
        score_context = (
            "Editor-assigned scores complement this qualitative summary. "
            f"The overall score is {overall_score}."
        )

    def improvements(layer: Optional[LayerAnalysisResult]) -> str:
        return _format_items(layer.improvement_items if layer else None)

    return _join(
        [
            'You are an expert film critic generating a "Greybrainer" summary report '
            f'for "{title}" ({stage.value}).',
            "Synthesize insights from the Story/Script, Conceptualization, and "
            "Performance/Execution layers. Output a cohesive, engaging summary "
            "(250-350 words). Tone: exciting, academic, critical.",
            _personnel_context(personnel),
            score_context,
            _financial_context(financials),
            "Layer Analyses:\n"
            f'1. Story/Script: "{_layer_text(story) or NO_ANALYSIS_PLACEHOLDER}"\n'
            f'2. Conceptualization: "{_layer_text(concept) or NO_ANALYSIS_PLACEHOLDER}"\n'
            f'3. Performance/Execution: "{_layer_text(performance) or NO_ANALYSIS_PLACEHOLDER}"',
            "Individual layer analyses also suggested potential enhancements:\n"
            f"Story: {improvements(story)}\n"
            f"Conceptualization: {improvements(concept)}\n"
            f"Performance: {improvements(performance)}",
            f'After the main report, provide "{OVERALL_IMPROVEMENTS_MARKER}" - a short '
            "section (2-3 bullet points, 100-150 words total, using standard bullet "
            "points like - item).",
            "After the improvement opportunities, generate two social media posts "
            'formatted as follows. Do not use markdown like "###" or "**" inside these blocks.',
            "\n".join(
                [
                    TWITTER_START,
                    "Generate a compelling Twitter (X) post (under 280 characters).",
                    "- Start with a strong hook.",
                    f'- Mention the title "{title}".',
                    f"- Include the Overall Greybrainer Score if available: {overall_score}.",
                    f"- Use 3-4 relevant hashtags (e.g., #{safe_title}, #FilmAnalysis, "
                    "#MovieReview, #GreybrainerAI).",
                    f'- End with a call to action and the placeholder "{REPORT_LINK_PLACEHOLDER}".',
                    TWITTER_END,
                ]
            ),
            "\n".join(
                [
                    LINKEDIN_START,
                    "Generate a professional LinkedIn post (2-3 short paragraphs) for "
                    "filmmakers, producers, analysts, and film students.",
                    f'- Open with an analytical question about "{title}".',
                    "- Summarize the key findings across Story, Conceptualization, and "
                    f"Performance and the overall score if available: {overall_score}.",
                    "- Invite professional discussion and include the placeholder "
                    f'"{REPORT_LINK_PLACEHOLDER}".',
                    "- Include relevant professional hashtags (e.g., #FilmIndustry, "
                    "#Screenwriting, #Greybrainer).",
                    LINKEDIN_END,
                ]
            ),
        ]
    )


def build_financials_prompt(title: str) -> str:
    return _join(
        [
            f'For the movie titled "{title}", search the web for its estimated production '
            "budget and approximate production duration.",
            "Format the response as a JSON object:\n"
            "{\n"
            '  "budget": <number | null>,\n'
            '  "currency": "<USD, INR, EUR, etc.>",\n'
            '  "duration": "<string | null, e.g. \'18 months\'>",\n'
            '  "sources": [{"uri": "source_url", "title": "Source Title"}]\n'
            "}",
            "If a budget range is found, use the average. If no specific numerical budget "
            "is found, set budget to null. Prefer USD when several currencies are mentioned.",
        ]
    )


def roi_disclaimer(budget: float, duration: Optional[str], is_estimated: bool) -> str:
    if is_estimated:
        duration_clause = (
            f" and an estimated production duration of {duration}" if duration else ""
        )
        return (
            "Disclaimer: The following ROI potential analysis is speculative and based on "
            f"an AI-estimated budget of approximately {budget:,.0f} USD{duration_clause}. "
            "This financial data is approximate and sourced from public web information. "
            "Actual figures may vary."
        )
    return (
        "Disclaimer: The following ROI potential analysis is speculative and based on the "
        f"user-provided budget of {budget:,.0f} USD. This analysis considers creative factors "
        "against this budget and does not predict market performance."
    )


def build_roi_prompt(
    title: str,
    budget: float,
    duration: Optional[str],
    is_estimated: bool,
    layers: Sequence[LayerAnalysisResult],
) -> str:
    def excerpt(layer_id: ReviewLayer) -> str:
        text = _layer_text(_layer_by_id(layers, layer_id)) or NOT_ANALYZED_PLACEHOLDER
        return text[:ROI_EXCERPT_CHARS]

    source = "AI-estimated from web sources" if is_estimated else "provided by the user"
    budget_line = f"Budget: {budget:,.0f} USD (This budget was {source})."
    if is_estimated and duration:
        budget_line += f"\nEstimated Production Duration: {duration}."

    return _join(
        [
            "You are a film finance and production analyst.",
            f'Movie Title: "{title}"\n{budget_line}',
            "Summary of Creative Layer Analyses:\n"
            f"- Story/Script: {excerpt(ReviewLayer.STORY)}...\n"
            f"- Conceptualization: {excerpt(ReviewLayer.CONCEPTUALIZATION)}...\n"
            f"- Performance/Execution: {excerpt(ReviewLayer.PERFORMANCE)}...",
            "Task: Provide a qualitative assessment (150-250 words) of this title's potential "
            "Return on Investment based only on the creative summaries and the stated budget. "
            "Do NOT predict box office figures. Consider budget appropriateness, creative "
            "strengths versus budget, potential creative risks, and genre considerations.",
            "Start with the following EXACT disclaimer:\n"
            f'"{roi_disclaimer(budget, duration, is_estimated)}"',
            "Conclude with a general statement about the speculative nature of these "
            "thoughts. The entire response should be plain text.",
        ]
    )


def build_personnel_prompt(name: str, kind: str) -> str:
    return _join(
        [
            f'Analyze the unique "Magic Factor" of {kind.lower()} {name}.',
            "Provide a comprehensive analysis (200-300 words) covering:\n"
            "1. Signature style and distinctive approach\n"
            "2. Notable works and career highlights\n"
            "3. Unique contributions to cinema\n"
            "4. What makes them stand out in the industry\n"
            "5. Their impact on storytelling and filmmaking",
            f"Focus on what makes {name} distinctive and valuable in the film industry.",
        ]
    )


def build_title_suggestions_prompt(title: str) -> str:
    return _join(
        [
            "You are an assistant that helps find correct or similar movie/series titles.",
            f'Based on the user input "{title}", suggest 3-5 alternative, correctly spelled, '
            "or closely related existing movie or series titles.",
            "Order suggestions by similarity to the input, with the CLOSEST MATCH FIRST.",
            'Return a JSON array of strings, for example: ["Closest Match", "Second Match"]. '
            "If the input is accurate and you have no better suggestion, return an empty "
            "array or an array containing only the original title. Never invent titles. "
            "If the input is gibberish or too vague, return an empty array.",
        ]
    )


def build_morphokinetics_prompt(
    title: str,
    stage: ReviewStage = ReviewStage.MOVIE_RELEASED,
    existing_summary: Optional[str] = None,
) -> str:
    moment_format = (
        "Time: [0.0-1.0] | Intensity: [0-10] | Valence: [-1 to 1] | Emotion: [emotion] | "
        "Twist: [yes/no] | Pacing: [yes/no] | Description: [description]"
    )
    return _join(
        [
            f'Analyze the "Morphokinetics" (dynamic flow and emotional journey) of "{title}" '
            f"({stage.value}).",
            f"Existing analysis summary for context:\n{existing_summary}" if existing_summary else None,
            "Provide:\n"
            "1. Overall Summary (200-250 words): pacing, emotional rhythm, and how tension "
            "builds and releases.\n"
            "2. Timeline Structure Notes (100-150 words): linear, non-linear, flashbacks, "
            "multiple timelines.\n"
            "3. Key Moments (10-15 moments) with time position, intensity, emotional "
            "valence, dominant emotion, description, and whether it is a twist or pacing shift.",
            "Format your response as:\n"
            f"{MORPHO_SUMMARY_HEADER}\n[Your summary]\n\n"
            f"{MORPHO_TIMELINE_HEADER}\n[Your analysis]\n\n"
            f"{MORPHO_MOMENTS_HEADER}\n"
            f"1. {moment_format}\n"
            f"2. {moment_format}",
        ]
    )


__all__ = [
    "NOT_SCORED",
    "NO_ANALYSIS_PLACEHOLDER",
    "NOT_ANALYZED_PLACEHOLDER",
    "REPORT_LINK_PLACEHOLDER",
    "build_final_report_prompt",
    "build_financials_prompt",
    "build_layer_prompt",
    "build_morphokinetics_prompt",
    "build_personnel_prompt",
    "build_roi_prompt",
    "build_title_suggestions_prompt",
    "format_overall_score",
    "overall_user_score",
    "roi_disclaimer",
]
