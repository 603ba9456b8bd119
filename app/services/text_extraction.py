"""
Parsers that turn free-text model responses into typed analysis fields.

Every parser here is total: on input it does not recognize it returns ``None``
(or the text verbatim) instead of raising. The anchor strings below are the
contract with ``app.services.prompts``; change them together.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from app.core.constants import MAX_SCORE
from app.schemas.analysis import (
    Citation,
    ImprovementItems,
    MorphokineticMoment,
    MorphokineticsAnalysis,
    PlotPoint,
    PlotShape,
    ReviewLayer,
)

DIRECTOR_LABEL = "Director:"
MAIN_CAST_LABEL = "Main Cast:"
SCORE_LABEL = "Suggested Score:"
ENHANCEMENTS_LABEL = "Potential Enhancements:"
SHAPE_START = "---VONNEGUT STORY SHAPE START---"
SHAPE_END = "---VONNEGUT STORY SHAPE END---"
SHAPE_NAME_LABEL = "Vonnegut Shape:"
SHAPE_JUSTIFICATION_LABEL = "Shape Justification:"
PLOT_POINTS_LABEL = "Plot Points:"
OVERALL_IMPROVEMENTS_MARKER = "Overall Improvement Opportunities:"
TWITTER_START = "---TWITTER POST START---"
TWITTER_END = "---TWITTER POST END---"
LINKEDIN_START = "---LINKEDIN POST START---"
LINKEDIN_END = "---LINKEDIN POST END---"
MORPHO_SUMMARY_HEADER = "**OVERALL SUMMARY:**"
MORPHO_TIMELINE_HEADER = "**TIMELINE STRUCTURE:**"
MORPHO_MOMENTS_HEADER = "**KEY MOMENTS:**"

MORPHO_SUMMARY_FALLBACK = "Analysis could not be parsed properly."
MORPHO_TIMELINE_FALLBACK = "Timeline analysis not available."

_FLAGS = re.IGNORECASE | re.DOTALL
_NUMBER = r"-?(?:\d+(?:\.\d*)?|\.\d+)"

_DIRECTOR_RE = re.compile(r"(?:\*\*)?Director:(?:\*\*)?[ \t]*([^\n]*)", re.IGNORECASE)
_MAIN_CAST_RE = re.compile(r"(?:\*\*)?Main Cast:(?:\*\*)?[ \t]*([^\n]*)", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*[-•*+]\s+")
_NUMBERED_RE = re.compile(r"^\s*\d+\.\s+")
_ENHANCEMENTS_RE = re.compile(
    r"Potential Enhancements:\**(.*?)(?=" + re.escape(SHAPE_START) + r"|\Z)", _FLAGS
)
_ENHANCEMENTS_SECTION_RE = re.compile(
    r"(?:\*\*)?Potential Enhancements:.*?(?=\n\s*\n|\n---|\n\*\*|\Z)", _FLAGS
)
_SHAPE_BLOCK_RE = re.compile(
    re.escape(SHAPE_START) + r"(.*?)" + re.escape(SHAPE_END), _FLAGS
)
_SHAPE_NAME_RE = re.compile(r"Vonnegut Shape:[ \t]*([^\n]*)", re.IGNORECASE)
_SHAPE_JUSTIFICATION_RE = re.compile(
    r"Shape Justification:\s*(.*?)(?=Plot Points:|\Z)", _FLAGS
)
_PLOT_POINTS_RE = re.compile(r"Plot Points:\s*\[([^\]]*)\]", _FLAGS)
_PLOT_POINT_RE = re.compile(
    r"\(\s*(" + _NUMBER + r")\s*,\s*(" + _NUMBER + r")\s*,\s*(['\"])(.*?)\3\s*\)",
    re.DOTALL,
)
_BLANK_RUN_RE = re.compile(r"\n[ \t]*(?:\n[ \t]*)+")
# A trailing "---" rule, or a "**" left alone on its line by a bolded marker.
_TRAILING_RULE_RE = re.compile(r"(?:\s*-{3,}|\s*(?:^|\n)[ \t]*\*\*)+\s*$")
_TWITTER_RE = re.compile(re.escape(TWITTER_START) + r"(.*?)" + re.escape(TWITTER_END), _FLAGS)
_LINKEDIN_RE = re.compile(
    re.escape(LINKEDIN_START) + r"(.*?)" + re.escape(LINKEDIN_END), _FLAGS
)
_MORPHO_SUMMARY_RE = re.compile(
    re.escape(MORPHO_SUMMARY_HEADER) + r"\s*(.*?)(?=" + re.escape(MORPHO_TIMELINE_HEADER) + r"|\Z)",
    _FLAGS,
)
_MORPHO_TIMELINE_RE = re.compile(
    re.escape(MORPHO_TIMELINE_HEADER) + r"\s*(.*?)(?=" + re.escape(MORPHO_MOMENTS_HEADER) + r"|\Z)",
    _FLAGS,
)
_MORPHO_MOMENTS_RE = re.compile(re.escape(MORPHO_MOMENTS_HEADER) + r"\s*(.*)$", _FLAGS)
_MORPHO_MOMENT_RE = re.compile(
    r"Time:\s*([\d.]+)\s*\|\s*Intensity:\s*(\d+)\s*\|\s*Valence:\s*([-\d.]+)\s*\|"
    r"\s*Emotion:\s*([^|]+)\|\s*Twist:\s*([^|]+)\|\s*Pacing:\s*([^|]+)\|"
    r"\s*Description:\s*(.+)",
    re.IGNORECASE,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ParsedLayer:
    """Structured fields recovered from one layer response."""

    cleaned_text: str
    director: Optional[str] = None
    cast: Optional[list[str]] = None
    suggested_score: Optional[float] = None
    improvement_items: Optional[ImprovementItems] = None
    plot_shape: Optional[PlotShape] = None


@dataclass(slots=True)
class ParsedReport:
    body_text: str
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    overall_improvements: Optional[ImprovementItems] = None


@dataclass(slots=True)
class ParsedFinancials:
    budget: Optional[float] = None
    currency: Optional[str] = None
    duration: Optional[str] = None
    sources: list[Citation] = field(default_factory=list)


def _score_pattern(max_score: int) -> re.Pattern[str]:
    return re.compile(
        r"(?:\*\*)?Suggested Score:(?:\*\*)?\s*\**\s*("
        + _NUMBER
        + r")\s*/\s*"
        + re.escape(str(max_score))
        + r"(?!\d)(?:\*\*)?",
        re.IGNORECASE,
    )


def _clean_inline(value: str) -> str:
    return value.strip().strip("*").strip()


def parse_director(text: str) -> Optional[str]:
    match = _DIRECTOR_RE.search(text or "")
    if not match:
        return None
    director = _clean_inline(match.group(1))
    return director or None


def parse_main_cast(text: str) -> Optional[list[str]]:
    match = _MAIN_CAST_RE.search(text or "")
    if not match:
        return None
    line = _clean_inline(match.group(1)).strip("[]").rstrip(".")
    cast = [name.strip().strip("*").strip() for name in line.split(",")]
    cast = [name for name in cast if name]
    return cast or None


def parse_suggested_score(text: str, max_score: int = MAX_SCORE) -> Optional[float]:
    """Return the anchored score clamped into ``[0, max_score]``."""
    match = _score_pattern(max_score).search(text or "")
    if not match:
        return None
    try:
        score = float(match.group(1))
    except ValueError:
        return None
    if math.isnan(score):
        return None
    return max(0.0, min(score, float(max_score)))


def parse_list_block(block: Optional[str]) -> Optional[ImprovementItems]:
    """
    Split a block into items when every line uses the same list style.

    Mixed or unmarked blocks come back verbatim (trimmed) as a single string.
    """
    if block is None:
        return None
    stripped = block.strip()
    if not stripped:
        return None

    lines = [line.strip() for line in stripped.splitlines() if line.strip()]
    if all(_BULLET_RE.match(line) for line in lines):
        return [_BULLET_RE.sub("", line, count=1) for line in lines]
    if all(_NUMBERED_RE.match(line) for line in lines):
        return [_NUMBERED_RE.sub("", line, count=1) for line in lines]
    return stripped


def parse_improvement_items(text: str) -> Optional[ImprovementItems]:
    match = _ENHANCEMENTS_RE.search(text or "")
    if not match:
        return None
    return parse_list_block(match.group(1))


def parse_plot_shape(text: str) -> Optional[PlotShape]:
    """
    Parse the delimited story-shape block of a Story layer response.

    Points outside the chart range are clamped and the list is ordered by
    time. A block whose point list yields no tuple is treated as malformed.
    """
    block_match = _SHAPE_BLOCK_RE.search(text or "")
    if not block_match:
        return None
    block = block_match.group(1).strip()

    name_match = _SHAPE_NAME_RE.search(block)
    justification_match = _SHAPE_JUSTIFICATION_RE.search(block)
    points_match = _PLOT_POINTS_RE.search(block)
    if not name_match or not justification_match or not points_match:
        return None

    shape_name = _clean_inline(name_match.group(1))
    justification = justification_match.group(1).strip()
    if not shape_name or not justification:
        return None

    points: list[PlotPoint] = []
    for point in _PLOT_POINT_RE.finditer(points_match.group(1)):
        try:
            time_value = float(point.group(1))
            fortune_value = float(point.group(2))
        except ValueError:
            continue
        if math.isnan(time_value) or math.isnan(fortune_value):
            continue
        points.append(
            PlotPoint(
                time=min(max(time_value, 0.0), 1.0),
                fortune=min(max(fortune_value, -1.0), 1.0),
                description=point.group(4).strip(),
            )
        )

    if not points:
        logger.debug("Story shape block had no parseable plot points.")
        return None

    points.sort(key=lambda item: item.time)
    return PlotShape(shape_name=shape_name, justification=justification, points=points)


def collapse_blank_lines(text: str) -> str:
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def clean_layer_text(raw: str, parsed: ParsedLayer) -> str:
    """Strip the recognized structured fields so the prose reads standalone."""
    cleaned = _SHAPE_BLOCK_RE.sub("", raw or "")
    if parsed.director:
        cleaned = _DIRECTOR_RE.sub("", cleaned, count=1)
    if parsed.cast:
        cleaned = _MAIN_CAST_RE.sub("", cleaned, count=1)
    if parsed.suggested_score is not None:
        cleaned = _score_pattern(MAX_SCORE).sub("", cleaned, count=1)
    if parsed.improvement_items is not None:
        cleaned = _ENHANCEMENTS_SECTION_RE.sub("", cleaned, count=1)
    return collapse_blank_lines(cleaned)


def parse_layer_response(raw: str, layer: ReviewLayer) -> ParsedLayer:
    text = (raw or "").strip()
    parsed = ParsedLayer(
        cleaned_text="",
        director=parse_director(text),
        cast=parse_main_cast(text),
        suggested_score=parse_suggested_score(text),
        improvement_items=parse_improvement_items(text),
        plot_shape=parse_plot_shape(text) if layer == ReviewLayer.STORY else None,
    )
    parsed.cleaned_text = clean_layer_text(text, parsed)
    return parsed


def split_final_report(text: str) -> ParsedReport:
    """
    Separate the synthesized report into body, social posts and improvements.

    The social blocks are excised first. The improvements section is always
    last in the body, so the split uses the final occurrence of its marker.
    """
    body = text or ""
    twitter = linkedin = None

    twitter_match = _TWITTER_RE.search(body)
    if twitter_match:
        twitter = twitter_match.group(1).strip() or None
        body = body.replace(twitter_match.group(0), "", 1)
    linkedin_match = _LINKEDIN_RE.search(body)
    if linkedin_match:
        linkedin = linkedin_match.group(1).strip() or None
        body = body.replace(linkedin_match.group(0), "", 1)

    improvements_raw: Optional[str] = None
    marker_index = body.rfind(OVERALL_IMPROVEMENTS_MARKER)
    if marker_index != -1:
        improvements_raw = body[marker_index + len(OVERALL_IMPROVEMENTS_MARKER):]
        improvements_raw = improvements_raw.lstrip("*")
        improvements_raw = _TRAILING_RULE_RE.sub("", improvements_raw)
        body = body[:marker_index]

    body = _TRAILING_RULE_RE.sub("", body.strip())
    return ParsedReport(
        body_text=collapse_blank_lines(body),
        twitter=twitter,
        linkedin=linkedin,
        overall_improvements=parse_list_block(improvements_raw),
    )


def parse_title_suggestions(payload: Any) -> list[str]:
    """Normalize a JSON suggestion payload into distinct non-empty titles."""
    if not isinstance(payload, list):
        return []
    seen: set[str] = set()
    titles: list[str] = []
    for item in payload:
        if not isinstance(item, str):
            continue
        title = item.strip()
        key = title.casefold()
        if not title or key in seen:
            continue
        seen.add(key)
        titles.append(title)
    return titles


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.replace(",", "").replace("$", "").strip()
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number) or number <= 0:
        return None
    return number


def parse_citations(payload: Any) -> list[Citation]:
    if not isinstance(payload, list):
        return []
    citations: list[Citation] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        uri = item.get("uri")
        if not isinstance(uri, str) or not uri.strip():
            continue
        uri = uri.strip()
        title = item.get("title")
        if not isinstance(title, str) or not title.strip():
            title = uri
        citations.append(Citation(uri=uri, title=title.strip()))
    return citations


def parse_financials(payload: Any) -> ParsedFinancials:
    if not isinstance(payload, dict):
        return ParsedFinancials()
    budget = _coerce_number(payload.get("budget"))
    currency = payload.get("currency")
    currency = currency.strip() if isinstance(currency, str) and currency.strip() else None
    if currency is None and budget is not None:
        currency = "USD"
    duration = payload.get("duration")
    duration = duration.strip() if isinstance(duration, str) and duration.strip() else None
    return ParsedFinancials(
        budget=budget,
        currency=currency,
        duration=duration,
        sources=parse_citations(payload.get("sources")),
    )


def _parse_moment(line: str) -> Optional[MorphokineticMoment]:
    match = _MORPHO_MOMENT_RE.search(line)
    if not match:
        return None
    try:
        return MorphokineticMoment(
            time=float(match.group(1)),
            intensity_score=int(match.group(2)),
            emotional_valence=float(match.group(3)),
            dominant_emotion=match.group(4).strip(),
            is_twist=match.group(5).strip().lower() == "yes",
            is_pacing_shift=match.group(6).strip().lower() == "yes",
            event_description=match.group(7).strip(),
        )
    except ValueError:
        return None


def parse_morphokinetics(text: str) -> MorphokineticsAnalysis:
    text = (text or "").strip()
    summary_match = _MORPHO_SUMMARY_RE.search(text)
    timeline_match = _MORPHO_TIMELINE_RE.search(text)
    moments_match = _MORPHO_MOMENTS_RE.search(text)

    moments: list[MorphokineticMoment] = []
    if moments_match:
        for line in moments_match.group(1).splitlines():
            if not _NUMBERED_RE.match(line):
                continue
            moment = _parse_moment(line)
            if moment is not None:
                moments.append(moment)

    summary = summary_match.group(1).strip() if summary_match else ""
    timeline = timeline_match.group(1).strip() if timeline_match else ""
    return MorphokineticsAnalysis(
        overall_summary=summary or MORPHO_SUMMARY_FALLBACK,
        timeline_structure_notes=timeline or MORPHO_TIMELINE_FALLBACK,
        key_moments=moments,
    )


__all__ = [
    "DIRECTOR_LABEL",
    "ENHANCEMENTS_LABEL",
    "LINKEDIN_END",
    "LINKEDIN_START",
    "MAIN_CAST_LABEL",
    "MORPHO_MOMENTS_HEADER",
    "MORPHO_SUMMARY_HEADER",
    "MORPHO_TIMELINE_HEADER",
    "OVERALL_IMPROVEMENTS_MARKER",
    "PLOT_POINTS_LABEL",
    "ParsedFinancials",
    "ParsedLayer",
    "ParsedReport",
    "SCORE_LABEL",
    "SHAPE_END",
    "SHAPE_JUSTIFICATION_LABEL",
    "SHAPE_NAME_LABEL",
    "SHAPE_START",
    "TWITTER_END",
    "TWITTER_START",
    "clean_layer_text",
    "collapse_blank_lines",
    "parse_citations",
    "parse_director",
    "parse_financials",
    "parse_improvement_items",
    "parse_layer_response",
    "parse_list_block",
    "parse_main_cast",
    "parse_morphokinetics",
    "parse_plot_shape",
    "parse_suggested_score",
    "parse_title_suggestions",
    "split_final_report",
]
