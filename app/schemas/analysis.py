"""
Pydantic models describing movie analysis runs and their results.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class ReviewStage(str, Enum):
    """Point in a title's lifecycle the analysis is written for."""

    IDEA_ANNOUNCEMENT = "Idea Announcement"
    TRAILER = "Trailer Analysis"
    MOVIE_RELEASED = "Full Movie/Series Review"


class ReviewLayer(str, Enum):
    """The three fixed analysis dimensions."""

    STORY = "STORY"
    CONCEPTUALIZATION = "CONCEPTUALIZATION"
    PERFORMANCE = "PERFORMANCE"


class AnalysisPhase(str, Enum):
    IDLE = "idle"
    RESOLVING_TITLE = "resolving_title"
    AWAITING_USER_CHOICE = "awaiting_user_choice"
    ANALYZING_LAYERS = "analyzing_layers"
    FINANCIALS_PENDING = "financials_pending"
    LAYERS_DONE = "layers_done"
    REPORT_PENDING = "report_pending"
    DONE = "done"


ImprovementItems = Union[str, list[str]]


class LayerDefinition(BaseModel):
    """Static description of an analysis layer."""

    id: ReviewLayer
    title: str
    short_title: str
    description: str

    model_config = {"frozen": True}


class Citation(BaseModel):
    """A web source the model grounded its answer on."""

    uri: str
    title: str


class PlotPoint(BaseModel):
    time: float = Field(..., ge=0.0, le=1.0, description="0.0 is the beginning.")
    fortune: float = Field(..., ge=-1.0, le=1.0, description="-1.0 is ill fortune.")
    description: str


class PlotShape(BaseModel):
    """Vonnegut story shape extracted from the Story layer."""

    shape_name: str
    justification: str
    points: list[PlotPoint] = Field(..., min_length=1)


class AnalysisInput(BaseModel):
    """User-supplied parameters for an analysis run."""

    title: str = Field(..., description="Movie or series title as typed by the user.")
    stage: ReviewStage = Field(ReviewStage.MOVIE_RELEASED)
    user_budget: Optional[float] = Field(
        None,
        gt=0,
        description="Production budget in USD supplied by the user.",
    )
    enable_roi: bool = Field(
        False, description="Opt in to budget lookup and ROI commentary."
    )


class LayerAnalysisResult(BaseModel):
    """Per-layer outcome of a run."""

    layer_id: ReviewLayer
    title: str
    short_title: str
    description: str
    raw_text: str = ""
    cleaned_text: str = ""
    edited_text: str = ""
    is_loading: bool = False
    director_found: Optional[str] = None
    cast_found: Optional[list[str]] = None
    citations: list[Citation] = Field(default_factory=list)
    suggested_score: Optional[float] = None
    user_score: Optional[float] = None
    improvement_items: Optional[ImprovementItems] = None
    plot_shape: Optional[PlotShape] = None
    is_fallback: bool = False
    error: Optional[str] = None


class PersonnelAggregate(BaseModel):
    director: Optional[str] = None
    cast: Optional[list[str]] = None
    citations: list[Citation] = Field(default_factory=list)


class FinancialState(BaseModel):
    """Budget lookup and ROI commentary progress for a run."""

    user_budget: Optional[float] = None
    fetched_budget: Optional[float] = None
    currency: Optional[str] = None
    duration_estimate: Optional[str] = None
    budget_sources: list[Citation] = Field(default_factory=list)
    roi_text: Optional[str] = None
    is_loading_budget: bool = False
    is_loading_roi: bool = False
    budget_error: Optional[str] = None
    roi_error: Optional[str] = None
    is_fallback_budget: bool = False
    is_fallback_roi: bool = False

    def needs_budget_fetch(self) -> bool:
        """True when no budget is known and no lookup has been attempted."""
        return (
            self.user_budget is None
            and self.fetched_budget is None
            and not self.is_loading_budget
            and self.budget_error is None
        )

    def budget_for_roi(self) -> Optional[float]:
        if self.user_budget is not None:
            return self.user_budget
        return self.fetched_budget

    def needs_roi(self) -> bool:
        return (
            self.budget_for_roi() is not None
            and self.roi_text is None
            and not self.is_loading_roi
            and self.roi_error is None
        )


class SocialSnippets(BaseModel):
    twitter: Optional[str] = None
    linkedin: Optional[str] = None


class ActualPerformance(BaseModel):
    """Post-release performance numbers entered by the user."""

    rt_critics_score: Optional[float] = Field(None, ge=0, le=100)
    rt_audience_score: Optional[float] = Field(None, ge=0, le=100)
    metacritic_score: Optional[float] = Field(None, ge=0, le=100)
    box_office_notes: Optional[str] = None


class SummaryReport(BaseModel):
    body_text: str
    social_snippets: SocialSnippets = Field(default_factory=SocialSnippets)
    overall_improvements: Optional[ImprovementItems] = None
    financials: Optional[FinancialState] = None
    actual_performance: Optional[ActualPerformance] = None
    is_fallback: bool = False


class MagicFactorAnalysis(BaseModel):
    """Signature-style analysis of a director or actor."""

    name: str
    kind: Literal["Director", "Actor"]
    analysis_text: str = ""
    citations: list[Citation] = Field(default_factory=list)
    error: Optional[str] = None
    is_fallback: bool = False


class MorphokineticMoment(BaseModel):
    time: float
    intensity_score: int
    emotional_valence: float
    dominant_emotion: str
    event_description: str
    is_twist: bool = False
    is_pacing_shift: bool = False


class MorphokineticsAnalysis(BaseModel):
    """Pacing and emotional flow of a title."""

    overall_summary: str
    timeline_structure_notes: str
    key_moments: list[MorphokineticMoment] = Field(default_factory=list)
    is_fallback: bool = False


class UsageLogEntry(BaseModel):
    id: str
    timestamp: float
    operation: str
    est_input_chars: int
    est_output_chars: int
    est_tokens: int


class TokenBudgetConfig(BaseModel):
    """User-facing switch and limits for usage tracking."""

    is_enabled: bool = False
    free_tier_queries_per_day: Optional[int] = Field(None, ge=0)
    free_tier_queries_per_minute: Optional[int] = Field(None, ge=0)
    last_daily_reset_timestamp: float = 0.0


class AnalysisState(BaseModel):
    """Everything a presentation layer needs to render the current run."""

    run_id: int = 0
    phase: AnalysisPhase = AnalysisPhase.IDLE
    input: Optional[AnalysisInput] = None
    original_title: Optional[str] = None
    suggestions: list[str] = Field(default_factory=list)
    layers: list[LayerAnalysisResult] = Field(default_factory=list)
    personnel: PersonnelAggregate = Field(default_factory=PersonnelAggregate)
    financials: Optional[FinancialState] = None
    report: Optional[SummaryReport] = None
    error: Optional[str] = None
    notice: Optional[str] = None
    magic_factors: list[MagicFactorAnalysis] = Field(default_factory=list)
    morphokinetics: Optional[MorphokineticsAnalysis] = None
    morphokinetics_error: Optional[str] = None

    def layer(self, layer_id: ReviewLayer) -> Optional[LayerAnalysisResult]:
        for layer in self.layers:
            if layer.layer_id == layer_id:
                return layer
        return None


class SuggestionChoice(BaseModel):
    title: str = Field(..., min_length=1)


class LayerEditRequest(BaseModel):
    """Manual edits a reviewer applies to a layer before reporting."""

    edited_text: Optional[str] = None
    user_score: Optional[float] = Field(None, ge=0)


class PersonnelRequest(BaseModel):
    name: str = Field(..., min_length=1)
    kind: Literal["Director", "Actor"] = "Director"


__all__ = [
    "ActualPerformance",
    "AnalysisInput",
    "AnalysisPhase",
    "AnalysisState",
    "Citation",
    "FinancialState",
    "ImprovementItems",
    "LayerAnalysisResult",
    "LayerDefinition",
    "LayerEditRequest",
    "MagicFactorAnalysis",
    "MorphokineticMoment",
    "MorphokineticsAnalysis",
    "PersonnelAggregate",
    "PersonnelRequest",
    "PlotPoint",
    "PlotShape",
    "ReviewLayer",
    "ReviewStage",
    "SocialSnippets",
    "SuggestionChoice",
    "SummaryReport",
    "TokenBudgetConfig",
    "UsageLogEntry",
]
