"""Public schema exports."""

from .analysis import (
    ActualPerformance,
    AnalysisInput,
    AnalysisPhase,
    AnalysisState,
    Citation,
    FinancialState,
    LayerAnalysisResult,
    LayerDefinition,
    LayerEditRequest,
    MagicFactorAnalysis,
    MorphokineticMoment,
    MorphokineticsAnalysis,
    PersonnelAggregate,
    PersonnelRequest,
    PlotPoint,
    PlotShape,
    ReviewLayer,
    ReviewStage,
    SocialSnippets,
    SuggestionChoice,
    SummaryReport,
    TokenBudgetConfig,
    UsageLogEntry,
)

__all__ = [
    "ActualPerformance",
    "AnalysisInput",
    "AnalysisPhase",
    "AnalysisState",
    "Citation",
    "FinancialState",
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
