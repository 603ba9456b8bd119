"""Service layer exports."""

from .analysis_orchestrator import (
    AnalysisOrchestrator,
    InputValidationError,
    aggregate_personnel,
)
from .usage_ledger import UsageLedger

__all__ = [
    "AnalysisOrchestrator",
    "InputValidationError",
    "UsageLedger",
    "aggregate_personnel",
]
