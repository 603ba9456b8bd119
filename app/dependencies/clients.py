"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import GeminiClient, GroqClient, LLMGateway, SQLiteStore
from app.dependencies.config import get_app_settings
from app.services import AnalysisOrchestrator, UsageLedger


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite config store."""
    settings = get_app_settings()
    return SQLiteStore(settings.store_db_path)


@lru_cache()
def get_usage_ledger() -> UsageLedger:
    """Provide the persisted token usage ledger."""
    settings = get_app_settings()
    return UsageLedger(
        get_sqlite_store(),
        default_enabled=settings.usage.tracking_enabled,
        max_entries=settings.usage.max_log_entries,
        chars_per_token=settings.usage.chars_per_token,
    )


@lru_cache()
def get_llm_gateway() -> LLMGateway:
    """Provide the gateway for the configured model provider."""
    settings = get_app_settings()
    if settings.llm_provider == "groq":
        return GroqClient(settings.groq, usage=get_usage_ledger())
    return GeminiClient(settings.gemini, usage=get_usage_ledger())


@lru_cache()
def get_analysis_orchestrator() -> AnalysisOrchestrator:
    """Provide the process-wide analysis state machine."""
    return AnalysisOrchestrator(get_llm_gateway())


__all__ = [
    "get_analysis_orchestrator",
    "get_llm_gateway",
    "get_sqlite_store",
    "get_usage_ledger",
]
