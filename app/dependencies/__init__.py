"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_analysis_orchestrator,
    get_llm_gateway,
    get_sqlite_store,
    get_usage_ledger,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_analysis_orchestrator",
    "get_app_settings",
    "get_llm_gateway",
    "get_sqlite_store",
    "get_usage_ledger",
]
