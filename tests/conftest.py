"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from app import dependencies


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_dependency_singletons():
    """Drop cached stores, ledgers and orchestrators built during a test."""
    yield
    for factory in (
        dependencies.get_analysis_orchestrator,
        dependencies.get_llm_gateway,
        dependencies.get_usage_ledger,
        dependencies.get_sqlite_store,
    ):
        factory.cache_clear()
