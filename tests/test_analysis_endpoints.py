try:
    from . import _bootstrap  # noqa: F401
    from ._stubs import ScriptedGateway
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _stubs import ScriptedGateway  # type: ignore

from http import HTTPStatus
from pathlib import Path

import httpx
import pytest

from app import dependencies
from app.clients.llm import InvalidCredentialError, LLMGatewayError, QuotaExceededError
from app.clients.sqlite_store import SQLiteStore
from app.main import app
from app.services import AnalysisOrchestrator, UsageLedger

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def api_overrides(tmp_path: Path):
    gateway = ScriptedGateway({"Movie Title Suggestions": '["Dune", "Dune: Part Two"]'})
    orchestrator = AnalysisOrchestrator(gateway)
    ledger = UsageLedger(SQLiteStore(str(tmp_path / "usage.db")), default_enabled=True)

    app.dependency_overrides.update(
        {
            dependencies.get_analysis_orchestrator: lambda: orchestrator,
            dependencies.get_usage_ledger: lambda: ledger,
        }
    )

    yield gateway, orchestrator, ledger

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


async def test_healthcheck_reports_provider(api_overrides) -> None:
    async with _client() as client:
        response = await client.get("/api/health")

    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "ok", "provider": "gemini"}


async def test_full_analysis_flow_over_http(api_overrides) -> None:
    gateway, _, _ = api_overrides

    async with _client() as client:
        submitted = await client.post("/api/analysis", json={"title": "Dnue"})
        assert submitted.status_code == HTTPStatus.OK
        assert submitted.json()["phase"] == "awaiting_user_choice"
        assert submitted.json()["suggestions"] == ["Dune", "Dune: Part Two"]

        selected = await client.post("/api/analysis/suggestions/select", json={"title": "Dune"})
        assert selected.json()["phase"] == "layers_done"
        assert selected.json()["personnel"]["director"] == "Denis Villeneuve"

        edited = await client.patch(
            "/api/analysis/layers/STORY", json={"edited_text": "Edited story.", "user_score": 7}
        )
        assert edited.json()["layers"][0]["edited_text"] == "Edited story."

        report = await client.post("/api/analysis/report")
        assert report.status_code == HTTPStatus.OK
        body = report.json()
        assert body["phase"] == "done"
        assert body["report"]["financials"] is None

        performance = await client.put(
            "/api/analysis/report/actual-performance", json={"rt_critics_score": 83}
        )
        assert performance.json()["report"]["actual_performance"]["rt_critics_score"] == 83

        current = await client.get("/api/analysis")
        assert current.json()["run_id"] == body["run_id"]

    assert gateway.operations[-1] == "Final Report: Dune"


async def test_empty_title_returns_bad_request(api_overrides) -> None:
    gateway, _, _ = api_overrides

    async with _client() as client:
        response = await client.post("/api/analysis", json={"title": "  "})

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert "title" in response.json()["detail"]
    assert gateway.calls == []


async def test_suggestion_actions_require_pending_choice(api_overrides) -> None:
    async with _client() as client:
        proceed = await client.post("/api/analysis/suggestions/proceed")
        cancel = await client.post("/api/analysis/suggestions/cancel")

    assert proceed.status_code == HTTPStatus.BAD_REQUEST
    assert cancel.status_code == HTTPStatus.BAD_REQUEST


async def test_report_before_layers_returns_bad_request(api_overrides) -> None:
    async with _client() as client:
        response = await client.post("/api/analysis/report")

    assert response.status_code == HTTPStatus.BAD_REQUEST


async def test_edit_rejects_out_of_range_score(api_overrides) -> None:
    _, orchestrator, _ = api_overrides

    async with _client() as client:
        await client.post("/api/analysis", json={"title": "Dnue"})
        await client.post("/api/analysis/suggestions/proceed")
        response = await client.patch("/api/analysis/layers/STORY", json={"user_score": 12})
        unknown = await client.patch("/api/analysis/layers/SOUND", json={"user_score": 5})

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert unknown.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert orchestrator.state.layers[0].user_score == 8


async def test_personnel_and_morphokinetics_endpoints(api_overrides) -> None:
    async with _client() as client:
        personnel = await client.post(
            "/api/analysis/personnel", json={"name": "Zendaya", "kind": "Actor"}
        )
        early = await client.post("/api/analysis/morphokinetics")

        await client.post("/api/analysis", json={"title": "Dnue"})
        await client.post("/api/analysis/suggestions/select", json={"title": "Dune"})
        morpho = await client.post("/api/analysis/morphokinetics")

    assert personnel.status_code == HTTPStatus.OK
    assert personnel.json()["kind"] == "Actor"
    assert personnel.json()["analysis_text"]
    assert early.status_code == HTTPStatus.BAD_REQUEST
    assert morpho.json()["morphokinetics"]["timeline_structure_notes"] == "Linear."


async def test_usage_endpoints_round_trip(api_overrides) -> None:
    _, _, ledger = api_overrides
    ledger.record("Layer Analysis: Magic of Story/Script", 400, 400)

    async with _client() as client:
        listed = await client.get("/api/usage")
        config = await client.get("/api/usage/config")
        updated = await client.put(
            "/api/usage/config", json={"is_enabled": False, "free_tier_queries_per_day": 50}
        )
        cleared = await client.delete("/api/usage")
        after = await client.get("/api/usage")

    assert listed.json()[0]["est_tokens"] == 200
    assert config.json()["is_enabled"] is True
    assert updated.json()["free_tier_queries_per_day"] == 50
    assert ledger.config.is_enabled is False
    assert cleared.status_code == HTTPStatus.NO_CONTENT
    assert after.json() == []


class FailingOrchestrator:
    def __init__(self, error: Exception) -> None:
        self._error = error

    async def generate_report(self):
        raise self._error


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (InvalidCredentialError("Gemini"), HTTPStatus.UNAUTHORIZED),
        (QuotaExceededError("Gemini"), HTTPStatus.TOO_MANY_REQUESTS),
        (LLMGatewayError("upstream exploded"), HTTPStatus.BAD_GATEWAY),
    ],
)
async def test_escaped_gateway_errors_are_mapped(error: Exception, status: HTTPStatus) -> None:
    app.dependency_overrides[dependencies.get_analysis_orchestrator] = lambda: FailingOrchestrator(error)
    try:
        async with _client() as client:
            response = await client.post("/api/analysis/report")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == status
    assert response.json()["detail"] == str(error)
