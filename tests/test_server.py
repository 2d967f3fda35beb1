"""Tests for the HTTP control surface and the run manager behind it."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from lexis_kg.api.run_context import RunAlreadyActiveError
from lexis_kg.api.runner import RunManager
from lexis_kg.server import create_app
from lexis_kg.storage.duckdb import DuckDBBackend
from lexis_kg.types import WorkItem


def _llm():
    llm = MagicMock()
    llm.complete_json = AsyncMock(return_value={"results": []})
    return llm


@pytest.fixture
def client(config):
    storage = DuckDBBackend(":memory:")
    app = create_app(config, storage, _llm())
    with TestClient(app) as test_client:
        yield test_client


class TestControlSurface:
    """Test the start, progress and stats endpoints."""

    def test_progress_idle(self, client):
        response = client.get("/progress")

        assert response.status_code == 200
        assert response.json() == {"status": "idle", "percentComplete": 0.0, "logs": []}

    def test_stats_empty_store(self, client):
        body = client.get("/stats").json()

        assert body["workItems"]["pending"] == 0
        assert body["highlights"] == 0
        assert body["active"] is False

    def test_start_rejects_non_positive_limit(self, client):
        assert client.post("/start", json={"limit": 0}).status_code == 422
        assert client.post("/start", json={}).status_code == 422

    def test_start_accepted(self, client):
        runner = MagicMock()
        runner.start.return_value = SimpleNamespace(run_id="run-1")
        client.app.state.runner = runner

        response = client.post("/start", json={"limit": 5})

        assert response.status_code == 202
        assert response.json() == {"accepted": True, "limit": 5, "runId": "run-1"}
        runner.start.assert_called_once_with(5)

    def test_start_while_active(self, client):
        runner = MagicMock()
        runner.start.side_effect = RunAlreadyActiveError("A run is already in progress")
        client.app.state.runner = runner

        response = client.post("/start", json={"limit": 5})

        assert response.status_code == 400
        assert "already in progress" in response.json()["detail"]


class TestRunManager:
    """Test background run management."""

    @pytest.mark.asyncio
    async def test_run_to_completion(self, storage, config):
        await storage.add_work_items([WorkItem(id="a", parent_id="p", source_text="Hi kumt.")])
        llm = _llm()
        llm.complete_json.return_value = {
            "results": [{
                "item_id": "a",
                "expansions": [{
                    "cleaned_text": "Hi kumt.",
                    "best_translation": "Er kommt.",
                    "confidence_score": 0.9,
                }],
            }]
        }
        runner = RunManager(config, storage, llm)

        ctx = runner.start(10)
        assert runner.progress()["status"] == "running"
        await runner.wait()

        progress = runner.progress()
        assert progress["runId"] == ctx.run_id
        assert progress["status"] == "completed"
        assert progress["percentComplete"] == 100.0
        assert progress["logs"]
        stats = await runner.stats()
        assert stats["workItems"]["completed"] == 1
        assert stats["enrichedResults"] == 1

    @pytest.mark.asyncio
    async def test_single_active_run(self, storage, config):
        runner = RunManager(config, storage, _llm())

        runner.start(10)
        with pytest.raises(RunAlreadyActiveError):
            runner.start(10)
        await runner.wait()

        assert runner.is_active is False
        runner.start(10)
        await runner.wait()

    @pytest.mark.asyncio
    async def test_failed_run_reported(self, storage, config):
        storage.reset_work_items = AsyncMock(side_effect=RuntimeError("store gone"))
        runner = RunManager(config, storage, _llm())

        runner.start(10)
        await runner.wait()

        progress = runner.progress()
        assert progress["status"] == "failed"
        assert "store gone" in progress["lastError"]

    @pytest.mark.asyncio
    async def test_rejects_non_positive_limit(self, storage, config):
        with pytest.raises(ValueError):
            RunManager(config, storage, _llm()).start(0)
