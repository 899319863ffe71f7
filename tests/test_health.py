import pytest

from geodiag.db import unit_of_work


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client, job_queue, session_factory):
    with unit_of_work(session_factory) as db:
        job_queue.enqueue(db, "process_successful_payment", {"id": "cs_1"})

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["db_status"] == "ok"
    assert payload["stripe"] == {"api_key_configured": True, "webhook_configured": True}
    assert isinstance(payload["worker_running"], bool)
    assert payload["jobs"]["available"] == 1
    assert payload["jobs"]["failed"] == 0


@pytest.mark.anyio("asyncio")
async def test_health_degrades_on_db_failure(monkeypatch, client):
    class BrokenEngine:
        def connect(self):  # pragma: no cover - simple stub
            raise RuntimeError("DB down")

    monkeypatch.setattr("geodiag.routers.health.get_engine", lambda: BrokenEngine())

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"
    assert payload["db_ok"] is False
    assert payload["jobs"] is None
