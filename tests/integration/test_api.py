"""API tests for the render endpoints."""

import threading
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.api.routes_render import get_orchestrator
from app.core.exceptions import NoClipsError
from app.main import app
from app.models.schemas import PublishedAsset
from app.services.job_orchestrator import JobOrchestrator

ASSET = PublishedAsset(
    url="https://cdn/jobs/x/final.mp4",
    manifest_url="https://cdn/jobs/x/hls/master.m3u8",
    clip_count=2,
    dropped_segments=[1],
)


@pytest.fixture
def pipeline():
    pipeline = MagicMock()
    pipeline.run.return_value = ASSET
    return pipeline


@pytest.fixture
def orchestrator(settings, logger, pipeline):
    orchestrator = JobOrchestrator(settings, logger, pipeline_factory=lambda: pipeline)
    yield orchestrator
    orchestrator.shutdown()


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_submit_and_fetch_result(client, orchestrator):
    response = client.post("/renders", json={"prompt": "a lighthouse at night", "duration": 15})

    assert response.status_code == 202
    job_id = response.json()["job_id"]
    assert response.json()["status"] == "pending"

    orchestrator.wait(job_id, timeout=5)
    assert client.get(f"/renders/{job_id}/status").json() == {"job_id": job_id, "status": "done"}

    result = client.get(f"/renders/{job_id}/result")
    assert result.status_code == 200
    body = result.json()
    assert body["status"] == "done"
    assert body["result"]["url"] == ASSET.url
    assert body["result"]["manifest_url"] == ASSET.manifest_url
    assert body["result"]["dropped_segments"] == [1]


def test_failed_job_reports_error(client, orchestrator, pipeline):
    pipeline.run.side_effect = NoClipsError("All 2 segments failed; nothing to assemble")

    job_id = client.post("/renders", json={"prompt": "x", "duration": 10}).json()["job_id"]
    orchestrator.wait(job_id, timeout=5)

    body = client.get(f"/renders/{job_id}/result").json()
    assert body["status"] == "error"
    assert "nothing to assemble" in body["error"]


def test_pending_result_is_202(client, orchestrator, pipeline):
    gate = threading.Event()
    pipeline.run.side_effect = lambda job_id, request: gate.wait(5) and ASSET

    job_id = client.post("/renders", json={"prompt": "x", "duration": 10}).json()["job_id"]
    try:
        response = client.get(f"/renders/{job_id}/result")
        assert response.status_code == 202
        assert response.json()["status"] == "pending"
    finally:
        gate.set()
        orchestrator.wait(job_id, timeout=5)


def test_unknown_job_is_404_not_found(client):
    status_response = client.get("/renders/job_missing/status")
    result_response = client.get("/renders/job_missing/result")

    assert status_response.status_code == 404
    assert status_response.json()["status"] == "not_found"
    assert result_response.status_code == 404


def test_unsupported_duration_rejected(client):
    response = client.post("/renders", json={"prompt": "x", "duration": 20})

    assert response.status_code == 422
