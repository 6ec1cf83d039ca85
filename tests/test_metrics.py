from fastapi.testclient import TestClient

from src.nexus.api.main import app
from src.nexus.observability.metrics import sanitize_path


client = TestClient(app)


def test_metrics_endpoint_exposes_histogram():
    # Trigger a request to ensure histogram has an observation
    r = client.get("/health")
    assert r.status_code == 200

    m = client.get("/metrics")
    assert m.status_code == 200
    body = m.text

    assert "# HELP nexus_request_latency_seconds" in body
    assert "# TYPE nexus_request_latency_seconds histogram" in body
    assert "nexus_request_latency_seconds_count" in body
    assert 'path="/health"' in body


def test_gateway_and_provisioning_counters_are_registered():
    body = client.get("/metrics").text
    assert "# TYPE nexus_ai_gateway_errors_total counter" in body
    assert "# TYPE nexus_provisioning_steps_total counter" in body


def test_sanitize_path_collapses_ids():
    assert sanitize_path("/organizations/abc123/provisioning") == "/organizations"
    assert sanitize_path("/api/ai/chat") == "/api/ai"
    assert sanitize_path("/ai/triage?x=1") == "/ai/triage"
    assert sanitize_path("") == "/"
