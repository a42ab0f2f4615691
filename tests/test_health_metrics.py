from atelier.settings import settings
from tests.test_api_lifecycle import REQUEST_PAYLOAD


def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    response = client.get("/healthz", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


def test_readyz_checks_database(client):
    response = client.get("/readyz")

    assert response.status_code == 200
    assert response.json()["checks"]["database"]["ok"] is True


def test_metrics_exposes_domain_counters(client, customer_headers):
    client.post("/v1/requests", json=REQUEST_PAYLOAD, headers=customer_headers)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert 'commission_requests_total{action="created"}' in response.text
    assert "http_requests_total" in response.text


def test_metrics_token_required_when_configured(client):
    settings.metrics_token = "metrics-secret"

    assert client.get("/metrics").status_code == 401
    assert client.get("/metrics", headers={"Authorization": "Bearer metrics-secret"}).status_code == 200
    assert client.get("/metrics?token=metrics-secret").status_code == 200
