"""
Tests for the operational endpoints.

Tests cover:
- Liveness and readiness probes
- Prometheus metrics exposition
- Request ID header
"""

from app.config import Settings, get_settings
from app.dependencies import get_store
from app.main import app


class TestHealth:
    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "reason": None}

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_without_stripe_credentials(self, client):
        app.dependency_overrides[get_settings] = lambda: Settings(
            PAYMENT_MODE="stripe", STRIPE_SECRET_KEY=None
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestMetrics:
    def test_metrics_exposed(self, client, recipient_body):
        client.post("/api/generate-message", json=recipient_body)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        body = response.text
        assert "http_requests_total" in body
        assert 'generation_requests_total{kind="text",result="ok"}' in body

    def test_route_template_used_as_label(self, client):
        client.get("/api/purchase/12345")

        body = client.get("/metrics").text

        assert 'path="/api/purchase/{purchase_id}"' in body
        assert 'path="/api/purchase/12345"' not in body


class TestRequestId:
    def test_request_id_header(self, client):
        response = client.get("/health/live")

        assert response.headers["X-Request-ID"]


class TestUnexpectedErrors:
    def test_unexpected_error_is_logged_and_counted(self, client):
        """A bug outside the error taxonomy still gets a 500 body, request id and metric."""
        def broken_store():
            raise RuntimeError("boom")

        app.dependency_overrides[get_store] = broken_store

        response = client.get("/api/messages/1")

        assert response.status_code == 500
        assert response.json() == {"detail": "Something went wrong. Please try again."}
        assert response.headers["X-Request-ID"]
        assert "boom" not in response.text

        app.dependency_overrides.pop(get_store)
        body = client.get("/metrics").text
        assert 'path="/api/messages/{message_id}",status="500"' in body
