"""
Tests for health check endpoint.
"""
from unittest.mock import MagicMock

from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.core.database import get_db
from app.main import app


def test_health_endpoint_returns_ok(client):
    """Test that /api/v1/health returns ok when DB is healthy."""
    response = client.get("/api/v1/health")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["ok"] is True
    assert data["db"] is True
    assert "environment" in data
    assert data["evidence_backend"] == "sql"
    assert data["cached_thresholds"] == 0


def test_health_reports_cached_thresholds(client, schema_factory):
    schema = schema_factory()
    client.get(f"/api/v1/thresholds/{schema.id}")

    assert client.get("/api/v1/health").json()["cached_thresholds"] == 1


def test_health_endpoint_with_db_failure():
    """Test that /api/v1/health returns 503 when DB is down."""
    def failing_get_db():
        db = MagicMock()
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        yield db

    app.dependency_overrides[get_db] = failing_get_db
    try:
        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["detail"] == "Database connection failed"
    finally:
        app.dependency_overrides.clear()


def test_health_endpoint_trace_id_header(client):
    """RequestLoggingMiddleware adds an X-Trace-ID header."""
    response = client.get("/api/v1/health")

    assert "X-Trace-ID" in response.headers
    assert len(response.headers["X-Trace-ID"]) > 0


def test_incoming_trace_id_is_echoed(client):
    response = client.get("/api/v1/health", headers={"X-Trace-ID": "audit-trace-123"})
    assert response.headers["X-Trace-ID"] == "audit-trace-123"


def test_root_health(client):
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}
