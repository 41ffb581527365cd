"""
Tests for API key authentication and RBAC.
"""
import pytest
from fastapi import status

from app.core.roles import has_permission, normalize_role


def test_request_without_api_key_fails(client_with_auth, schema_factory):
    """Requests without a key are rejected when API_KEY is configured."""
    schema = schema_factory()
    response = client_with_auth.get(f"/api/v1/thresholds/{schema.id}")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Missing API key"


def test_request_with_invalid_api_key_fails(client_with_auth, schema_factory):
    schema = schema_factory()
    response = client_with_auth.get(f"/api/v1/thresholds/{schema.id}", headers={"X-API-Key": "invalid-key"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert "Invalid API key" in response.json()["detail"]


def test_viewer_can_read_but_not_change_thresholds(client_with_auth, schema_factory):
    schema = schema_factory()
    headers = {"X-API-Key": "viewer-key"}

    assert client_with_auth.get(f"/api/v1/thresholds/{schema.id}", headers=headers).status_code == \
        status.HTTP_200_OK

    response = client_with_auth.put(
        f"/api/v1/thresholds/{schema.id}",
        json={"overall": 90, "section": 80, "category": 70},
        headers=headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert "Required role: admin" in response.json()["detail"]


def test_viewer_cannot_start_audit(client_with_auth, audit_payload):
    response = client_with_auth.post(
        "/api/v1/audits", json=audit_payload(), headers={"X-API-Key": "viewer-key"}
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_auditor_can_start_audit_but_not_change_thresholds(client_with_auth, audit_payload, schema_factory):
    headers = {"X-API-Key": "auditor-key"}
    schema = schema_factory()

    created = client_with_auth.post("/api/v1/audits", json=audit_payload(schema=schema), headers=headers)
    assert created.status_code == status.HTTP_201_CREATED

    response = client_with_auth.put(
        f"/api/v1/thresholds/{schema.id}",
        json={"overall": 90, "section": 80, "category": 70},
        headers=headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_admin_key_can_access_everything(client_with_auth, schema_factory):
    schema = schema_factory()
    headers = {"X-API-Key": "test-key"}

    response = client_with_auth.put(
        f"/api/v1/thresholds/{schema.id}",
        json={"overall": 90, "section": 80, "category": 70},
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert client_with_auth.delete("/api/v1/thresholds/cache", headers=headers).status_code == \
        status.HTTP_204_NO_CONTENT


def test_no_api_key_configured_allows_all(client, schema_factory):
    """With API_KEY unset every caller is treated as admin."""
    schema = schema_factory()
    response = client.put(
        f"/api/v1/thresholds/{schema.id}",
        json={"overall": 90, "section": 80, "category": 70},
    )
    assert response.status_code == status.HTTP_200_OK


@pytest.mark.parametrize("role,required,allowed", [
    ("admin", "viewer", True),
    ("auditor", "auditor", True),
    ("viewer", "auditor", False),
    ("read_only", "viewer", True),
    ("supervisor", "admin", False),
    ("unknown", "viewer", True),
    ("unknown", "auditor", False),
])
def test_role_hierarchy(role, required, allowed):
    assert has_permission(role, required) is allowed


def test_role_aliases():
    assert normalize_role("READ_ONLY") == "viewer"
    assert normalize_role("Supervisor") == "auditor"
