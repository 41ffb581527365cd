"""
Tests for the threshold endpoints.
"""
from fastapi import status

from app.main import app


def test_defaults_when_nothing_configured(client, schema_factory):
    schema = schema_factory()
    response = client.get(f"/api/v1/thresholds/{schema.id}")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["schema_id"] == schema.id
    assert (data["overall"], data["section"], data["category"]) == (83.0, 83.0, 83.0)
    assert data["section_overrides"] == {}
    assert data["degraded"] is False


def test_update_invalidates_cached_thresholds(client, schema_factory):
    schema = schema_factory()
    client.get(f"/api/v1/thresholds/{schema.id}")
    assert len(app.state.threshold_cache) == 1

    response = client.put(f"/api/v1/thresholds/{schema.id}", json={
        "overall": 90, "section": 80, "category": 70, "section_overrides": {"2": 95},
    })
    assert response.status_code == status.HTTP_200_OK

    data = client.get(f"/api/v1/thresholds/{schema.id}").json()
    assert (data["overall"], data["section"], data["category"]) == (90.0, 80.0, 70.0)
    assert data["section_overrides"] == {"2": 95.0}


def test_update_replaces_previous_overrides(client, schema_factory):
    schema = schema_factory()
    client.put(f"/api/v1/thresholds/{schema.id}", json={
        "overall": 90, "section": 80, "category": 70, "section_overrides": {"1": 60, "2": 95},
    })
    client.put(f"/api/v1/thresholds/{schema.id}", json={
        "overall": 85, "section": 80, "category": 70, "section_overrides": {"2": 50},
    })

    data = client.get(f"/api/v1/thresholds/{schema.id}").json()
    assert data["overall"] == 85.0
    assert data["section_overrides"] == {"2": 50.0}


def test_update_out_of_range_rejected(client, schema_factory):
    schema = schema_factory()
    response = client.put(f"/api/v1/thresholds/{schema.id}", json={
        "overall": 120, "section": 80, "category": 70,
    })
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    response = client.put(f"/api/v1/thresholds/{schema.id}", json={
        "overall": 90, "section": 80, "category": 70, "section_overrides": {"1": -5},
    })
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_update_unknown_schema(client):
    response = client.put("/api/v1/thresholds/999999", json={"overall": 90, "section": 80, "category": 70})
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_clear_cache(client, schema_factory):
    schema = schema_factory()
    client.get(f"/api/v1/thresholds/{schema.id}")
    assert len(app.state.threshold_cache) == 1

    response = client.delete("/api/v1/thresholds/cache")
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert len(app.state.threshold_cache) == 0
