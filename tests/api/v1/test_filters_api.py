import pytest

from finvisor.main import app
from finvisor.services.filter_store import MemoryStorage


@pytest.fixture
def storage(client):
    original = app.state.preferences_storage
    app.state.preferences_storage = MemoryStorage()
    yield app.state.preferences_storage
    app.state.preferences_storage = original


def test_defaults(client, storage):
    response = client.get("/api/v1/filters/")

    assert response.status_code == 200
    assert response.json()["client_id"] == "all"


def test_update_is_partial_and_per_user(client, storage):
    client.put("/api/v1/filters/", json={"client_id": "client-1"})
    response = client.put("/api/v1/filters/", json={"date_from": "2024-03-01T00:00:00Z"})

    data = response.json()
    assert data["client_id"] == "client-1"
    assert data["date_from"].startswith("2024-03-01")
    assert data["member_id"] == "all"
    assert list(storage.values) == ["global-filters-storage:user-1"]


def test_reset(client, storage):
    client.put("/api/v1/filters/", json={"member_id": "member-2"})

    response = client.delete("/api/v1/filters/")

    assert response.json()["member_id"] == "all"
    assert storage.values == {}
