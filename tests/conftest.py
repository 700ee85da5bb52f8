from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from wastetrack.config import Settings
from wastetrack.main import create_app


@pytest.fixture
def app_settings(tmp_path) -> Settings:
    return Settings(TRUCKS_DATA_FILE=str(tmp_path / "trucks.json"), MAX_VIEWER_CONNECTIONS=5)


@pytest.fixture
def app(app_settings):
    return create_app(app_settings)


@pytest.fixture
def client(app):
    # One portal for HTTP calls and websocket sessions, so they share a loop.
    with TestClient(app) as test_client:
        yield test_client


def register(client: TestClient, truck_id: str = "T-001", lat: float = 27.7, lng: float = 85.3, **extra):
    body = {"truckId": truck_id, "driverName": "Ram Bahadur", "latitude": lat, "longitude": lng}
    body.update(extra)
    return client.post("/api/trucks/register", json=body)


@pytest.fixture
def register_truck(client):
    def _register(truck_id: str = "T-001", lat: float = 27.7, lng: float = 85.3, **extra):
        return register(client, truck_id, lat, lng, **extra)

    return _register
