# tests/test_health.py
from fastapi import status
from fastapi.testclient import TestClient


def test_health_responds(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"status": "ok"}


def test_root_describes_service(client: TestClient) -> None:
    r = client.get("/")
    assert r.status_code == status.HTTP_200_OK
    body = r.json()
    assert body["name"] == "Webhook Hub"
    assert body["docs"] == "/docs"


def test_delivery_workers_disabled_under_tests(client: TestClient) -> None:
    assert client.app.state.worker_pool is None
