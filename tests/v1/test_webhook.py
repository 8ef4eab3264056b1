"""Tests for webhook intake and the verification handshake."""

from __future__ import annotations

import json

from fastapi import status
from fastapi.testclient import TestClient

from webhook_hub.api.v1.endpoints.webhook import extract_phone_number_id
from webhook_hub.services.delivery_queue import DeliveryQueue, QueueError


def _event(phone_number_id: str) -> dict[str, object]:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "123456789",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15550000000",
                                "phone_number_id": phone_number_id,
                            },
                            "messages": [{"from": "15551111111", "text": {"body": "hi"}}],
                        },
                    }
                ],
            }
        ],
    }


def test_extract_phone_number_id() -> None:
    assert extract_phone_number_id(_event("42")) == "42"
    assert extract_phone_number_id({"entry": []}) is None
    assert extract_phone_number_id({"entry": [{"changes": [{"value": {}}]}]}) is None
    assert extract_phone_number_id({"entry": "oops"}) is None


def test_verify_echoes_challenge_for_registered_token(client: TestClient, seeded: str) -> None:
    r = client.get(
        "/meta/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "hafis", "hub.challenge": "1158201444"},
    )
    assert r.status_code == status.HTTP_200_OK
    assert r.text == "1158201444"
    assert r.headers["content-type"].startswith("text/plain")


def test_verify_rejects_unknown_token(client: TestClient, seeded: str) -> None:
    r = client.get(
        "/meta/webhook",
        params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1"},
    )
    assert r.status_code == status.HTTP_403_FORBIDDEN


def test_verify_rejects_malformed_request(client: TestClient) -> None:
    r = client.get("/meta/webhook", params={"hub.mode": "unsubscribe", "hub.verify_token": "x"})
    assert r.status_code == status.HTTP_400_BAD_REQUEST

    r = client.get("/meta/webhook")
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def test_receive_acknowledges_and_queues_raw_payload(
    client: TestClient, queue: DeliveryQueue, seeded: str
) -> None:
    raw = json.dumps(_event(seeded), separators=(",", ":")).encode()

    r = client.post(
        "/meta/webhook", content=raw, headers={"Content-Type": "application/json"}
    )

    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"status": "received", "phone_number_id": seeded}
    assert queue.get_stats().waiting == 2
    jobs = sorted(queue.list_jobs(), key=lambda job: job.id)
    assert [job.destination_name for job in jobs] == [
        "WA Promotion Service",
        "Appointment Service",
    ]
    claimed = queue.claim("w1")
    assert claimed is not None
    assert claimed.payload == raw


def test_receive_for_unmapped_number_still_acknowledges(
    client: TestClient, queue: DeliveryQueue
) -> None:
    r = client.post("/meta/webhook", json=_event("000000000000"))

    assert r.status_code == status.HTTP_200_OK
    assert queue.get_stats().waiting == 0


def test_receive_acknowledges_even_when_queue_is_down(
    client: TestClient, queue: DeliveryQueue, seeded: str, mocker
) -> None:
    mocker.patch.object(queue, "enqueue", side_effect=QueueError("queue backend unavailable"))

    r = client.post("/meta/webhook", json=_event(seeded))

    assert r.status_code == status.HTTP_200_OK


def test_receive_rejects_non_object_bodies(client: TestClient) -> None:
    r = client.post(
        "/meta/webhook", content=b"not json", headers={"Content-Type": "application/json"}
    )
    assert r.status_code == status.HTTP_400_BAD_REQUEST

    r = client.post("/meta/webhook", json=[1, 2, 3])
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def test_receive_rejects_missing_identifier(client: TestClient, queue: DeliveryQueue) -> None:
    r = client.post("/meta/webhook", json={"object": "whatsapp_business_account", "entry": []})

    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert queue.get_stats().waiting == 0
