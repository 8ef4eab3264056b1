"""Tests for outbound delivery and the worker pool."""

from __future__ import annotations

import asyncio
import contextlib
import time

import httpx
import pytest

from webhook_hub.models.delivery_job import (
    JOB_STATUS_ACTIVE,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_DELAYED,
    JOB_STATUS_FAILED,
    JOB_STATUS_WAITING,
)
from webhook_hub.services.delivery_queue import ClaimedJob, DeliveryQueue, NewDeliveryJob
from webhook_hub.services.delivery_worker import (
    DeliveryWorkerPool,
    build_delivery_headers,
    deliver,
)

PAYLOAD = b'{"entry": [{"changes": [{"value": {"metadata": {"phone_number_id": "111"}}}]}]}'


def _claimed(endpoint: str = "https://a.example.com/hook") -> ClaimedJob:
    return ClaimedJob(
        id=1,
        claim_token="token",
        phone_number_id="111",
        destination_id=1,
        destination_name="A",
        endpoint=endpoint,
        payload=PAYLOAD,
        attempts=0,
        max_attempts=3,
    )


def _enqueue(queue: DeliveryQueue, name: str, endpoint: str | None = None) -> int:
    return queue.enqueue(
        NewDeliveryJob(
            phone_number_id="111",
            destination_id=None,
            destination_name=name,
            endpoint=endpoint or f"https://{name.lower()}.example.com/hook",
            payload=PAYLOAD,
        )
    )


def test_build_delivery_headers_identifies_source_and_identifier() -> None:
    headers = build_delivery_headers(_claimed(), user_agent="Hub/2", source_name="hub")

    assert headers == {
        "Content-Type": "application/json",
        "User-Agent": "Hub/2",
        "X-Webhook-Source": "hub",
        "X-Phone-Number-ID": "111",
    }


@pytest.mark.asyncio
async def test_deliver_posts_raw_payload_with_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        outcome = await deliver(client, _claimed(), timeout=10.0)

    assert outcome.ok is True
    assert outcome.status_code == 202
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://a.example.com/hook"
    assert request.content == PAYLOAD
    assert request.headers["X-Phone-Number-ID"] == "111"
    assert request.headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_deliver_reports_non_2xx_as_failure() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport) as client:
        outcome = await deliver(client, _claimed(), timeout=10.0)

    assert outcome.ok is False
    assert outcome.status_code == 500
    assert outcome.error == "HTTP 500"


@pytest.mark.asyncio
async def test_deliver_reports_timeout_without_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        outcome = await deliver(client, _claimed(), timeout=10.0)

    assert outcome.ok is False
    assert outcome.status_code is None
    assert outcome.error == "Timed out after 10s"


@pytest.mark.asyncio
async def test_deliver_reports_connection_error_without_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        outcome = await deliver(client, _claimed(), timeout=10.0)

    assert outcome.ok is False
    assert "ConnectError" in (outcome.error or "")


@pytest.mark.asyncio
async def test_deliver_reports_malformed_endpoint_without_raising() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200))
    async with httpx.AsyncClient(transport=transport) as client:
        outcome = await deliver(client, _claimed("http://[::1/hook"), timeout=10.0)

    assert outcome.ok is False
    assert outcome.status_code is None
    assert (outcome.error or "").startswith("Invalid request: InvalidURL")


@pytest.mark.asyncio
async def test_process_next_completes_successful_delivery(queue: DeliveryQueue) -> None:
    job_id = _enqueue(queue, "A")
    transport = httpx.MockTransport(lambda request: httpx.Response(200))
    async with httpx.AsyncClient(transport=transport) as client:
        pool = DeliveryWorkerPool(queue, worker_count=1, client=client)

        assert await pool.process_next("w1") is True
        assert await pool.process_next("w1") is False

    job = queue.get_job(job_id)
    assert job is not None
    assert job.status == JOB_STATUS_COMPLETED
    assert job.last_status_code == 200


@pytest.mark.asyncio
async def test_failing_destination_does_not_affect_others(queue: DeliveryQueue) -> None:
    ok_id = _enqueue(queue, "Good")
    bad_id = _enqueue(queue, "Bad")

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bad.example.com":
            return httpx.Response(503)
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        pool = DeliveryWorkerPool(queue, worker_count=2, client=client)
        await pool.process_next("w1")
        await pool.process_next("w2")

    good = queue.get_job(ok_id)
    bad = queue.get_job(bad_id)
    assert good is not None and bad is not None
    assert good.status == JOB_STATUS_COMPLETED
    assert bad.status == JOB_STATUS_DELAYED
    assert bad.attempts == 1
    assert bad.last_error == "HTTP 503"


@pytest.mark.asyncio
async def test_retry_succeeds_after_backoff(queue: DeliveryQueue, clock) -> None:
    job_id = _enqueue(queue, "Flaky")
    responses = iter([httpx.Response(500), httpx.Response(200)])
    transport = httpx.MockTransport(lambda request: next(responses))

    async with httpx.AsyncClient(transport=transport) as client:
        pool = DeliveryWorkerPool(queue, worker_count=1, client=client)
        await pool.process_next("w1")
        assert await pool.process_next("w1") is False

        clock.advance(2)
        await pool.run_maintenance()
        assert await pool.process_next("w1") is True

    job = queue.get_job(job_id)
    assert job is not None
    assert job.status == JOB_STATUS_COMPLETED
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_maintenance_recovers_stalled_jobs(queue: DeliveryQueue, clock) -> None:
    job_id = _enqueue(queue, "A")
    assert queue.claim("dead-worker") is not None
    async with httpx.AsyncClient() as client:
        pool = DeliveryWorkerPool(queue, worker_count=1, client=client)
        clock.advance(31)
        await pool.run_maintenance()

    job = queue.get_job(job_id)
    assert job is not None
    assert job.status == JOB_STATUS_WAITING
    assert job.attempts == 0


@pytest.mark.asyncio
async def test_pool_delivers_in_background_and_stops(threaded_queue: DeliveryQueue) -> None:
    queue = threaded_queue
    job_ids = [_enqueue(queue, name) for name in ("A", "B", "C")]
    delivered = asyncio.Event()
    hits: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(request.url.host)
        if len(hits) == len(job_ids):
            delivered.set()
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    pool = DeliveryWorkerPool(queue, worker_count=2, poll_interval=0.01, client=client)
    await pool.start()
    assert pool.running is True
    await pool.start()

    await asyncio.wait_for(delivered.wait(), timeout=5)
    await pool.stop(grace_seconds=1.0)

    assert pool.running is False
    assert sorted(hits) == ["a.example.com", "b.example.com", "c.example.com"]
    assert queue.get_stats().completed == 3
    await client.aclose()


@pytest.mark.asyncio
async def test_stop_cancels_deliveries_that_outlive_grace(threaded_queue: DeliveryQueue) -> None:
    queue = threaded_queue
    job_id = _enqueue(queue, "Slow")
    started = asyncio.Event()

    class HangingTransport(httpx.AsyncBaseTransport):
        async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(60)
            return httpx.Response(200)

    client = httpx.AsyncClient(transport=HangingTransport())
    pool = DeliveryWorkerPool(queue, worker_count=1, poll_interval=0.01, client=client)
    await pool.start()
    await asyncio.wait_for(started.wait(), timeout=5)

    await asyncio.wait_for(pool.stop(grace_seconds=0.05), timeout=5)

    assert pool.running is False
    job = queue.get_job(job_id)
    assert job is not None
    # Left for stall recovery.
    assert job.status == JOB_STATUS_ACTIVE
    await client.aclose()


@pytest.mark.asyncio
async def test_malformed_endpoint_does_not_stop_the_pool(threaded_queue: DeliveryQueue) -> None:
    queue = threaded_queue
    bad_id = _enqueue(queue, "Bad", endpoint="http://[::1/hook")
    good_id = _enqueue(queue, "Good")
    delivered = asyncio.Event()

    def handler(request: httpx.Request) -> httpx.Response:
        delivered.set()
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    pool = DeliveryWorkerPool(queue, worker_count=1, poll_interval=0.01, client=client)
    await pool.start()
    await asyncio.wait_for(delivered.wait(), timeout=5)
    assert all(not task.done() for task in pool._tasks)
    await pool.stop(grace_seconds=1.0)
    await client.aclose()

    good = queue.get_job(good_id)
    bad = queue.get_job(bad_id)
    assert good is not None and bad is not None
    assert good.status == JOB_STATUS_COMPLETED
    assert bad.status == JOB_STATUS_DELAYED
    assert bad.attempts == 1
    assert "InvalidURL" in (bad.last_error or "")


@pytest.mark.asyncio
async def test_malformed_endpoint_fails_permanently_after_retries(
    queue: DeliveryQueue, clock
) -> None:
    job_id = _enqueue(queue, "Bad", endpoint="http://[::1/hook")
    transport = httpx.MockTransport(lambda request: httpx.Response(200))
    async with httpx.AsyncClient(transport=transport) as client:
        pool = DeliveryWorkerPool(queue, worker_count=1, client=client)
        for _ in range(3):
            assert await pool.process_next("w1") is True
            clock.advance(60)
            await pool.run_maintenance()

    job = queue.get_job(job_id)
    assert job is not None
    assert job.status == JOB_STATUS_FAILED
    assert job.attempts == 3


@pytest.mark.asyncio
async def test_worker_survives_unexpected_processing_error(
    threaded_queue: DeliveryQueue, mocker
) -> None:
    calls: list[str] = []
    recovered = asyncio.Event()
    loop = asyncio.get_running_loop()

    def flaky_claim(worker_id: str) -> ClaimedJob | None:
        calls.append(worker_id)
        if len(calls) == 1:
            raise TypeError("unexpected row shape")
        if len(calls) >= 3:
            loop.call_soon_threadsafe(recovered.set)
        return None

    mocker.patch.object(threaded_queue, "claim", side_effect=flaky_claim)
    async with httpx.AsyncClient() as client:
        pool = DeliveryWorkerPool(
            threaded_queue, worker_count=1, poll_interval=0.01, client=client
        )
        await pool.start()
        await asyncio.wait_for(recovered.wait(), timeout=5)
        assert pool.running is True
        await pool.stop(grace_seconds=1.0)

    assert len(calls) >= 3


@pytest.mark.asyncio
async def test_queue_calls_do_not_block_the_event_loop(queue: DeliveryQueue, mocker) -> None:
    def slow_promote() -> int:
        time.sleep(0.2)
        return 0

    mocker.patch.object(queue, "promote_due", side_effect=slow_promote)
    mocker.patch.object(queue, "recover_stalled", return_value=0)
    ticks = 0

    async def ticker() -> None:
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0.01)

    ticking = asyncio.create_task(ticker())
    await DeliveryWorkerPool(queue, worker_count=1).run_maintenance()
    ticking.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await ticking

    assert ticks >= 5
