"""Background delivery of queued webhook jobs.

This module provides the DeliveryWorkerPool, a set of asyncio tasks that
claim jobs from the :class:`~webhook_hub.services.delivery_queue.DeliveryQueue`,
POST the stored payload to the job's endpoint and report the outcome back to
the queue. A separate maintenance task promotes delayed retries whose backoff
has elapsed and returns stalled jobs to the queue.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from dataclasses import dataclass

import httpx
from sqlalchemy.exc import SQLAlchemyError

from webhook_hub.core.settings import settings
from webhook_hub.services.delivery_queue import (
    ClaimedJob,
    DeliveryQueue,
    QueueError,
    build_delivery_queue,
)

logger = logging.getLogger(__name__)

HTTP_OK_MIN = 200
HTTP_OK_MAX = 299
# Backoff after a queue backend error so a dead database is not hammered.
QUEUE_ERROR_BACKOFF_SECONDS = 5.0


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one outbound POST."""

    ok: bool
    status_code: int | None = None
    error: str | None = None


def build_delivery_headers(
    job: ClaimedJob,
    *,
    user_agent: str | None = None,
    source_name: str | None = None,
) -> dict[str, str]:
    """Return the headers sent with every forwarded payload."""
    return {
        "Content-Type": "application/json",
        "User-Agent": user_agent or settings.delivery_user_agent,
        "X-Webhook-Source": source_name or settings.delivery_source_name,
        "X-Phone-Number-ID": job.phone_number_id,
    }


async def deliver(
    client: httpx.AsyncClient,
    job: ClaimedJob,
    timeout: float,
    *,
    user_agent: str | None = None,
    source_name: str | None = None,
) -> DeliveryOutcome:
    """POST the job's payload to its endpoint.

    The payload bytes are sent exactly as received. Any 2xx status is a
    success; other statuses, timeouts and transport errors are failures.
    Transport errors and unusable endpoints are reported in the outcome,
    never raised.
    """
    headers = build_delivery_headers(job, user_agent=user_agent, source_name=source_name)
    try:
        response = await client.post(
            job.endpoint,
            content=job.payload,
            headers=headers,
            timeout=timeout,
        )
    except httpx.TimeoutException:
        return DeliveryOutcome(ok=False, error=f"Timed out after {timeout:g}s")
    except httpx.HTTPError as exc:
        return DeliveryOutcome(ok=False, error=f"{type(exc).__name__}: {exc}")
    except (httpx.InvalidURL, ValueError) as exc:
        # Malformed endpoint URL or a header value httpx cannot encode.
        return DeliveryOutcome(ok=False, error=f"Invalid request: {type(exc).__name__}: {exc}")

    if HTTP_OK_MIN <= response.status_code <= HTTP_OK_MAX:
        return DeliveryOutcome(ok=True, status_code=response.status_code)
    return DeliveryOutcome(
        ok=False,
        status_code=response.status_code,
        error=f"HTTP {response.status_code}",
    )


class DeliveryWorkerPool:
    """Runs a fixed number of delivery workers plus a maintenance loop.

    Jobs are processed concurrently up to ``worker_count``; each worker holds
    at most one job at a time.
    Queue calls are blocking database work and run in a thread so a slow
    database does not stall deliveries already in flight.
    """

    def __init__(
        self,
        queue: DeliveryQueue,
        worker_count: int = 4,
        timeout_seconds: float = 10.0,
        poll_interval: float = 0.5,
        maintenance_interval: float = 1.0,
        client: httpx.AsyncClient | None = None,
        *,
        user_agent: str | None = None,
        source_name: str | None = None,
        name: str | None = None,
    ) -> None:
        self.queue = queue
        self.worker_count = max(1, int(worker_count))
        self.timeout_seconds = float(timeout_seconds)
        self.poll_interval = max(0.01, float(poll_interval))
        self.maintenance_interval = max(0.01, float(maintenance_interval))
        self.user_agent = user_agent
        self.source_name = source_name
        self.name = name or f"{socket.gethostname()}:{os.getpid()}"
        self._client = client
        self._owns_client = client is None
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Start the worker and maintenance tasks."""
        if self.running:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
            self._owns_client = True
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._work(f"{self.name}:{index}"), name=f"delivery-worker-{index}")
            for index in range(self.worker_count)
        ]
        self._tasks.append(asyncio.create_task(self._maintain(), name="delivery-maintenance"))
        logger.info("Started %d delivery worker(s)", self.worker_count)

    async def stop(self, grace_seconds: float = 15.0) -> None:
        """Stop claiming new jobs and wait for in-flight deliveries.

        Deliveries still running after ``grace_seconds`` are cancelled; their
        jobs stay active and are recovered by stall detection later.
        """
        if not self._tasks:
            return
        self._stopping.set()
        _, pending = await asyncio.wait(self._tasks, timeout=max(0.0, grace_seconds))
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d delivery task(s) after shutdown grace period", len(pending))
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Delivery workers stopped")

    async def process_next(self, worker_id: str) -> bool:
        """Claim and deliver a single job. Returns False if none was due."""
        job = await asyncio.to_thread(self.queue.claim, worker_id)
        if job is None:
            return False
        await self._process(job)
        return True

    async def run_maintenance(self) -> None:
        """Promote due retries and recover stalled jobs once."""
        promoted = await asyncio.to_thread(self.queue.promote_due)
        recovered = await asyncio.to_thread(self.queue.recover_stalled)
        if promoted or recovered:
            logger.debug("Queue maintenance: promoted=%d recovered=%d", promoted, recovered)

    async def _process(self, job: ClaimedJob) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
            self._owns_client = True

        outcome = await deliver(
            self._client,
            job,
            self.timeout_seconds,
            user_agent=self.user_agent,
            source_name=self.source_name,
        )
        if outcome.ok:
            completed = await asyncio.to_thread(
                self.queue.complete, job.id, job.claim_token, outcome.status_code
            )
            if completed:
                logger.info(
                    "Delivered webhook for %s to %s (job %s, status %s)",
                    job.phone_number_id,
                    job.destination_name,
                    job.id,
                    outcome.status_code,
                )
            return
        await asyncio.to_thread(
            self.queue.fail,
            job.id,
            job.claim_token,
            outcome.error or "Delivery failed",
            status_code=outcome.status_code,
        )

    async def _work(self, worker_id: str) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.process_next(worker_id)
            except (SQLAlchemyError, QueueError) as e:
                logger.warning("Delivery worker %s encountered queue error: %s", worker_id, e)
                await self._idle(QUEUE_ERROR_BACKOFF_SECONDS)
                continue
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.error(
                    "Delivery worker %s encountered job processing error: %s",
                    worker_id,
                    e,
                    exc_info=True,
                )
                await self._idle(self.poll_interval)
                continue
            if not processed:
                await self._idle(self.poll_interval)

    async def _maintain(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_maintenance()
            except (SQLAlchemyError, QueueError) as e:
                logger.warning("Delivery queue maintenance failed: %s", e)
            await self._idle(self.maintenance_interval)

    async def _idle(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except TimeoutError:
            pass


def build_worker_pool(queue: DeliveryQueue | None = None) -> DeliveryWorkerPool:
    """Return a worker pool configured from application settings."""
    return DeliveryWorkerPool(
        queue or build_delivery_queue(),
        worker_count=settings.delivery_worker_count,
        timeout_seconds=settings.delivery_timeout_seconds,
        poll_interval=settings.delivery_poll_interval_seconds,
        maintenance_interval=max(settings.delivery_poll_interval_seconds, 1.0),
        user_agent=settings.delivery_user_agent,
        source_name=settings.delivery_source_name,
    )


class _WorkerPoolSingleton:
    """Singleton wrapper for the process-wide DeliveryWorkerPool."""

    _instance: DeliveryWorkerPool | None = None

    @classmethod
    def get_instance(cls) -> DeliveryWorkerPool:
        """Get or create the singleton DeliveryWorkerPool instance."""
        if cls._instance is None:
            cls._instance = build_worker_pool()
        return cls._instance


def get_worker_pool() -> DeliveryWorkerPool:
    """Return the process-wide delivery worker pool."""
    return _WorkerPoolSingleton.get_instance()
