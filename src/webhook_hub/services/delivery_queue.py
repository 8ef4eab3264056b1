"""Durable delivery queue backed by the ``delivery_jobs`` table.

Every job is one payload bound for one destination. Jobs move through::

    waiting -> active -> completed
                      -> delayed -> waiting   (retry after backoff)
                      -> failed               (attempts exhausted)

Claims are compare-and-set updates, so a job is owned by at most one worker
at a time even when several relay processes share the database. Each claim
carries a token; completion reports from a worker that lost ownership (for
example after stall recovery) are discarded.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from webhook_hub.core.settings import settings
from webhook_hub.db.session import SessionLocal
from webhook_hub.db.time import as_utc, utcnow
from webhook_hub.models.delivery_job import (
    JOB_STATUS_ACTIVE,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_DELAYED,
    JOB_STATUS_FAILED,
    JOB_STATUS_WAITING,
    JOB_STATUSES,
    DeliveryJob,
)

logger = logging.getLogger(__name__)

# Candidates inspected per claim; losing a race on one moves on to the next.
CLAIM_BATCH_SIZE = 5
MAX_ERROR_LENGTH = 1000


class QueueError(RuntimeError):
    """Raised when the queue backend cannot accept or update a job."""


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit and exponential backoff shared by all jobs of a queue."""

    max_attempts: int = 3
    backoff_base_seconds: float = 2.0

    def delay_for(self, attempt: int) -> timedelta:
        """Return the wait before the retry that follows failed attempt ``attempt``."""
        return timedelta(seconds=self.backoff_base_seconds * 2 ** (max(attempt, 1) - 1))


@dataclass(frozen=True)
class Retention:
    """How many terminal jobs are kept for inspection."""

    keep_completed: int = 100
    keep_failed: int = 500


@dataclass(frozen=True)
class NewDeliveryJob:
    """Enqueue request produced by the fan-out coordinator."""

    phone_number_id: str
    destination_name: str
    endpoint: str
    payload: bytes
    destination_id: int | None = None


@dataclass(frozen=True)
class ClaimedJob:
    """Detached snapshot of a job handed to a worker."""

    id: int
    claim_token: str
    phone_number_id: str
    destination_id: int | None
    destination_name: str
    endpoint: str
    payload: bytes
    attempts: int
    max_attempts: int


@dataclass(frozen=True)
class JobView:
    """Read-only view of a job for inspection endpoints."""

    id: int
    phone_number_id: str
    destination_id: int | None
    destination_name: str
    endpoint: str
    status: str
    attempts: int
    max_attempts: int
    available_at: datetime | None
    claimed_at: datetime | None
    worker_id: str | None
    last_error: str | None
    last_status_code: int | None
    created_at: datetime | None
    finished_at: datetime | None

    @classmethod
    def from_model(cls, job: DeliveryJob) -> JobView:
        return cls(
            id=job.id,
            phone_number_id=job.phone_number_id,
            destination_id=job.destination_id,
            destination_name=job.destination_name,
            endpoint=job.endpoint,
            status=job.status,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            available_at=as_utc(job.available_at),
            claimed_at=as_utc(job.claimed_at),
            worker_id=job.worker_id,
            last_error=job.last_error,
            last_status_code=job.last_status_code,
            created_at=as_utc(job.created_at),
            finished_at=as_utc(job.finished_at),
        )


@dataclass(frozen=True)
class QueueStats:
    """Job counts per state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
        }


class DeliveryQueue:
    """Persisted job queue with per-job retry, backoff and bounded history."""

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        policy: RetryPolicy | None = None,
        retention: Retention | None = None,
        stall_timeout_seconds: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self.policy = policy or RetryPolicy()
        self.retention = retention or Retention()
        self.stall_timeout = timedelta(seconds=stall_timeout_seconds)
        self._clock = clock

    # --- Producer side ------------------------------------------------------------
    def enqueue(self, request: NewDeliveryJob) -> int:
        """Persist a new waiting job and return its id.

        Raises:
            QueueError: If the job could not be stored.
        """
        now = self._clock()
        job = DeliveryJob(
            phone_number_id=request.phone_number_id,
            destination_id=request.destination_id,
            destination_name=request.destination_name,
            endpoint=request.endpoint,
            payload=request.payload,
            status=JOB_STATUS_WAITING,
            attempts=0,
            max_attempts=self.policy.max_attempts,
            backoff_base_ms=int(self.policy.backoff_base_seconds * 1000),
            available_at=now,
            created_at=now,
        )
        try:
            with self._session_factory() as db:
                db.add(job)
                db.commit()
                return int(job.id)
        except SQLAlchemyError as exc:
            raise QueueError(
                f"Could not enqueue delivery to {request.destination_name}: {exc}"
            ) from exc

    # --- Worker side --------------------------------------------------------------
    def claim(self, worker_id: str) -> ClaimedJob | None:
        """Atomically take ownership of the oldest due waiting job."""
        now = self._clock()
        with self._session_factory() as db:
            candidate_ids = list(
                db.scalars(
                    select(DeliveryJob.id)
                    .where(
                        DeliveryJob.status == JOB_STATUS_WAITING,
                        DeliveryJob.available_at <= now,
                    )
                    .order_by(DeliveryJob.available_at.asc(), DeliveryJob.id.asc())
                    .limit(CLAIM_BATCH_SIZE)
                )
            )
            for job_id in candidate_ids:
                token = secrets.token_hex(16)
                result = db.execute(
                    update(DeliveryJob)
                    .where(DeliveryJob.id == job_id, DeliveryJob.status == JOB_STATUS_WAITING)
                    .values(
                        status=JOB_STATUS_ACTIVE,
                        claim_token=token,
                        claimed_at=now,
                        worker_id=worker_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                db.commit()
                if result.rowcount != 1:
                    continue
                job = db.get(DeliveryJob, job_id)
                if job is None:  # pragma: no cover - pruned between statements
                    continue
                return ClaimedJob(
                    id=job.id,
                    claim_token=token,
                    phone_number_id=job.phone_number_id,
                    destination_id=job.destination_id,
                    destination_name=job.destination_name,
                    endpoint=job.endpoint,
                    payload=job.payload,
                    attempts=job.attempts,
                    max_attempts=job.max_attempts,
                )
        return None

    def complete(self, job_id: int, claim_token: str, status_code: int | None = None) -> bool:
        """Mark an owned job as delivered. Returns False if ownership was lost."""
        now = self._clock()
        with self._session_factory() as db:
            job = self._owned(db, job_id, claim_token)
            if job is None:
                return False
            job.attempts += 1
            job.status = JOB_STATUS_COMPLETED
            job.last_status_code = status_code
            job.last_error = None
            job.finished_at = now
            job.claim_token = None
            db.commit()
        self.prune()
        return True

    def fail(
        self,
        job_id: int,
        claim_token: str,
        error: str,
        status_code: int | None = None,
    ) -> str | None:
        """Record a failed attempt on an owned job.

        Schedules a retry after ``policy.delay_for(attempts)`` while attempts
        remain, otherwise moves the job to ``failed``.

        Returns:
            The job's new status, or None if ownership was lost.
        """
        now = self._clock()
        with self._session_factory() as db:
            job = self._owned(db, job_id, claim_token)
            if job is None:
                return None
            job.attempts += 1
            job.last_error = error[:MAX_ERROR_LENGTH]
            job.last_status_code = status_code
            job.claim_token = None
            if job.attempts < job.max_attempts:
                delay = RetryPolicy(
                    max_attempts=job.max_attempts,
                    backoff_base_seconds=job.backoff_base_ms / 1000,
                ).delay_for(job.attempts)
                job.status = JOB_STATUS_DELAYED
                job.available_at = now + delay
                logger.warning(
                    "Delivery job %s to %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    job.id,
                    job.destination_name,
                    job.attempts,
                    job.max_attempts,
                    error,
                    delay.total_seconds(),
                )
            else:
                job.status = JOB_STATUS_FAILED
                job.finished_at = now
                logger.error(
                    "Delivery job %s to %s permanently failed after %d attempts: %s",
                    job.id,
                    job.destination_name,
                    job.attempts,
                    error,
                )
            status = job.status
            db.commit()
        if status == JOB_STATUS_FAILED:
            self.prune()
        return status

    def _owned(self, db: Session, job_id: int, claim_token: str) -> DeliveryJob | None:
        job = db.get(DeliveryJob, job_id)
        if job is None or job.status != JOB_STATUS_ACTIVE or job.claim_token != claim_token:
            logger.warning(
                "Discarding result for delivery job %s: worker no longer owns it", job_id
            )
            return None
        return job

    # --- Maintenance --------------------------------------------------------------
    def promote_due(self) -> int:
        """Move delayed jobs whose backoff has elapsed back to waiting."""
        now = self._clock()
        with self._session_factory() as db:
            result = db.execute(
                update(DeliveryJob)
                .where(DeliveryJob.status == JOB_STATUS_DELAYED, DeliveryJob.available_at <= now)
                .values(status=JOB_STATUS_WAITING)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return int(result.rowcount or 0)

    def recover_stalled(self) -> int:
        """Return active jobs whose owner went silent to the waiting state.

        The stalled attempt is not counted against the job's attempt budget.
        """
        now = self._clock()
        cutoff = now - self.stall_timeout
        with self._session_factory() as db:
            stalled = list(
                db.scalars(
                    select(DeliveryJob).where(
                        DeliveryJob.status == JOB_STATUS_ACTIVE,
                        DeliveryJob.claimed_at < cutoff,
                    )
                )
            )
            for job in stalled:
                logger.warning(
                    "Delivery job %s stalled for %s (worker %s); returning it to the queue",
                    job.id,
                    job.destination_name,
                    job.worker_id,
                )
                job.status = JOB_STATUS_WAITING
                job.claim_token = None
                job.claimed_at = None
                job.worker_id = None
                job.available_at = now
            db.commit()
            return len(stalled)

    def prune(self) -> int:
        """Evict terminal jobs beyond the retention limits, oldest first."""
        removed = 0
        limits = (
            (JOB_STATUS_COMPLETED, self.retention.keep_completed),
            (JOB_STATUS_FAILED, self.retention.keep_failed),
        )
        with self._session_factory() as db:
            for status, keep in limits:
                stale_ids = list(
                    db.scalars(
                        select(DeliveryJob.id)
                        .where(DeliveryJob.status == status)
                        .order_by(DeliveryJob.finished_at.desc(), DeliveryJob.id.desc())
                        .offset(max(keep, 0))
                    )
                )
                if not stale_ids:
                    continue
                for job in db.scalars(select(DeliveryJob).where(DeliveryJob.id.in_(stale_ids))):
                    db.delete(job)
                removed += len(stale_ids)
            db.commit()
        return removed

    # --- Observability ------------------------------------------------------------
    def get_stats(self) -> QueueStats:
        """Return job counts per state without changing anything."""
        with self._session_factory() as db:
            rows = db.execute(
                select(DeliveryJob.status, func.count(DeliveryJob.id)).group_by(DeliveryJob.status)
            ).all()
        counts = {status: int(count) for (status, count) in rows}
        return QueueStats(**{status: counts.get(status, 0) for status in JOB_STATUSES})

    def list_jobs(self, status: str | None = None, limit: int = 50) -> list[JobView]:
        """Return the most recent jobs, optionally filtered by state."""
        stmt = select(DeliveryJob).order_by(DeliveryJob.id.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(DeliveryJob.status == status)
        with self._session_factory() as db:
            return [JobView.from_model(job) for job in db.scalars(stmt)]

    def get_job(self, job_id: int) -> JobView | None:
        with self._session_factory() as db:
            job = db.get(DeliveryJob, job_id)
            return JobView.from_model(job) if job is not None else None


def build_delivery_queue() -> DeliveryQueue:
    """Return a queue configured from application settings."""
    return DeliveryQueue(
        policy=RetryPolicy(
            max_attempts=settings.delivery_max_attempts,
            backoff_base_seconds=settings.delivery_backoff_base_seconds,
        ),
        retention=Retention(
            keep_completed=settings.delivery_keep_completed,
            keep_failed=settings.delivery_keep_failed,
        ),
        stall_timeout_seconds=settings.delivery_stall_timeout_seconds,
    )


def get_delivery_queue() -> DeliveryQueue:
    """Return a delivery queue bound to the application database."""
    return build_delivery_queue()
