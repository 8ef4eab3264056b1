# src/webhook_hub/models/delivery_job.py
"""SQLAlchemy model for persisted webhook delivery jobs."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    SmallInteger,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from webhook_hub.db.session import Base
from webhook_hub.db.time import utcnow

JOB_STATUS_WAITING = "waiting"
JOB_STATUS_ACTIVE = "active"
JOB_STATUS_DELAYED = "delayed"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

JOB_STATUSES = (
    JOB_STATUS_WAITING,
    JOB_STATUS_ACTIVE,
    JOB_STATUS_DELAYED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)


class DeliveryJob(Base):
    """One payload bound for one destination, with its retry bookkeeping."""

    __tablename__ = "delivery_jobs"
    __table_args__ = (
        Index("ix_delivery_jobs_status_available", "status", "available_at"),
        Index("ix_delivery_jobs_status_finished", "status", "finished_at"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    phone_number_id: Mapped[str] = mapped_column(String(50), nullable=False)
    destination_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    destination_name: Mapped[str] = mapped_column(String(100), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    # Raw inbound body, forwarded byte for byte.
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    # waiting -> active -> completed | delayed (retry pending) | failed
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JOB_STATUS_WAITING
    )
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=3)
    backoff_base_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=2000)

    available_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    # Ownership of an active job; reports from a stale owner are discarded.
    claim_token: Mapped[str | None] = mapped_column(String(32), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    worker_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
