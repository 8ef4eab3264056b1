"""Schemas for queue, cache and dispatch inspection."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class QueueStatsResponse(BaseModel):
    """Job counts per state."""

    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int


class CacheStatsResponse(BaseModel):
    """Resolution cache counters and currently cached identifiers."""

    hits: int
    misses: int
    keys: int
    identifiers: list[str]


class DeliveryJobResponse(BaseModel):
    """Delivery job metadata; the forwarded payload is not echoed."""

    model_config = ConfigDict(from_attributes=True)

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


class WebhookAck(BaseModel):
    """Acknowledgement returned to the webhook sender."""

    status: str = "received"
    phone_number_id: str
