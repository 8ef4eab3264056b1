"""Operational endpoints for the resolution cache and delivery queue."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from webhook_hub.api.v1.dependencies import QueueDep, ResolverDep
from webhook_hub.models.delivery_job import JOB_STATUSES
from webhook_hub.schemas.delivery import (
    CacheStatsResponse,
    DeliveryJobResponse,
    QueueStatsResponse,
)

router = APIRouter(prefix="/admin/system", tags=["admin", "system"])


@router.post("/cache/clear")
async def clear_cache(resolver: ResolverDep) -> dict[str, str]:
    """Drop every cached resolution; the next lookups go to the catalog."""
    resolver.flush()
    return {"message": "All cache cleared successfully"}


@router.delete("/cache/{phone_number_id}")
async def invalidate_cache(phone_number_id: str, resolver: ResolverDep) -> dict[str, object]:
    deleted = resolver.invalidate(phone_number_id)
    return {
        "message": f"Cache invalidated for {phone_number_id}",
        "deleted": deleted,
    }


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(resolver: ResolverDep) -> CacheStatsResponse:
    stats = resolver.cache_stats()
    return CacheStatsResponse(
        hits=stats.hits,
        misses=stats.misses,
        keys=stats.keys,
        identifiers=resolver.cached_identifiers(),
    )


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def get_queue_stats(queue: QueueDep) -> QueueStatsResponse:
    """Return job counts per state without changing any job."""
    return QueueStatsResponse(**queue.get_stats().as_dict())


@router.get("/queue/jobs", response_model=list[DeliveryJobResponse])
async def list_queue_jobs(
    queue: QueueDep,
    job_status: Annotated[str | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[DeliveryJobResponse]:
    if job_status is not None and job_status not in JOB_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status {job_status!r}; expected one of {', '.join(JOB_STATUSES)}",
        )
    return [
        DeliveryJobResponse.model_validate(job)
        for job in queue.list_jobs(status=job_status, limit=limit)
    ]


@router.get("/queue/jobs/{job_id}", response_model=DeliveryJobResponse)
async def get_queue_job(job_id: int, queue: QueueDep) -> DeliveryJobResponse:
    job = queue.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return DeliveryJobResponse.model_validate(job)
