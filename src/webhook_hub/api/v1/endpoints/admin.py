"""Administrative CRUD over the destination catalog."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from webhook_hub.api.v1.dependencies import CatalogDep, QueueDep, ResolverDep
from webhook_hub.schemas.catalog import (
    AppCreate,
    AppResponse,
    BusinessAccountCreate,
    BusinessAccountResponse,
    DestinationCreate,
    DestinationResponse,
    DestinationUpdate,
    MappedDestinationResponse,
    MappingCreate,
    MappingResponse,
    PhoneNumberCreate,
    PhoneNumberResponse,
)
from webhook_hub.services.catalog import (
    CatalogConflictError,
    CatalogError,
    CatalogNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _http_error(exc: CatalogError) -> HTTPException:
    if isinstance(exc, CatalogNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, CatalogConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# --- Business accounts ---------------------------------------------------------------
@router.get("/business-accounts", response_model=list[BusinessAccountResponse])
async def list_business_accounts(catalog: CatalogDep) -> list[Any]:
    return catalog.list_business_accounts()


@router.post(
    "/business-accounts",
    response_model=BusinessAccountResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_business_account(payload: BusinessAccountCreate, catalog: CatalogDep) -> Any:
    try:
        return catalog.create_business_account(
            business_id=payload.business_id,
            name=payload.name,
            timezone=payload.timezone,
        )
    except CatalogError as err:
        raise _http_error(err) from err


# --- Apps ----------------------------------------------------------------------------
@router.get("/business-accounts/{business_id}/apps", response_model=list[AppResponse])
async def list_apps(business_id: str, catalog: CatalogDep) -> list[Any]:
    return catalog.list_apps(business_id)


@router.post("/apps", response_model=AppResponse, status_code=status.HTTP_201_CREATED)
async def create_app(payload: AppCreate, catalog: CatalogDep) -> Any:
    try:
        return catalog.create_app(
            app_id=payload.id,
            business_id=payload.business_id,
            name=payload.name,
            verify_token=payload.verify_token,
        )
    except CatalogError as err:
        raise _http_error(err) from err


# --- Phone numbers -------------------------------------------------------------------
@router.get("/apps/{app_id}/phone-numbers", response_model=list[PhoneNumberResponse])
async def list_phone_numbers(app_id: str, catalog: CatalogDep) -> list[dict[str, Any]]:
    return catalog.list_phone_numbers(app_id)


@router.post(
    "/phone-numbers",
    response_model=PhoneNumberResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_phone_number(payload: PhoneNumberCreate, catalog: CatalogDep) -> Any:
    try:
        return catalog.create_phone_number(
            phone_number_id=payload.phone_number_id,
            app_id=payload.app_id,
            phone_number=payload.phone_number,
            display_name=payload.display_name,
        )
    except CatalogError as err:
        raise _http_error(err) from err


@router.get(
    "/phone-numbers/{phone_number_id}/destinations",
    response_model=list[MappedDestinationResponse],
)
async def list_phone_number_destinations(
    phone_number_id: str, catalog: CatalogDep
) -> list[dict[str, Any]]:
    """List every mapping of a phone number id, including inactive ones."""
    return catalog.list_mappings(phone_number_id)


# --- Destinations --------------------------------------------------------------------
@router.get("/destinations", response_model=list[DestinationResponse])
async def list_destinations(catalog: CatalogDep) -> list[Any]:
    return catalog.list_destinations()


@router.post(
    "/destinations",
    response_model=DestinationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_destination(payload: DestinationCreate, catalog: CatalogDep) -> Any:
    try:
        return catalog.create_destination(
            name=payload.name,
            endpoint=payload.endpoint,
            description=payload.description,
            is_active=payload.is_active,
        )
    except CatalogError as err:
        raise _http_error(err) from err


@router.patch("/destinations/{destination_id}", response_model=DestinationResponse)
async def update_destination(
    destination_id: int, payload: DestinationUpdate, resolver: ResolverDep
) -> Any:
    """Update a destination and drop cached routing of every phone number using it."""
    try:
        return resolver.update_destination(destination_id, payload.model_dump(exclude_unset=True))
    except CatalogError as err:
        raise _http_error(err) from err


# --- Mappings ------------------------------------------------------------------------
@router.post("/mappings", response_model=MappingResponse, status_code=status.HTTP_201_CREATED)
async def create_mapping(payload: MappingCreate, resolver: ResolverDep) -> Any:
    """Map a phone number id to a destination, reactivating an existing mapping."""
    try:
        return resolver.map_destination(
            phone_number_id=payload.phone_number_id,
            destination_id=payload.destination_id,
            priority=payload.priority,
        )
    except CatalogError as err:
        raise _http_error(err) from err


@router.delete("/mappings/{phone_number_id}/{destination_id}")
async def delete_mapping(
    phone_number_id: str, destination_id: int, resolver: ResolverDep
) -> dict[str, str]:
    mapping = resolver.unmap_destination(phone_number_id, destination_id)
    if mapping is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
    return {"message": "Mapping removed successfully"}


# --- Health --------------------------------------------------------------------------
@router.get("/health")
async def admin_health(
    catalog: CatalogDep, resolver: ResolverDep, queue: QueueDep
) -> dict[str, object]:
    """Report catalog reachability together with cache and queue counters."""
    try:
        catalog.ping()
        database = "connected"
    except SQLAlchemyError:
        logger.error("Health check could not reach the catalog database", exc_info=True)
        database = "unavailable"

    try:
        queue_stats: dict[str, int] | None = queue.get_stats().as_dict()
    except SQLAlchemyError:
        logger.error("Health check could not read queue statistics", exc_info=True)
        queue_stats = None

    healthy = database == "connected" and queue_stats is not None
    return {
        "status": "healthy" if healthy else "degraded",
        "database": database,
        "cache": resolver.cache_stats().as_dict(),
        "queue": queue_stats,
    }
