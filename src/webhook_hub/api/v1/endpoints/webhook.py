"""Inbound webhook intake and verification handshake."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from webhook_hub.api.v1.dependencies import CatalogDep, CoordinatorDep
from webhook_hub.schemas.delivery import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


def extract_phone_number_id(body: Any) -> str | None:
    """Return ``entry[0].changes[0].value.metadata.phone_number_id`` if present."""
    try:
        value = body["entry"][0]["changes"][0]["value"]["metadata"]["phone_number_id"]
    except (KeyError, IndexError, TypeError):
        return None
    if value is None or value == "":
        return None
    return str(value)


@router.get("", response_class=PlainTextResponse)
async def verify_webhook(
    catalog: CatalogDep,
    mode: Annotated[str | None, Query(alias="hub.mode")] = None,
    token: Annotated[str | None, Query(alias="hub.verify_token")] = None,
    challenge: Annotated[str | None, Query(alias="hub.challenge")] = None,
) -> PlainTextResponse:
    """Answer the provider's subscription handshake.

    Echoes ``hub.challenge`` when the verify token belongs to a registered app.
    """
    if mode != "subscribe" or not token:
        logger.warning("Invalid webhook verification request (mode=%s)", mode)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request")

    try:
        app_info = catalog.find_app_by_verify_token(token)
    except SQLAlchemyError as err:
        logger.error("Verify token lookup failed", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Catalog unavailable",
        ) from err

    if app_info is None:
        logger.warning("Webhook verification rejected: unknown verify token")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    logger.info(
        "Webhook verified for app %s (business %s)", app_info.app_name, app_info.business_name
    )
    return PlainTextResponse(challenge or "")


@router.post("", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    coordinator: CoordinatorDep,
) -> WebhookAck:
    """Acknowledge an inbound notification and fan it out in the background.

    The raw body is forwarded byte for byte; it is parsed only to find the
    inbound phone number id.
    """
    raw_body = await request.body()
    try:
        body = json.loads(raw_body)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body must be a JSON object",
        ) from err
    if not isinstance(body, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body must be a JSON object",
        )

    phone_number_id = extract_phone_number_id(body)
    if phone_number_id is None:
        logger.warning("Missing phone_number_id in webhook payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing entry[0].changes[0].value.metadata.phone_number_id",
        )

    logger.info("Received webhook for phone number id %s", phone_number_id)
    background_tasks.add_task(coordinator.dispatch, phone_number_id, raw_body)
    return WebhookAck(phone_number_id=phone_number_id)
