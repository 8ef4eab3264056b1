# src/webhook_hub/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .catalog import (
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
from .delivery import CacheStatsResponse, DeliveryJobResponse, QueueStatsResponse, WebhookAck

__all__ = [
    "AppCreate", "AppResponse",
    "BusinessAccountCreate", "BusinessAccountResponse",
    "DestinationCreate", "DestinationResponse", "DestinationUpdate",
    "MappedDestinationResponse", "MappingCreate", "MappingResponse",
    "PhoneNumberCreate", "PhoneNumberResponse",
    "CacheStatsResponse", "DeliveryJobResponse", "QueueStatsResponse",
    "WebhookAck",
]
