# src/webhook_hub/models/__init__.py
"""SQLAlchemy models for the Webhook Hub application."""

from .account import App, BusinessAccount
from .delivery_job import DeliveryJob
from .destination import Destination, DestinationMapping
from .phone_number import PhoneNumber

__all__ = [
    "App", "BusinessAccount",
    "DeliveryJob",
    "Destination", "DestinationMapping",
    "PhoneNumber",
]
