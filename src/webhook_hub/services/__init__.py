# src/webhook_hub/services/__init__.py
"""Routing, queueing and delivery services for the Webhook Hub."""

from .catalog import DestinationCatalog, ResolvedDestination
from .delivery_queue import DeliveryQueue, QueueError, RetryPolicy
from .delivery_worker import DeliveryWorkerPool
from .fanout import DispatchSummary, FanoutCoordinator
from .resolver import Resolver

__all__ = [
    "DestinationCatalog",
    "ResolvedDestination",
    "DeliveryQueue",
    "QueueError",
    "RetryPolicy",
    "DeliveryWorkerPool",
    "DispatchSummary",
    "FanoutCoordinator",
    "Resolver",
]
