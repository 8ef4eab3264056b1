"""Shared API dependencies for the intake and admin routers."""

from typing import Annotated

from fastapi import Depends

from webhook_hub.services.catalog import DestinationCatalog, get_catalog
from webhook_hub.services.delivery_queue import DeliveryQueue, get_delivery_queue
from webhook_hub.services.fanout import FanoutCoordinator, get_fanout_coordinator
from webhook_hub.services.resolver import Resolver, get_resolver

CatalogDep = Annotated[DestinationCatalog, Depends(get_catalog)]
ResolverDep = Annotated[Resolver, Depends(get_resolver)]
QueueDep = Annotated[DeliveryQueue, Depends(get_delivery_queue)]
CoordinatorDep = Annotated[FanoutCoordinator, Depends(get_fanout_coordinator)]
