"""Resolve inbound phone number ids to the destinations that should receive them.

The resolver consults the resolution cache first and the catalog on a miss.
Mapping mutations go through the resolver as well so that the affected
cache entry is deleted before the mutation is reported as successful.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from webhook_hub.core.settings import settings
from webhook_hub.models import Destination, DestinationMapping
from webhook_hub.services.catalog import (
    CatalogError,
    DestinationCatalog,
    ResolvedDestination,
    get_catalog,
)
from webhook_hub.services.resolution_cache import (
    CacheStats,
    ResolutionCache,
    build_resolution_cache,
)

logger = logging.getLogger(__name__)


class Resolver:
    """Cache-then-catalog lookup of destinations for an inbound identifier."""

    def __init__(
        self,
        catalog: DestinationCatalog,
        cache: ResolutionCache,
        key_prefix: str = "phone:",
    ) -> None:
        self.catalog = catalog
        self.cache = cache
        self.key_prefix = key_prefix
        # Invalidation counters; a catalog read that overlaps an invalidation of
        # its key is returned but not cached.
        self._lock = Lock()
        self._sequence = 0
        self._invalidated: dict[str, int] = {}
        self._flushed = 0

    def cache_key(self, identifier: str) -> str:
        return f"{self.key_prefix}{identifier}"

    def resolve(self, identifier: str) -> list[ResolvedDestination]:
        """Return the ordered destinations for ``identifier``.

        Cache hits are returned without consulting the catalog. On a miss the
        catalog is queried; non-empty results are cached, empty results and
        failures are not, so the next call goes back to the catalog. A result
        read while the identifier was being invalidated is not cached either,
        so a concurrent mapping change cannot be overwritten by stale rows.

        Never raises: catalog failures are logged and yield an empty list.
        """
        key = self.cache_key(identifier)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache HIT for phone number: %s", identifier)
            return cached

        logger.debug("Cache MISS for phone number: %s", identifier)
        generation = self._generation(key)
        try:
            destinations = self.catalog.find_active_destinations(identifier)
        except (SQLAlchemyError, CatalogError, OSError):
            logger.error(
                "Catalog lookup failed for phone number %s; routing to no destinations",
                identifier,
                exc_info=True,
            )
            return []

        destinations = _dedupe(destinations)
        if destinations and self._store(key, destinations, generation):
            logger.info(
                "Cached %d destination(s) for phone number: %s",
                len(destinations),
                identifier,
            )
        return destinations

    def _generation(self, key: str) -> tuple[int, int]:
        with self._lock:
            return self._invalidated.get(key, 0), self._flushed

    def _store(
        self, key: str, destinations: list[ResolvedDestination], generation: tuple[int, int]
    ) -> bool:
        with self._lock:
            if (self._invalidated.get(key, 0), self._flushed) != generation:
                logger.debug("Skipping cache write for %s: invalidated during lookup", key)
                return False
            self.cache.set(key, destinations)
            return True

    def invalidate(self, identifier: str) -> bool:
        """Delete the cached entry for ``identifier``; True if one existed."""
        key = self.cache_key(identifier)
        with self._lock:
            self._sequence += 1
            self._invalidated[key] = self._sequence
            deleted = self.cache.delete(key)
        if deleted:
            logger.info("Invalidated cache for phone number: %s", identifier)
        return deleted

    def flush(self) -> None:
        with self._lock:
            self._sequence += 1
            self._flushed = self._sequence
            self.cache.flush()
        logger.info("All resolution cache entries cleared")

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def cached_identifiers(self) -> list[str]:
        prefix_len = len(self.key_prefix)
        return [key[prefix_len:] for key in self.cache.keys() if key.startswith(self.key_prefix)]

    # --- Mutations that change routing --------------------------------------------
    def map_destination(
        self, *, phone_number_id: str, destination_id: int, priority: int = 0
    ) -> DestinationMapping:
        """Create or update a mapping and drop the identifier's cached routing."""
        try:
            return self.catalog.map_destination(
                phone_number_id=phone_number_id,
                destination_id=destination_id,
                priority=priority,
            )
        finally:
            self.invalidate(phone_number_id)

    def unmap_destination(
        self, phone_number_id: str, destination_id: int
    ) -> DestinationMapping | None:
        """Deactivate a mapping and drop the identifier's cached routing."""
        try:
            return self.catalog.unmap_destination(phone_number_id, destination_id)
        finally:
            self.invalidate(phone_number_id)

    def update_destination(self, destination_id: int, changes: dict[str, Any]) -> Destination:
        """Update a destination and drop cached routing of every identifier using it."""
        destination, identifiers = self.catalog.update_destination(destination_id, changes)
        for identifier in identifiers:
            self.invalidate(identifier)
        return destination


def _dedupe(destinations: list[ResolvedDestination]) -> list[ResolvedDestination]:
    """Keep the first occurrence of each destination, preserving order."""
    seen: set[int] = set()
    unique: list[ResolvedDestination] = []
    for destination in destinations:
        if destination.destination_id in seen:
            continue
        seen.add(destination.destination_id)
        unique.append(destination)
    return unique


class _ResolverSingleton:
    """Singleton wrapper for the process-wide Resolver."""

    _instance: Resolver | None = None

    @classmethod
    def get_instance(cls) -> Resolver:
        """Get or create the singleton Resolver instance."""
        if cls._instance is None:
            cls._instance = Resolver(
                get_catalog(),
                build_resolution_cache(settings),
                key_prefix=settings.cache_key_prefix,
            )
        return cls._instance


def get_resolver() -> Resolver:
    """Return the process-wide resolver and its cache."""
    return _ResolverSingleton.get_instance()
