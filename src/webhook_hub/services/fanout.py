"""Fan-out of one inbound notification into per-destination delivery jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from webhook_hub.services.delivery_queue import (
    DeliveryQueue,
    NewDeliveryJob,
    QueueError,
    get_delivery_queue,
)
from webhook_hub.services.resolver import Resolver, get_resolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchSummary:
    """Counts reported for one dispatch."""

    total_destinations: int
    queued: int
    failed_to_queue: int

    def as_dict(self) -> dict[str, int]:
        return {
            "total_destinations": self.total_destinations,
            "queued": self.queued,
            "failed_to_queue": self.failed_to_queue,
        }


class FanoutCoordinator:
    """Resolves an identifier and enqueues one delivery job per destination."""

    def __init__(self, resolver: Resolver, queue: DeliveryQueue) -> None:
        self.resolver = resolver
        self.queue = queue

    def dispatch(self, identifier: str, payload: bytes) -> DispatchSummary:
        """Enqueue ``payload`` for every destination mapped to ``identifier``.

        Each enqueue is attempted independently; failures are logged and
        counted. Never raises, and never waits for delivery outcomes.
        """
        destinations = self.resolver.resolve(identifier)
        if not destinations:
            logger.info("No destinations found for phone number: %s", identifier)
            return DispatchSummary(total_destinations=0, queued=0, failed_to_queue=0)

        queued = 0
        failed = 0
        for destination in destinations:
            try:
                job_id = self.queue.enqueue(
                    NewDeliveryJob(
                        phone_number_id=identifier,
                        destination_id=destination.destination_id,
                        destination_name=destination.destination_name,
                        endpoint=destination.endpoint,
                        payload=payload,
                    )
                )
            except QueueError as e:
                failed += 1
                logger.error(
                    "Failed to queue webhook for %s to %s: %s",
                    identifier,
                    destination.destination_name,
                    e,
                )
                continue
            queued += 1
            logger.debug(
                "Queued job %s for %s -> %s", job_id, identifier, destination.destination_name
            )

        summary = DispatchSummary(
            total_destinations=len(destinations),
            queued=queued,
            failed_to_queue=failed,
        )
        logger.info(
            "Fan-out for %s: %d destination(s), %d queued, %d failed to queue",
            identifier,
            summary.total_destinations,
            summary.queued,
            summary.failed_to_queue,
        )
        return summary


def get_fanout_coordinator() -> FanoutCoordinator:
    """Return a coordinator wired to the process-wide resolver and queue."""
    return FanoutCoordinator(get_resolver(), get_delivery_queue())
