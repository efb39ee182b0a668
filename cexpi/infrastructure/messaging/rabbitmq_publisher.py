"""
RabbitMQ event publisher.

Uses pika in a thread-pool executor so blocking I/O doesn't stall the
asyncio event loop. A new connection is opened per publish call.
"""
import asyncio
import json
from functools import partial

import pika
import structlog

from cexpi.application.interfaces.event_publisher import EventPublisher
from cexpi.config import settings
from cexpi.domain.events.domain_events import (
    DomainEvent,
    ListingExpiredEvent,
    ListingPublishedEvent,
    ListingRemovedEvent,
    ReconciliationIncidentEvent,
)

logger = structlog.get_logger(__name__)

EXCHANGE_NAME = "marketplace.events"


def _event_to_routing_key(event: DomainEvent) -> str:
    if isinstance(event, ListingPublishedEvent):
        return "listing.published"
    if isinstance(event, ListingExpiredEvent):
        return "listing.expired"
    if isinstance(event, ListingRemovedEvent):
        return "listing.removed"
    if isinstance(event, ReconciliationIncidentEvent):
        return "payment.reconciliation_required"
    return "event.unknown"


def _serialise_event(event: DomainEvent) -> str:
    payload: dict = {  # type: ignore[type-arg]
        "event_type": _event_to_routing_key(event),
        "event_id": str(event.event_id),
        "occurred_at": event.occurred_at.isoformat(),
    }

    if isinstance(event, ListingPublishedEvent):
        payload.update(
            {
                "listing_id": str(event.listing_id),
                "seller_id": event.seller_id,
                "payment_id": event.payment_id,
                "category": event.category,
                "country_code": event.country_code,
                "expires_at": event.expires_at.isoformat(),
            }
        )
    elif isinstance(event, ListingExpiredEvent):
        payload.update({"listing_id": str(event.listing_id)})
    elif isinstance(event, ListingRemovedEvent):
        payload.update({"listing_id": str(event.listing_id), "seller_id": event.seller_id})
    elif isinstance(event, ReconciliationIncidentEvent):
        payload.update(
            {
                "incident_id": str(event.incident_id),
                "payment_id": event.payment_id,
                "payer_id": event.payer_id,
                "error": event.error,
            }
        )

    return json.dumps(payload, default=str)


def _blocking_publish(rabbitmq_url: str, routing_key: str, body: str) -> None:
    connection = pika.BlockingConnection(pika.URLParameters(rabbitmq_url))
    try:
        channel = connection.channel()
        channel.exchange_declare(
            exchange=EXCHANGE_NAME, exchange_type="topic", durable=True
        )
        channel.basic_publish(
            exchange=EXCHANGE_NAME,
            routing_key=routing_key,
            body=body.encode(),
            properties=pika.BasicProperties(
                delivery_mode=pika.DeliveryMode.Persistent,
                content_type="application/json",
            ),
        )
    finally:
        connection.close()


class RabbitMQPublisher(EventPublisher):
    """Publishes domain events to a RabbitMQ topic exchange."""

    def __init__(self, rabbitmq_url: str = settings.rabbitmq_url) -> None:
        self._url = rabbitmq_url

    async def publish(self, event: DomainEvent) -> None:
        routing_key = _event_to_routing_key(event)
        body = _serialise_event(event)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                partial(_blocking_publish, self._url, routing_key, body),
            )
            logger.debug("event_published", routing_key=routing_key, event_id=str(event.event_id))
        except Exception as exc:
            # Publishing failure must not fail a request whose state change already committed
            logger.error(
                "failed_to_publish_event",
                routing_key=routing_key,
                error=str(exc),
            )
