from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog

from cexpi.application.interfaces.event_publisher import EventPublisher
from cexpi.application.interfaces.listing_repository import (
    DuplicateListingError,
    ListingRepository,
    PersistenceError,
)
from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.application.interfaces.reconciliation_repository import ReconciliationRepository
from cexpi.domain.entities.listing import Listing
from cexpi.domain.entities.reconciliation_incident import ReconciliationIncident
from cexpi.domain.enums.payment_intent_state import PaymentIntentState
from cexpi.domain.events.domain_events import ListingExpiredEvent

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    expired_listing_ids: list[UUID] = field(default_factory=list)
    abandoned_intents: int = 0
    repaired_incidents: int = 0


class SweepExpiredListings:
    """
    Use case: One pass of the background maintenance sweep.

    Retires listings past their expiry, re-attempts storage for open
    reconciliation incidents, then abandons payment intents that never
    completed (skipping those whose incident is still open).
    Expiry is monotonic, so a second pass over the same instant changes
    nothing. Storage failures while expiring propagate to the scheduler; the
    secondary steps log and defer to the next pass.
    """

    def __init__(
        self,
        listing_repo: ListingRepository,
        intent_repo: PaymentIntentRepository,
        incident_repo: ReconciliationRepository,
        event_publisher: EventPublisher,
        *,
        listing_ttl: timedelta,
        intent_ttl: timedelta,
    ) -> None:
        self._listing_repo = listing_repo
        self._intent_repo = intent_repo
        self._incident_repo = incident_repo
        self._event_publisher = event_publisher
        self._listing_ttl = listing_ttl
        self._intent_ttl = intent_ttl

    async def execute(self, now: datetime | None = None) -> SweepResult:
        now = now or datetime.now(timezone.utc)
        result = SweepResult()

        result.expired_listing_ids = await self._listing_repo.expire_due(now)
        await self._event_publisher.publish_many(
            [ListingExpiredEvent(listing_id=listing_id) for listing_id in result.expired_listing_ids]
        )
        if result.expired_listing_ids:
            logger.info("listings_expired", count=len(result.expired_listing_ids))

        try:
            incidents = await self._incident_repo.list_open()
        except PersistenceError as exc:
            # Without the open incidents, GC could abandon a paid intent
            logger.error("reconciliation_lookup_failed", error=str(exc))
            return result

        unrepaired: set[str] = set()
        for incident in incidents:
            if await self._repair(incident, now):
                result.repaired_incidents += 1
            else:
                unrepaired.add(incident.payment_id)

        try:
            result.abandoned_intents = await self._intent_repo.abandon_stale(
                now - self._intent_ttl, keep=unrepaired
            )
            if result.abandoned_intents:
                logger.info("payment_intents_abandoned", count=result.abandoned_intents)
        except PersistenceError as exc:
            logger.error("payment_intent_gc_failed", error=str(exc))

        return result

    async def _repair(self, incident: ReconciliationIncident, now: datetime) -> bool:
        listing = Listing.publish(
            seller_id=incident.payer_id,
            payment_id=incident.payment_id,
            draft=incident.draft,
            ttl=self._listing_ttl,
            now=now,
        )
        try:
            try:
                await self._listing_repo.add(listing)
                listing_id = listing.id
            except DuplicateListingError:
                existing = await self._listing_repo.get_by_payment_id(incident.payment_id)
                if existing is None:
                    raise
                listing_id = existing.id

            incident.resolve(listing_id)
            await self._incident_repo.save(incident)
        except PersistenceError as exc:
            logger.error(
                "reconciliation_repair_failed",
                incident_id=str(incident.id),
                payment_id=incident.payment_id,
                error=str(exc),
            )
            return False

        await self._complete_intent(incident.payment_id, listing_id)
        if listing_id == listing.id:
            await self._event_publisher.publish_many(listing.collect_events())
        logger.info(
            "reconciliation_incident_resolved",
            incident_id=str(incident.id),
            payment_id=incident.payment_id,
            listing_id=str(listing_id),
        )
        return True

    async def _complete_intent(self, payment_id: str, listing_id: UUID) -> None:
        try:
            intent = await self._intent_repo.get(payment_id)
            if intent is None or intent.state is not PaymentIntentState.APPROVED:
                return
            intent.complete(listing_id)
            await self._intent_repo.save(intent)
        except PersistenceError as exc:
            logger.warning("payment_intent_not_updated", payment_id=payment_id, error=str(exc))
