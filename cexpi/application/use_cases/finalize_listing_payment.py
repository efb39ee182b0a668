from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from cexpi.application.interfaces.event_publisher import EventPublisher
from cexpi.application.interfaces.listing_repository import (
    DuplicateListingError,
    ListingRepository,
    PersistenceError,
)
from cexpi.application.interfaces.payment_authority import (
    PaymentAlreadyFinalized,
    PaymentAuthority,
    PaymentNotFound,
)
from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.application.interfaces.reconciliation_repository import ReconciliationRepository
from cexpi.domain.entities.listing import Listing
from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.entities.payment_intent import PaymentIntent
from cexpi.domain.entities.reconciliation_incident import ReconciliationIncident
from cexpi.domain.enums.payment_intent_state import PaymentIntentState
from cexpi.domain.errors import ValidationError

logger = structlog.get_logger(__name__)


class ReconciliationRequiredError(PersistenceError):
    """The payment was confirmed but the listing could not be stored."""

    def __init__(self, payment_id: str, incident_id: UUID | None) -> None:
        self.payment_id = payment_id
        self.incident_id = incident_id
        super().__init__(
            f"Payment {payment_id} was completed but its listing could not be stored."
        )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PersistenceError) and not isinstance(exc, DuplicateListingError)


@dataclass
class FinalizeListingPaymentInput:
    payment_id: str
    payer_id: str
    receipt: str
    draft: ListingDraft | None = None


@dataclass
class FinalizeListingPaymentOutput:
    listing_id: UUID
    duplicate: bool = False


class FinalizeListingPayment:
    """
    Use case: Complete a listing-fee payment and publish the paid listing.

    Ordering: the payment network must accept ``complete`` before anything
    is written, and the payment is completed at most once per request. If
    storage then fails, only the storage step is retried; a listing that
    still cannot be stored becomes a reconciliation incident.
    """

    def __init__(
        self,
        listing_repo: ListingRepository,
        intent_repo: PaymentIntentRepository,
        incident_repo: ReconciliationRepository,
        payment_authority: PaymentAuthority,
        event_publisher: EventPublisher,
        *,
        listing_ttl: timedelta,
        retry_attempts: int = 3,
        retry_max_wait: float = 2.0,
    ) -> None:
        self._listing_repo = listing_repo
        self._intent_repo = intent_repo
        self._incident_repo = incident_repo
        self._payment_authority = payment_authority
        self._event_publisher = event_publisher
        self._listing_ttl = listing_ttl
        self._retry_attempts = retry_attempts
        self._retry_max_wait = retry_max_wait

    async def execute(self, input_data: FinalizeListingPaymentInput) -> FinalizeListingPaymentOutput:
        payment_id = input_data.payment_id
        if not payment_id:
            raise ValidationError({"paymentId": "required"})
        if not input_data.receipt:
            raise ValidationError({"receipt": "required"})

        intent = await self._intent_repo.get(payment_id)
        if intent is not None and not intent.is_payable_by(input_data.payer_id):
            raise PaymentNotFound(f"Payment {payment_id} not found.", payment_id=payment_id)

        # A listing already stored for this payment wins over any intent state
        existing = await self._listing_repo.get_by_payment_id(payment_id)
        if existing is not None:
            return self._duplicate(existing, input_data.payer_id)

        if intent is not None and intent.state is PaymentIntentState.ABANDONED:
            raise ValidationError({"paymentId": "payment was cancelled"})

        draft = intent.draft if intent is not None and intent.draft is not None else input_data.draft
        if draft is None:
            raise ValidationError({"listingDraft": "required"})

        try:
            await self._payment_authority.complete(payment_id, input_data.receipt)
        except PaymentAlreadyFinalized:
            # A previous attempt completed the payment but never stored the listing
            if intent is None or intent.state is not PaymentIntentState.APPROVED:
                raise
            logger.warning("payment_already_completed_upstream", payment_id=payment_id)

        listing = Listing.publish(
            seller_id=input_data.payer_id,
            payment_id=payment_id,
            draft=draft,
            ttl=self._listing_ttl,
        )

        try:
            await self._persist(listing)
        except DuplicateListingError:
            existing = await self._listing_repo.get_by_payment_id(payment_id)
            if existing is None:
                raise
            return self._duplicate(existing, input_data.payer_id)
        except PersistenceError as exc:
            incident_id = await self._open_incident(input_data, draft, exc)
            raise ReconciliationRequiredError(payment_id, incident_id) from exc

        if intent is not None:
            await self._mark_intent_completed(intent, listing.id)

        await self._event_publisher.publish_many(listing.collect_events())

        logger.info(
            "listing_published",
            listing_id=str(listing.id),
            payment_id=payment_id,
            seller_id=listing.seller_id,
            expires_at=listing.expires_at.isoformat() if listing.expires_at else None,
        )

        return FinalizeListingPaymentOutput(listing_id=listing.id)

    async def _persist(self, listing: Listing) -> None:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.1, max=self._retry_max_wait),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "listing_persist_retry",
                        payment_id=listing.payment_id,
                        attempt=attempt.retry_state.attempt_number,
                    )
                await self._listing_repo.add(listing)

    async def _open_incident(
        self, input_data: FinalizeListingPaymentInput, draft: ListingDraft, error: PersistenceError
    ) -> UUID | None:
        incident = ReconciliationIncident.open(
            payment_id=input_data.payment_id,
            payer_id=input_data.payer_id,
            receipt=input_data.receipt,
            draft=draft,
            error=str(error),
        )
        logger.critical(
            "reconciliation_incident",
            incident_id=str(incident.id),
            payment_id=input_data.payment_id,
            payer_id=input_data.payer_id,
            receipt=input_data.receipt,
            draft=draft.to_dict(),
            error=str(error),
        )
        try:
            await self._incident_repo.save(incident)
        except PersistenceError as exc:
            logger.critical(
                "reconciliation_incident_not_recorded",
                incident_id=str(incident.id),
                payment_id=input_data.payment_id,
                error=str(exc),
            )
            await self._event_publisher.publish_many(incident.collect_events())
            return None

        await self._event_publisher.publish_many(incident.collect_events())
        return incident.id

    async def _mark_intent_completed(self, intent: PaymentIntent, listing_id: UUID) -> None:
        intent.complete(listing_id)
        try:
            await self._intent_repo.save(intent)
        except PersistenceError as exc:
            logger.warning(
                "payment_intent_not_updated",
                payment_id=intent.payment_id,
                error=str(exc),
            )

    def _duplicate(self, existing: Listing, payer_id: str) -> FinalizeListingPaymentOutput:
        if not existing.is_owned_by(payer_id):
            raise PaymentNotFound(
                f"Payment {existing.payment_id} not found.", payment_id=existing.payment_id
            )
        logger.info(
            "duplicate_completion_ignored",
            listing_id=str(existing.id),
            payment_id=existing.payment_id,
        )
        return FinalizeListingPaymentOutput(listing_id=existing.id, duplicate=True)
