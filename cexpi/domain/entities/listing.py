from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.enums.listing_state import Category, PaymentState, Visibility
from cexpi.domain.errors import ValidationError
from cexpi.domain.events.domain_events import (
    DomainEvent,
    ListingExpiredEvent,
    ListingPublishedEvent,
    ListingRemovedEvent,
)
from cexpi.domain.state_machine.lifecycle_state_machine import visibility_state_machine


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Listing:
    """
    A classified ad owned by a seller.

    Only ever persisted once its listing fee has been paid, so every stored
    listing is ``paid``. Visibility moves forward only: inactive → active →
    expired. Emits domain events on transitions; callers collect and
    publish them.
    """

    # Identity
    id: UUID = field(default_factory=uuid4)
    seller_id: str = ""
    payment_id: str = ""

    # Content
    title: str = ""
    description: str = ""
    price_amount: Decimal = Decimal("0")
    category: Category = Category.OTHER
    country_code: str = ""
    region_code: str = ""
    contact_phone: str = ""
    images: tuple[str, ...] = field(default_factory=tuple)
    make: str | None = None
    model: str | None = None
    year: int | None = None
    mileage: int | None = None

    # State
    payment_state: PaymentState = PaymentState.UNPAID
    visibility: Visibility = Visibility.INACTIVE

    # Timestamps
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    expires_at: datetime | None = None

    _events: list[DomainEvent] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.visibility is not Visibility.INACTIVE and self.payment_state is not PaymentState.PAID:
            raise ValidationError(
                {"visibility": f"a {self.payment_state.value} listing cannot be {self.visibility.value}"}
            )
        if self.payment_state is PaymentState.PAID and self.expires_at is None:
            raise ValidationError({"expires_at": "a paid listing must carry an expiry"})

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def publish(
        cls,
        *,
        seller_id: str,
        payment_id: str,
        draft: ListingDraft,
        ttl: timedelta,
        now: datetime | None = None,
    ) -> "Listing":
        """Build a paid, active listing from a draft whose fee was just confirmed."""
        if not seller_id:
            raise ValidationError({"seller_id": "must not be empty"})
        if not payment_id:
            raise ValidationError({"payment_id": "must not be empty"})

        created_at = now or _utcnow()
        listing = cls(
            seller_id=seller_id,
            payment_id=payment_id,
            title=draft.title,
            description=draft.description,
            price_amount=draft.price_amount,
            category=draft.category,
            country_code=draft.country_code,
            region_code=draft.region_code,
            contact_phone=draft.contact_phone,
            images=draft.images,
            make=draft.make,
            model=draft.model,
            year=draft.year,
            mileage=draft.mileage,
            created_at=created_at,
            updated_at=created_at,
        )
        listing._activate(created_at + ttl)
        return listing

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    def _activate(self, expires_at: datetime) -> None:
        visibility_state_machine.validate_transition(self.visibility, Visibility.ACTIVE)
        self.payment_state = PaymentState.PAID
        self.expires_at = expires_at
        self.visibility = Visibility.ACTIVE
        self._events.append(
            ListingPublishedEvent(
                listing_id=self.id,
                seller_id=self.seller_id,
                payment_id=self.payment_id,
                category=self.category.value,
                country_code=self.country_code,
                expires_at=expires_at,
            )
        )

    def expire(self, now: datetime | None = None) -> None:
        """Retire an active listing whose TTL has elapsed."""
        now = now or _utcnow()
        visibility_state_machine.validate_transition(self.visibility, Visibility.EXPIRED)
        if self.expires_at is None or self.expires_at >= now:
            raise ValidationError({"expires_at": "listing has not reached its expiry yet"})
        self.visibility = Visibility.EXPIRED
        self.updated_at = now
        self._events.append(ListingExpiredEvent(listing_id=self.id))

    def mark_removed(self) -> None:
        """Record that the seller deleted the listing; storage does the deletion."""
        self._events.append(ListingRemovedEvent(listing_id=self.id, seller_id=self.seller_id))

    def is_owned_by(self, user_id: str) -> bool:
        return bool(user_id) and self.seller_id == user_id

    def is_visible(self, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        return (
            self.visibility is Visibility.ACTIVE
            and self.expires_at is not None
            and self.expires_at > now
        )

    # -------------------------------------------------------------------------
    # Event collection
    # -------------------------------------------------------------------------

    def collect_events(self) -> list[DomainEvent]:
        """Return pending events and clear the internal buffer."""
        events = list(self._events)
        self._events.clear()
        return events
