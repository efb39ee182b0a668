"""
In-memory implementations of the storage ports.

Used in tests and for local development (``STORAGE_BACKEND=memory``).
Entities are copied on the way in and out so callers never share state
with the store, mirroring a real database round-trip.
"""
import copy
from collections.abc import Collection
from datetime import datetime
from uuid import UUID

from cexpi.application.interfaces.listing_repository import (
    DuplicateListingError,
    ListingCursor,
    ListingRepository,
)
from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.application.interfaces.reconciliation_repository import ReconciliationRepository
from cexpi.application.interfaces.user_repository import UserRepository
from cexpi.domain.entities.listing import Listing
from cexpi.domain.entities.payment_intent import PaymentIntent
from cexpi.domain.entities.reconciliation_incident import ReconciliationIncident
from cexpi.domain.entities.user import User
from cexpi.domain.enums.listing_state import Category, Visibility
from cexpi.domain.enums.payment_intent_state import PaymentIntentState


def _detached(listing: Listing) -> Listing:
    clone = copy.copy(listing)
    clone._events = []
    return clone


class InMemoryListingRepository(ListingRepository):
    def __init__(self) -> None:
        self._listings: dict[UUID, Listing] = {}

    async def add(self, listing: Listing) -> None:
        if any(l.payment_id == listing.payment_id for l in self._listings.values()):
            raise DuplicateListingError(listing.payment_id)
        self._listings[listing.id] = _detached(listing)

    async def get_by_id(self, listing_id: UUID) -> Listing | None:
        listing = self._listings.get(listing_id)
        return _detached(listing) if listing is not None else None

    async def get_by_payment_id(self, payment_id: str) -> Listing | None:
        for listing in self._listings.values():
            if listing.payment_id == payment_id:
                return _detached(listing)
        return None

    async def list_visible(
        self,
        *,
        now: datetime,
        country_code: str | None = None,
        category: Category | None = None,
        limit: int = 50,
        after: ListingCursor | None = None,
    ) -> list[Listing]:
        matches = [
            l
            for l in self._listings.values()
            if l.is_visible(now)
            and (country_code is None or l.country_code == country_code)
            and (category is None or l.category is category)
            and (after is None or (l.created_at, l.id) < (after.created_at, after.listing_id))
        ]
        matches.sort(key=lambda l: (l.created_at, l.id), reverse=True)
        return [_detached(l) for l in matches[:limit]]

    async def expire_due(self, now: datetime) -> list[UUID]:
        expired: list[UUID] = []
        for listing in self._listings.values():
            if listing.visibility is Visibility.ACTIVE and listing.expires_at and listing.expires_at < now:
                listing.expire(now)
                listing.collect_events()
                expired.append(listing.id)
        return expired

    async def delete(self, listing_id: UUID) -> bool:
        return self._listings.pop(listing_id, None) is not None


class InMemoryPaymentIntentRepository(PaymentIntentRepository):
    def __init__(self) -> None:
        self._intents: dict[str, PaymentIntent] = {}

    async def save(self, intent: PaymentIntent) -> None:
        self._intents[intent.payment_id] = copy.copy(intent)

    async def get(self, payment_id: str) -> PaymentIntent | None:
        intent = self._intents.get(payment_id)
        return copy.copy(intent) if intent is not None else None

    async def abandon_stale(self, updated_before: datetime, *, keep: Collection[str] = ()) -> int:
        count = 0
        for intent in self._intents.values():
            if intent.payment_id in keep:
                continue
            if not intent.state.is_terminal and intent.updated_at < updated_before:
                intent.transition_to(PaymentIntentState.ABANDONED)
                count += 1
        return count


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    async def upsert(self, user: User) -> bool:
        existing = self._users.get(user.user_id)
        if existing is None:
            self._users[user.user_id] = user
            return True
        self._users[user.user_id] = User(
            user_id=user.user_id,
            display_name=user.display_name,
            country_code=user.country_code,
            created_at=existing.created_at,
        )
        return False


class InMemoryReconciliationRepository(ReconciliationRepository):
    def __init__(self) -> None:
        self._incidents: dict[UUID, ReconciliationIncident] = {}

    async def save(self, incident: ReconciliationIncident) -> None:
        clone = copy.copy(incident)
        clone._events = []
        self._incidents[incident.id] = clone

    async def list_open(self, limit: int = 100) -> list[ReconciliationIncident]:
        open_incidents = sorted(
            (i for i in self._incidents.values() if i.is_open),
            key=lambda i: i.created_at,
        )
        return [copy.copy(i) for i in open_incidents[:limit]]
