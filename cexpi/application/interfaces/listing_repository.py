from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from cexpi.domain.entities.listing import Listing
from cexpi.domain.enums.listing_state import Category


class PersistenceError(Exception):
    """Raised when the storage engine fails to complete an operation."""


class DuplicateListingError(PersistenceError):
    """A listing already exists for the payment being persisted."""

    def __init__(self, payment_id: str) -> None:
        self.payment_id = payment_id
        super().__init__(f"A listing already exists for payment {payment_id}.")


@dataclass(frozen=True)
class ListingCursor:
    """Position after the last listing of a page (newest-first ordering)."""

    created_at: datetime
    listing_id: UUID


class ListingRepository(ABC):
    """Port for persisting and querying Listing aggregates."""

    @abstractmethod
    async def add(self, listing: Listing) -> None:
        """Insert a new listing. Raises DuplicateListingError if its payment_id is taken."""
        ...

    @abstractmethod
    async def get_by_id(self, listing_id: UUID) -> Listing | None:
        ...

    @abstractmethod
    async def get_by_payment_id(self, payment_id: str) -> Listing | None:
        ...

    @abstractmethod
    async def list_visible(
        self,
        *,
        now: datetime,
        country_code: str | None = None,
        category: Category | None = None,
        limit: int = 50,
        after: ListingCursor | None = None,
    ) -> list[Listing]:
        """Active, unexpired listings, newest first, strictly after the cursor."""
        ...

    @abstractmethod
    async def expire_due(self, now: datetime) -> list[UUID]:
        """Mark every active listing with expires_at < now as expired; return their ids."""
        ...

    @abstractmethod
    async def delete(self, listing_id: UUID) -> bool:
        ...
