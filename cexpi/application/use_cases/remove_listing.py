from dataclasses import dataclass
from uuid import UUID

import structlog

from cexpi.application.interfaces.event_publisher import EventPublisher
from cexpi.application.interfaces.listing_repository import ListingRepository
from cexpi.domain.errors import NotFoundError

logger = structlog.get_logger(__name__)


class ListingNotFoundError(NotFoundError):
    def __init__(self, listing_id: UUID) -> None:
        self.listing_id = listing_id
        super().__init__(f"Listing {listing_id} not found.")


@dataclass
class RemoveListingInput:
    listing_id: UUID
    requester_id: str


class RemoveListing:
    """
    Use case: A seller deletes one of their own listings.

    A listing owned by someone else is reported exactly like a missing one,
    so non-owners cannot discover which ids exist.
    """

    def __init__(self, listing_repo: ListingRepository, event_publisher: EventPublisher) -> None:
        self._listing_repo = listing_repo
        self._event_publisher = event_publisher

    async def execute(self, input_data: RemoveListingInput) -> None:
        listing = await self._listing_repo.get_by_id(input_data.listing_id)
        if listing is None:
            raise ListingNotFoundError(input_data.listing_id)

        if not listing.is_owned_by(input_data.requester_id):
            logger.info(
                "listing_removal_denied",
                listing_id=str(input_data.listing_id),
                requester_id=input_data.requester_id,
            )
            raise ListingNotFoundError(input_data.listing_id)

        if not await self._listing_repo.delete(listing.id):
            raise ListingNotFoundError(input_data.listing_id)

        listing.mark_removed()
        await self._event_publisher.publish_many(listing.collect_events())

        logger.info("listing_removed", listing_id=str(listing.id), seller_id=listing.seller_id)
