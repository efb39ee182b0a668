import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from cexpi.application.interfaces.listing_repository import ListingCursor, ListingRepository
from cexpi.domain.entities.listing import Listing
from cexpi.domain.enums.listing_state import Category
from cexpi.domain.errors import ValidationError

MAX_PAGE_SIZE = 100


def encode_cursor(cursor: ListingCursor) -> str:
    raw = f"{cursor.created_at.isoformat()}|{cursor.listing_id}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(value: str) -> ListingCursor:
    try:
        created_at, listing_id = base64.urlsafe_b64decode(value.encode()).decode().split("|")
        cursor = ListingCursor(
            created_at=datetime.fromisoformat(created_at),
            listing_id=UUID(listing_id),
        )
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise ValidationError({"cursor": "malformed cursor"})
    if cursor.created_at.tzinfo is None:
        raise ValidationError({"cursor": "malformed cursor"})
    return cursor


@dataclass
class QueryListingsInput:
    country_code: str | None = None
    category: Category | None = None
    limit: int = 50
    cursor: str | None = None


@dataclass
class QueryListingsOutput:
    listings: list[Listing] = field(default_factory=list)
    next_cursor: str | None = None


class QueryListings:
    """Use case: Page through currently visible listings, newest first."""

    def __init__(self, listing_repo: ListingRepository) -> None:
        self._listing_repo = listing_repo

    async def execute(self, input_data: QueryListingsInput) -> QueryListingsOutput:
        if not 1 <= input_data.limit <= MAX_PAGE_SIZE:
            raise ValidationError({"limit": f"must be between 1 and {MAX_PAGE_SIZE}"})
        after = decode_cursor(input_data.cursor) if input_data.cursor else None

        # One extra row tells us whether another page exists
        listings = await self._listing_repo.list_visible(
            now=datetime.now(timezone.utc),
            country_code=input_data.country_code.upper() if input_data.country_code else None,
            category=input_data.category,
            limit=input_data.limit + 1,
            after=after,
        )

        next_cursor = None
        if len(listings) > input_data.limit:
            listings = listings[: input_data.limit]
            last = listings[-1]
            next_cursor = encode_cursor(ListingCursor(created_at=last.created_at, listing_id=last.id))

        return QueryListingsOutput(listings=listings, next_cursor=next_cursor)
