from uuid import UUID

from fastapi import APIRouter, Depends, Query

from cexpi.api.dependencies import (
    get_current_user,
    get_query_listings_use_case,
    get_remove_listing_use_case,
)
from cexpi.api.schemas.requests import RemoveListingRequest
from cexpi.api.schemas.responses import ListingResponse, ListingsPageResponse, SuccessResponse
from cexpi.application.interfaces.identity_verifier import VerifiedIdentity
from cexpi.application.use_cases.query_listings import (
    MAX_PAGE_SIZE,
    QueryListings,
    QueryListingsInput,
)
from cexpi.application.use_cases.remove_listing import (
    ListingNotFoundError,
    RemoveListing,
    RemoveListingInput,
)
from cexpi.domain.entities.listing import Listing
from cexpi.domain.enums.listing_state import Category

router = APIRouter(tags=["listings"])


def _listing_to_response(listing: Listing) -> ListingResponse:
    return ListingResponse(
        id=listing.id,
        seller_id=listing.seller_id,
        title=listing.title,
        description=listing.description,
        price_amount=float(listing.price_amount),
        category=listing.category,
        make=listing.make,
        model=listing.model,
        year=listing.year,
        mileage=listing.mileage,
        country_code=listing.country_code,
        region_code=listing.region_code,
        contact_phone=listing.contact_phone,
        images=list(listing.images),
        payment_state=listing.payment_state,
        visibility=listing.visibility,
        created_at=listing.created_at,
        expires_at=listing.expires_at,
    )


@router.get("/listings", response_model=ListingsPageResponse)
async def list_listings(
    country: str | None = Query(default=None, pattern=r"^[A-Za-z]{2}$"),
    category: Category | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(default=None),
    use_case: QueryListings = Depends(get_query_listings_use_case),
) -> ListingsPageResponse:
    """Currently visible listings, newest first."""
    page = await use_case.execute(
        QueryListingsInput(country_code=country, category=category, limit=limit, cursor=cursor)
    )
    return ListingsPageResponse(
        listings=[_listing_to_response(l) for l in page.listings],
        next_cursor=page.next_cursor,
    )


@router.post("/listings/{listing_id}/remove", response_model=SuccessResponse)
async def remove_listing(
    listing_id: UUID,
    body: RemoveListingRequest | None = None,
    user: VerifiedIdentity = Depends(get_current_user),
    use_case: RemoveListing = Depends(get_remove_listing_use_case),
) -> SuccessResponse:
    # A requesterId that differs from the verified caller is treated like a foreign listing
    if body and body.requester_id and body.requester_id != user.user_id:
        raise ListingNotFoundError(listing_id)

    await use_case.execute(RemoveListingInput(listing_id=listing_id, requester_id=user.user_id))
    return SuccessResponse()
