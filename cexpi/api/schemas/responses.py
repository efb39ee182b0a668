from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from cexpi.domain.enums.listing_state import Category, PaymentState, Visibility


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SuccessResponse(_CamelModel):
    success: bool = True


class ErrorResponse(_CamelModel):
    success: bool = False
    error: str
    detail: Any = None


class ListingQuoteResponse(_CamelModel):
    success: bool = True
    amount: float
    memo: str
    metadata: dict[str, Any]


class ApprovePaymentResponse(_CamelModel):
    success: bool = True
    draft_stored: bool = Field(alias="draftStored")


class CompletePaymentResponse(_CamelModel):
    success: bool = True
    listing_id: UUID = Field(alias="listingId")
    duplicate: bool = False


class ListingResponse(_CamelModel):
    id: UUID
    seller_id: str = Field(alias="sellerId")
    title: str
    description: str
    price_amount: float = Field(alias="priceAmount")
    category: Category
    make: str | None = None
    model: str | None = None
    year: int | None = None
    mileage: int | None = None
    country_code: str = Field(alias="countryCode")
    region_code: str = Field(alias="regionCode")
    contact_phone: str = Field(alias="contactPhone")
    images: list[str]
    payment_state: PaymentState = Field(alias="paymentState")
    visibility: Visibility
    created_at: datetime = Field(alias="createdAt")
    expires_at: datetime | None = Field(alias="expiresAt")


class ListingsPageResponse(_CamelModel):
    success: bool = True
    listings: list[ListingResponse]
    next_cursor: str | None = Field(default=None, alias="nextCursor")


class ReconciliationIncidentResponse(_CamelModel):
    id: UUID
    payment_id: str = Field(alias="paymentId")
    payer_id: str = Field(alias="payerId")
    receipt: str
    error: str
    created_at: datetime = Field(alias="createdAt")
    listing_draft: dict[str, Any] = Field(alias="listingDraft")


class ReconciliationIncidentsResponse(_CamelModel):
    incidents: list[ReconciliationIncidentResponse]
