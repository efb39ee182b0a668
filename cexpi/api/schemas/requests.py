from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from cexpi.domain.entities.listing_draft import MAX_IMAGES, ListingDraft
from cexpi.domain.enums.listing_state import Category


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class RegisterUserRequest(_CamelModel):
    user_id: str = Field(alias="userId", min_length=1)
    display_name: str = Field(alias="displayName", min_length=1)
    country_code: str = Field(alias="countryCode", min_length=2, max_length=2)


class ListingQuoteRequest(_CamelModel):
    user_id: str = Field(alias="userId", min_length=1)


class ListingDraftSchema(_CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    price_amount: Decimal = Field(alias="priceAmount", gt=0)
    category: Category
    country_code: str = Field(alias="countryCode", pattern=r"^[A-Z]{2}$")
    region_code: str = Field(alias="regionCode", min_length=1)
    contact_phone: str = Field(alias="contactPhone", min_length=1)
    images: list[str] = Field(default_factory=list, max_length=MAX_IMAGES)
    make: str | None = None
    model: str | None = None
    year: int | None = None
    mileage: int | None = None

    def to_domain(self) -> ListingDraft:
        return ListingDraft(
            title=self.title,
            description=self.description,
            price_amount=self.price_amount,
            category=self.category,
            country_code=self.country_code,
            region_code=self.region_code,
            contact_phone=self.contact_phone,
            images=tuple(self.images),
            make=self.make,
            model=self.model,
            year=self.year,
            mileage=self.mileage,
        )


class ApprovePaymentRequest(_CamelModel):
    listing_draft: ListingDraftSchema | None = Field(default=None, alias="listingDraft")


class CompletePaymentRequest(_CamelModel):
    receipt: str = Field(validation_alias=AliasChoices("receipt", "txid"), min_length=1)
    listing_draft: ListingDraftSchema | None = Field(default=None, alias="listingDraft")


class RemoveListingRequest(_CamelModel):
    requester_id: str | None = Field(default=None, alias="requesterId")
