from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from cexpi.domain.enums.listing_state import Category
from cexpi.domain.errors import ValidationError

MAX_IMAGES = 6


@dataclass(frozen=True)
class ListingDraft:
    """
    Seller-supplied content of a listing, validated at construction.

    A draft carries no identity, payment or visibility data; those are only
    assigned once the listing fee has been paid.
    """

    title: str
    description: str
    price_amount: Decimal
    category: Category
    country_code: str
    region_code: str
    contact_phone: str
    images: tuple[str, ...] = field(default_factory=tuple)
    make: str | None = None
    model: str | None = None
    year: int | None = None
    mileage: int | None = None

    def __post_init__(self) -> None:
        errors: dict[str, str] = {}

        for name in ("title", "description", "region_code", "contact_phone"):
            if not str(getattr(self, name) or "").strip():
                errors[name] = "must not be empty"

        if len(self.title) > 200:
            errors["title"] = "must be at most 200 characters"

        if not isinstance(self.price_amount, Decimal) or self.price_amount <= 0:
            errors["price_amount"] = "must be a positive number"

        if not isinstance(self.category, Category):
            errors["category"] = f"must be one of {[c.value for c in Category]}"

        if len(self.country_code) != 2 or not self.country_code.isalpha() or not self.country_code.isupper():
            errors["country_code"] = "must be a two-letter upper-case country code"

        if len(self.images) > MAX_IMAGES:
            errors["images"] = f"at most {MAX_IMAGES} images are allowed"
        elif any(not uri.startswith(("http://", "https://")) for uri in self.images):
            errors["images"] = "every image must be an http(s) URI"

        if self.year is not None and not 1900 <= self.year <= 2100:
            errors["year"] = "must be between 1900 and 2100"
        if self.mileage is not None and self.mileage < 0:
            errors["mileage"] = "must not be negative"

        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["price_amount"] = str(self.price_amount)
        data["category"] = self.category.value
        data["images"] = list(self.images)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ListingDraft":
        try:
            price = Decimal(str(data["price_amount"]))
        except (KeyError, InvalidOperation):
            raise ValidationError({"price_amount": "must be a positive number"})
        try:
            category = Category(data.get("category"))
        except ValueError:
            raise ValidationError({"category": f"must be one of {[c.value for c in Category]}"})

        return cls(
            title=data.get("title") or "",
            description=data.get("description") or "",
            price_amount=price,
            category=category,
            country_code=data.get("country_code") or "",
            region_code=data.get("region_code") or "",
            contact_phone=data.get("contact_phone") or "",
            images=tuple(data.get("images") or ()),
            make=data.get("make"),
            model=data.get("model"),
            year=data.get("year"),
            mileage=data.get("mileage"),
        )
