from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from cexpi.domain.entities.payment_intent import LISTING_FEE_TYPE
from cexpi.domain.errors import AuthorizationError, ValidationError


@dataclass
class QuoteListingFeeInput:
    seller_id: str
    requester_id: str


@dataclass
class QuoteListingFeeOutput:
    amount: Decimal
    memo: str
    metadata: dict[str, Any] = field(default_factory=dict)


class QuoteListingFee:
    """
    Use case: Tell a seller what to pay to publish a listing.

    Deterministic and side-effect free: the wallet creates the payment
    itself with these parameters.
    """

    def __init__(self, fee: Decimal, memo: str) -> None:
        self._fee = fee
        self._memo = memo

    def execute(self, input_data: QuoteListingFeeInput) -> QuoteListingFeeOutput:
        if not input_data.seller_id:
            raise ValidationError({"userId": "required"})
        if input_data.seller_id != input_data.requester_id:
            raise AuthorizationError("Fees may only be quoted for the caller.")

        return QuoteListingFeeOutput(
            amount=self._fee,
            memo=self._memo,
            metadata={"type": LISTING_FEE_TYPE, "piUid": input_data.seller_id},
        )
