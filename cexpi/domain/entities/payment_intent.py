from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.enums.payment_intent_state import PaymentIntentState
from cexpi.domain.state_machine.lifecycle_state_machine import payment_intent_state_machine

LISTING_FEE_TYPE = "listing_fee"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PaymentIntent:
    """
    Server-side record correlating a payment-network payment with the
    listing draft it pays for.

    Lives only between approval and completion; the sweep abandons intents
    that never complete.
    """

    payment_id: str
    payer_id: str
    amount: Decimal
    memo: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    draft: ListingDraft | None = None
    state: PaymentIntentState = PaymentIntentState.PENDING
    listing_id: UUID | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def transition_to(self, new_state: PaymentIntentState) -> None:
        payment_intent_state_machine.validate_transition(self.state, new_state)
        self.state = new_state
        self.updated_at = _utcnow()

    def approve(self) -> None:
        self.transition_to(PaymentIntentState.APPROVED)

    def complete(self, listing_id: UUID) -> None:
        self.transition_to(PaymentIntentState.COMPLETED)
        self.listing_id = listing_id

    def abandon(self) -> None:
        self.transition_to(PaymentIntentState.ABANDONED)

    def is_payable_by(self, user_id: str) -> bool:
        return self.payer_id == user_id
