from enum import Enum


class PaymentIntentState(str, Enum):
    """Server-side progress of a listing-fee payment between approve and complete."""

    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        """Terminal states cannot be transitioned out of."""
        return self in (PaymentIntentState.COMPLETED, PaymentIntentState.ABANDONED)
