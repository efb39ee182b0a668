from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any


class PaymentAuthorityError(Exception):
    """Any failure reported by, or while reaching, the payment network."""

    code = "payment_authority_error"

    def __init__(self, message: str, *, payment_id: str | None = None, upstream: Any = None) -> None:
        self.payment_id = payment_id
        self.upstream = upstream
        super().__init__(message)


class PaymentAuthorityUnavailable(PaymentAuthorityError):
    """The network could not be reached or did not answer in time. Retryable."""

    code = "payment_authority_unavailable"


class PaymentNotFound(PaymentAuthorityError):
    code = "payment_not_found"


class PaymentAlreadyFinalized(PaymentAuthorityError):
    code = "payment_already_finalized"


class PaymentNotApproved(PaymentAuthorityError):
    code = "payment_not_approved"


class ReceiptMismatch(PaymentAuthorityError):
    code = "receipt_mismatch"


class PaymentAuthority(ABC):
    """
    Port for the external payment network.

    The network deduplicates by payment id, so each call is idempotent from
    the caller's perspective.
    """

    @abstractmethod
    async def create_intent(
        self,
        payer_id: str,
        amount: Decimal,
        memo: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Request a new server-initiated payment; returns its payment id."""
        ...

    @abstractmethod
    async def approve(self, payment_id: str) -> None:
        ...

    @abstractmethod
    async def complete(self, payment_id: str, receipt: str) -> None:
        ...
