from dataclasses import dataclass

import structlog

from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.domain.errors import NotFoundError

logger = structlog.get_logger(__name__)


class PaymentIntentNotFoundError(NotFoundError):
    def __init__(self, payment_id: str) -> None:
        super().__init__(f"Payment {payment_id} not found.")


@dataclass
class CancelPaymentInput:
    payment_id: str
    requester_id: str


class CancelPayment:
    """Use case: The seller's wallet abandoned a payment before completion."""

    def __init__(self, intent_repo: PaymentIntentRepository) -> None:
        self._intent_repo = intent_repo

    async def execute(self, input_data: CancelPaymentInput) -> None:
        intent = await self._intent_repo.get(input_data.payment_id)
        if intent is None or not intent.is_payable_by(input_data.requester_id):
            raise PaymentIntentNotFoundError(input_data.payment_id)

        # May raise InvalidStateTransitionError for completed payments
        intent.abandon()
        await self._intent_repo.save(intent)

        logger.info("payment_abandoned", payment_id=input_data.payment_id)
