from dataclasses import dataclass
from decimal import Decimal

import structlog

from cexpi.application.interfaces.listing_repository import PersistenceError
from cexpi.application.interfaces.payment_authority import PaymentAuthority
from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.entities.payment_intent import LISTING_FEE_TYPE, PaymentIntent
from cexpi.domain.errors import ValidationError

logger = structlog.get_logger(__name__)


@dataclass
class RecordPaymentApprovalInput:
    payment_id: str
    payer_id: str
    draft: ListingDraft | None = None


@dataclass
class RecordPaymentApprovalOutput:
    payment_id: str
    draft_stored: bool


class RecordPaymentApproval:
    """
    Use case: Accept a payment the seller's wallet has just initiated.

    Forwards the approval to the payment network and, once accepted, keeps
    the validated draft server-side so completion does not depend on the
    client resending it.
    """

    def __init__(
        self,
        payment_authority: PaymentAuthority,
        intent_repo: PaymentIntentRepository,
        fee: Decimal,
        memo: str,
    ) -> None:
        self._payment_authority = payment_authority
        self._intent_repo = intent_repo
        self._fee = fee
        self._memo = memo

    async def execute(self, input_data: RecordPaymentApprovalInput) -> RecordPaymentApprovalOutput:
        if not input_data.payment_id:
            raise ValidationError({"paymentId": "required"})

        # Errors from the network propagate unchanged
        await self._payment_authority.approve(input_data.payment_id)
        logger.info(
            "payment_approved",
            payment_id=input_data.payment_id,
            payer_id=input_data.payer_id,
        )

        intent = PaymentIntent(
            payment_id=input_data.payment_id,
            payer_id=input_data.payer_id,
            amount=self._fee,
            memo=self._memo,
            metadata={"type": LISTING_FEE_TYPE, "piUid": input_data.payer_id},
            draft=input_data.draft,
        )
        intent.approve()

        try:
            await self._intent_repo.save(intent)
        except PersistenceError as exc:
            # The draft can still be supplied again at completion
            logger.warning(
                "payment_intent_not_stored",
                payment_id=input_data.payment_id,
                error=str(exc),
            )
            return RecordPaymentApprovalOutput(payment_id=input_data.payment_id, draft_stored=False)

        return RecordPaymentApprovalOutput(
            payment_id=input_data.payment_id,
            draft_stored=input_data.draft is not None,
        )
