from fastapi import APIRouter, Depends

from cexpi.api.dependencies import (
    get_cancel_payment_use_case,
    get_current_user,
    get_finalize_use_case,
    get_quote_use_case,
    get_record_approval_use_case,
)
from cexpi.api.schemas.requests import (
    ApprovePaymentRequest,
    CompletePaymentRequest,
    ListingQuoteRequest,
)
from cexpi.api.schemas.responses import (
    ApprovePaymentResponse,
    CompletePaymentResponse,
    ListingQuoteResponse,
    SuccessResponse,
)
from cexpi.application.interfaces.identity_verifier import VerifiedIdentity
from cexpi.application.use_cases.cancel_payment import CancelPayment, CancelPaymentInput
from cexpi.application.use_cases.finalize_listing_payment import (
    FinalizeListingPayment,
    FinalizeListingPaymentInput,
)
from cexpi.application.use_cases.quote_listing_fee import QuoteListingFee, QuoteListingFeeInput
from cexpi.application.use_cases.record_payment_approval import (
    RecordPaymentApproval,
    RecordPaymentApprovalInput,
)

router = APIRouter(tags=["payments"])


@router.post("/listing-quote", response_model=ListingQuoteResponse)
async def listing_quote(
    body: ListingQuoteRequest,
    user: VerifiedIdentity = Depends(get_current_user),
    use_case: QuoteListingFee = Depends(get_quote_use_case),
) -> ListingQuoteResponse:
    """What the seller's wallet must pay to publish a listing."""
    quote = use_case.execute(QuoteListingFeeInput(seller_id=body.user_id, requester_id=user.user_id))
    return ListingQuoteResponse(amount=float(quote.amount), memo=quote.memo, metadata=quote.metadata)


@router.post("/payments/{payment_id}/approve", response_model=ApprovePaymentResponse)
async def approve_payment(
    payment_id: str,
    body: ApprovePaymentRequest | None = None,
    user: VerifiedIdentity = Depends(get_current_user),
    use_case: RecordPaymentApproval = Depends(get_record_approval_use_case),
) -> ApprovePaymentResponse:
    """Server-side approval callback from the Pi wallet."""
    draft = body.listing_draft.to_domain() if body and body.listing_draft else None
    result = await use_case.execute(
        RecordPaymentApprovalInput(payment_id=payment_id, payer_id=user.user_id, draft=draft)
    )
    return ApprovePaymentResponse(draft_stored=result.draft_stored)


@router.post("/payments/{payment_id}/complete", response_model=CompletePaymentResponse)
async def complete_payment(
    payment_id: str,
    body: CompletePaymentRequest,
    user: VerifiedIdentity = Depends(get_current_user),
    use_case: FinalizeListingPayment = Depends(get_finalize_use_case),
) -> CompletePaymentResponse:
    """Server-side completion callback; publishes the paid listing."""
    draft = body.listing_draft.to_domain() if body.listing_draft else None
    result = await use_case.execute(
        FinalizeListingPaymentInput(
            payment_id=payment_id,
            payer_id=user.user_id,
            receipt=body.receipt,
            draft=draft,
        )
    )
    return CompletePaymentResponse(listing_id=result.listing_id, duplicate=result.duplicate)


@router.post("/payments/{payment_id}/cancel", response_model=SuccessResponse)
async def cancel_payment(
    payment_id: str,
    user: VerifiedIdentity = Depends(get_current_user),
    use_case: CancelPayment = Depends(get_cancel_payment_use_case),
) -> SuccessResponse:
    await use_case.execute(CancelPaymentInput(payment_id=payment_id, requester_id=user.user_id))
    return SuccessResponse()
