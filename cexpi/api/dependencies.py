"""
FastAPI dependency injection wiring.

Each dependency function returns a fully-constructed object with its
collaborators injected.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status

from cexpi.application.interfaces.event_publisher import EventPublisher
from cexpi.application.interfaces.identity_verifier import (
    AuthenticationError,
    IdentityVerifier,
    IdentityVerifierUnavailable,
    VerifiedIdentity,
)
from cexpi.application.interfaces.listing_repository import ListingRepository
from cexpi.application.interfaces.payment_authority import PaymentAuthority
from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.application.interfaces.reconciliation_repository import ReconciliationRepository
from cexpi.application.interfaces.user_repository import UserRepository
from cexpi.application.use_cases.cancel_payment import CancelPayment
from cexpi.application.use_cases.finalize_listing_payment import FinalizeListingPayment
from cexpi.application.use_cases.query_listings import QueryListings
from cexpi.application.use_cases.quote_listing_fee import QuoteListingFee
from cexpi.application.use_cases.record_payment_approval import RecordPaymentApproval
from cexpi.application.use_cases.register_user import RegisterUser, WelcomeCredit
from cexpi.application.use_cases.remove_listing import RemoveListing
from cexpi.application.use_cases.sweep_expired_listings import SweepExpiredListings
from cexpi.config import settings
from cexpi.infrastructure.database.connection import AsyncSessionLocal
from cexpi.infrastructure.database.repositories.listing_repository import (
    SqlAlchemyListingRepository,
)
from cexpi.infrastructure.database.repositories.payment_intent_repository import (
    SqlAlchemyPaymentIntentRepository,
)
from cexpi.infrastructure.database.repositories.reconciliation_repository import (
    SqlAlchemyReconciliationRepository,
)
from cexpi.infrastructure.database.repositories.user_repository import SqlAlchemyUserRepository
from cexpi.infrastructure.external_services.pi_network_client import (
    PiIdentityVerifier,
    PiPaymentClient,
)
from cexpi.infrastructure.memory.repositories import (
    InMemoryListingRepository,
    InMemoryPaymentIntentRepository,
    InMemoryReconciliationRepository,
    InMemoryUserRepository,
)
from cexpi.infrastructure.messaging.noop_publisher import NoOpEventPublisher
from cexpi.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher


@dataclass
class MemoryStore:
    listings: InMemoryListingRepository = field(default_factory=InMemoryListingRepository)
    intents: InMemoryPaymentIntentRepository = field(default_factory=InMemoryPaymentIntentRepository)
    users: InMemoryUserRepository = field(default_factory=InMemoryUserRepository)
    incidents: InMemoryReconciliationRepository = field(
        default_factory=InMemoryReconciliationRepository
    )


@lru_cache
def get_memory_store() -> MemoryStore:
    return MemoryStore()


def _use_memory() -> bool:
    return settings.storage_backend == "memory"


# ---- Low-level dependencies ------------------------------------------------

def get_listing_repo() -> ListingRepository:
    if _use_memory():
        return get_memory_store().listings
    return SqlAlchemyListingRepository(AsyncSessionLocal)


def get_intent_repo() -> PaymentIntentRepository:
    if _use_memory():
        return get_memory_store().intents
    return SqlAlchemyPaymentIntentRepository(AsyncSessionLocal)


def get_user_repo() -> UserRepository:
    if _use_memory():
        return get_memory_store().users
    return SqlAlchemyUserRepository(AsyncSessionLocal)


def get_incident_repo() -> ReconciliationRepository:
    if _use_memory():
        return get_memory_store().incidents
    return SqlAlchemyReconciliationRepository(AsyncSessionLocal)


def get_event_publisher() -> EventPublisher:
    if settings.rabbitmq_url:
        return RabbitMQPublisher()
    return NoOpEventPublisher()


def get_payment_authority() -> PaymentAuthority:
    return PiPaymentClient()


def get_identity_verifier() -> IdentityVerifier:
    return PiIdentityVerifier()


# ---- Caller identity -------------------------------------------------------

async def get_current_user(
    authorization: str | None = Header(default=None),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> VerifiedIdentity:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No authorization header")

    token = authorization.removeprefix("Bearer ").strip()
    try:
        return await verifier.verify(token)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    except IdentityVerifierUnavailable as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


def require_admin(x_admin_key: str | None = Header(default=None)) -> None:
    if not settings.admin_api_key or x_admin_key != settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin key required.")


# ---- Use-case dependencies -------------------------------------------------

def get_register_user_use_case(
    user_repo: UserRepository = Depends(get_user_repo),
    payment_authority: PaymentAuthority = Depends(get_payment_authority),
) -> RegisterUser:
    welcome_credit = (
        WelcomeCredit(amount=settings.welcome_credit_amount, memo=settings.welcome_credit_memo)
        if settings.welcome_credit_enabled
        else None
    )
    return RegisterUser(user_repo, payment_authority, welcome_credit)


def get_quote_use_case() -> QuoteListingFee:
    return QuoteListingFee(fee=settings.listing_fee, memo=settings.listing_fee_memo)


def get_record_approval_use_case(
    payment_authority: PaymentAuthority = Depends(get_payment_authority),
    intent_repo: PaymentIntentRepository = Depends(get_intent_repo),
) -> RecordPaymentApproval:
    return RecordPaymentApproval(
        payment_authority,
        intent_repo,
        fee=settings.listing_fee,
        memo=settings.listing_fee_memo,
    )


def get_finalize_use_case(
    listing_repo: ListingRepository = Depends(get_listing_repo),
    intent_repo: PaymentIntentRepository = Depends(get_intent_repo),
    incident_repo: ReconciliationRepository = Depends(get_incident_repo),
    payment_authority: PaymentAuthority = Depends(get_payment_authority),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> FinalizeListingPayment:
    return FinalizeListingPayment(
        listing_repo,
        intent_repo,
        incident_repo,
        payment_authority,
        event_publisher,
        listing_ttl=timedelta(days=settings.listing_ttl_days),
        retry_attempts=settings.persistence_retry_attempts,
        retry_max_wait=settings.persistence_retry_max_wait_seconds,
    )


def get_cancel_payment_use_case(
    intent_repo: PaymentIntentRepository = Depends(get_intent_repo),
) -> CancelPayment:
    return CancelPayment(intent_repo)


def get_remove_listing_use_case(
    listing_repo: ListingRepository = Depends(get_listing_repo),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> RemoveListing:
    return RemoveListing(listing_repo, event_publisher)


def get_query_listings_use_case(
    listing_repo: ListingRepository = Depends(get_listing_repo),
) -> QueryListings:
    return QueryListings(listing_repo)


def build_sweep_use_case() -> SweepExpiredListings:
    """Built outside the request cycle for the background sweeper."""
    return SweepExpiredListings(
        get_listing_repo(),
        get_intent_repo(),
        get_incident_repo(),
        get_event_publisher(),
        listing_ttl=timedelta(days=settings.listing_ttl_days),
        intent_ttl=timedelta(hours=settings.payment_intent_ttl_hours),
    )
