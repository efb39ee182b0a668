from dataclasses import dataclass
from decimal import Decimal

import structlog

from cexpi.application.interfaces.payment_authority import PaymentAuthority, PaymentAuthorityError
from cexpi.application.interfaces.user_repository import UserRepository
from cexpi.domain.entities.user import User
from cexpi.domain.errors import AuthorizationError

logger = structlog.get_logger(__name__)


@dataclass
class WelcomeCredit:
    amount: Decimal
    memo: str


@dataclass
class RegisterUserInput:
    user_id: str
    display_name: str
    country_code: str
    requester_id: str


@dataclass
class RegisterUserOutput:
    user_id: str
    created: bool
    welcome_payment_id: str | None = None


class RegisterUser:
    """
    Use case: Create or update the caller's profile.

    First-time users are optionally sent a one-off welcome credit; failing to
    send it never fails the registration.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        payment_authority: PaymentAuthority,
        welcome_credit: WelcomeCredit | None = None,
    ) -> None:
        self._user_repo = user_repo
        self._payment_authority = payment_authority
        self._welcome_credit = welcome_credit

    async def execute(self, input_data: RegisterUserInput) -> RegisterUserOutput:
        user = User(
            user_id=input_data.user_id,
            display_name=input_data.display_name,
            country_code=input_data.country_code.upper(),
        )
        if user.user_id != input_data.requester_id:
            raise AuthorizationError("Users may only register themselves.")

        created = await self._user_repo.upsert(user)
        logger.info("user_registered", user_id=user.user_id, created=created)

        welcome_payment_id = None
        if created and self._welcome_credit is not None:
            try:
                welcome_payment_id = await self._payment_authority.create_intent(
                    user.user_id,
                    self._welcome_credit.amount,
                    self._welcome_credit.memo,
                    {"type": "welcome_credit", "piUid": user.user_id},
                )
                logger.info(
                    "welcome_credit_requested",
                    user_id=user.user_id,
                    payment_id=welcome_payment_id,
                )
            except PaymentAuthorityError as exc:
                logger.warning("welcome_credit_failed", user_id=user.user_id, error=str(exc))

        return RegisterUserOutput(
            user_id=user.user_id,
            created=created,
            welcome_payment_id=welcome_payment_id,
        )
