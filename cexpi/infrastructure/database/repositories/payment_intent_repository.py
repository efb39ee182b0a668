from collections.abc import Collection
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cexpi.application.interfaces.payment_intent_repository import PaymentIntentRepository
from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.entities.payment_intent import PaymentIntent
from cexpi.domain.enums.payment_intent_state import PaymentIntentState
from cexpi.infrastructure.database.models import PaymentIntentModel
from cexpi.infrastructure.database.repositories.errors import translate_errors


def _to_domain(model: PaymentIntentModel) -> PaymentIntent:
    return PaymentIntent(
        payment_id=model.payment_id,
        payer_id=model.payer_id,
        amount=Decimal(str(model.amount)),
        memo=model.memo,
        metadata=dict(model.metadata_ or {}),
        draft=ListingDraft.from_dict(model.draft) if model.draft else None,
        state=PaymentIntentState(model.state),
        listing_id=model.listing_id,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_model(intent: PaymentIntent) -> PaymentIntentModel:
    return PaymentIntentModel(
        payment_id=intent.payment_id,
        payer_id=intent.payer_id,
        amount=intent.amount,
        memo=intent.memo,
        metadata_=intent.metadata,
        draft=intent.draft.to_dict() if intent.draft else None,
        state=intent.state.value,
        listing_id=intent.listing_id,
        created_at=intent.created_at,
        updated_at=intent.updated_at,
    )


class SqlAlchemyPaymentIntentRepository(PaymentIntentRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, intent: PaymentIntent) -> None:
        async with translate_errors("payment_intent_save"):
            async with self._session_factory() as session, session.begin():
                await session.merge(_to_model(intent))

    async def get(self, payment_id: str) -> PaymentIntent | None:
        async with translate_errors("payment_intent_get"):
            async with self._session_factory() as session:
                model = await session.get(PaymentIntentModel, payment_id)
                return _to_domain(model) if model is not None else None

    async def abandon_stale(self, updated_before: datetime, *, keep: Collection[str] = ()) -> int:
        statement = (
            update(PaymentIntentModel)
            .where(
                PaymentIntentModel.state.in_(
                    [PaymentIntentState.PENDING.value, PaymentIntentState.APPROVED.value]
                ),
                PaymentIntentModel.updated_at < updated_before,
            )
            .values(state=PaymentIntentState.ABANDONED.value, updated_at=datetime.now(timezone.utc))
            .returning(PaymentIntentModel.payment_id)
        )
        if keep:
            statement = statement.where(PaymentIntentModel.payment_id.not_in(list(keep)))
        async with translate_errors("payment_intent_gc"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(statement)
                return len(result.scalars().all())
