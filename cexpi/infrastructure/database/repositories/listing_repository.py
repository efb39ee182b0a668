from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cexpi.application.interfaces.listing_repository import (
    DuplicateListingError,
    ListingCursor,
    ListingRepository,
)
from cexpi.domain.entities.listing import Listing
from cexpi.domain.enums.listing_state import Category, PaymentState, Visibility
from cexpi.infrastructure.database.models import ListingModel
from cexpi.infrastructure.database.repositories.errors import translate_errors


def _to_domain(model: ListingModel) -> Listing:
    return Listing(
        id=model.id,
        seller_id=model.seller_id,
        payment_id=model.payment_id,
        title=model.title,
        description=model.description,
        price_amount=Decimal(str(model.price_amount)),
        category=Category(model.category),
        country_code=model.country_code,
        region_code=model.region_code,
        contact_phone=model.contact_phone,
        images=tuple(model.images or ()),
        make=model.make,
        model=model.model,
        year=model.year,
        mileage=model.mileage,
        payment_state=PaymentState(model.payment_state),
        visibility=Visibility(model.visibility),
        created_at=model.created_at,
        updated_at=model.updated_at,
        expires_at=model.expires_at,
    )


def _to_model(listing: Listing) -> ListingModel:
    return ListingModel(
        id=listing.id,
        seller_id=listing.seller_id,
        payment_id=listing.payment_id,
        title=listing.title,
        description=listing.description,
        price_amount=listing.price_amount,
        category=listing.category.value,
        country_code=listing.country_code,
        region_code=listing.region_code,
        contact_phone=listing.contact_phone,
        images=list(listing.images),
        make=listing.make,
        model=listing.model,
        year=listing.year,
        mileage=listing.mileage,
        payment_state=listing.payment_state.value,
        visibility=listing.visibility.value,
        created_at=listing.created_at,
        updated_at=listing.updated_at,
        expires_at=listing.expires_at,
    )


class SqlAlchemyListingRepository(ListingRepository):
    """
    SQLAlchemy implementation for listing persistence.

    Each call runs in its own short transaction so a failed write can be
    retried on a fresh session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, listing: Listing) -> None:
        async with translate_errors("listing_add"):
            try:
                async with self._session_factory() as session, session.begin():
                    session.add(_to_model(listing))
            except IntegrityError as exc:
                raise DuplicateListingError(listing.payment_id) from exc

    async def get_by_id(self, listing_id: UUID) -> Listing | None:
        async with translate_errors("listing_get"):
            async with self._session_factory() as session:
                model = await session.get(ListingModel, listing_id)
                return _to_domain(model) if model is not None else None

    async def get_by_payment_id(self, payment_id: str) -> Listing | None:
        async with translate_errors("listing_get_by_payment"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ListingModel).where(ListingModel.payment_id == payment_id)
                )
                model = result.scalar_one_or_none()
                return _to_domain(model) if model is not None else None

    async def list_visible(
        self,
        *,
        now: datetime,
        country_code: str | None = None,
        category: Category | None = None,
        limit: int = 50,
        after: ListingCursor | None = None,
    ) -> list[Listing]:
        query = select(ListingModel).where(
            ListingModel.visibility == Visibility.ACTIVE.value,
            ListingModel.expires_at > now,
        )
        if country_code is not None:
            query = query.where(ListingModel.country_code == country_code)
        if category is not None:
            query = query.where(ListingModel.category == category.value)
        if after is not None:
            query = query.where(
                or_(
                    ListingModel.created_at < after.created_at,
                    and_(
                        ListingModel.created_at == after.created_at,
                        ListingModel.id < after.listing_id,
                    ),
                )
            )
        query = query.order_by(ListingModel.created_at.desc(), ListingModel.id.desc()).limit(limit)

        async with translate_errors("listing_query"):
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_domain(m) for m in result.scalars().all()]

    async def expire_due(self, now: datetime) -> list[UUID]:
        statement = (
            update(ListingModel)
            .where(
                ListingModel.visibility == Visibility.ACTIVE.value,
                ListingModel.expires_at < now,
            )
            .values(visibility=Visibility.EXPIRED.value, updated_at=now)
            .returning(ListingModel.id)
        )
        async with translate_errors("listing_expire"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(statement)
                return list(result.scalars().all())

    async def delete(self, listing_id: UUID) -> bool:
        statement = delete(ListingModel).where(ListingModel.id == listing_id).returning(ListingModel.id)
        async with translate_errors("listing_delete"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(statement)
                return result.scalar_one_or_none() is not None
