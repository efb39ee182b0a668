from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cexpi.application.interfaces.reconciliation_repository import ReconciliationRepository
from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.entities.reconciliation_incident import ReconciliationIncident
from cexpi.infrastructure.database.models import ReconciliationIncidentModel
from cexpi.infrastructure.database.repositories.errors import translate_errors


class SqlAlchemyReconciliationRepository(ReconciliationRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, incident: ReconciliationIncident) -> None:
        async with translate_errors("reconciliation_save"):
            async with self._session_factory() as session, session.begin():
                await session.merge(
                    ReconciliationIncidentModel(
                        id=incident.id,
                        payment_id=incident.payment_id,
                        payer_id=incident.payer_id,
                        receipt=incident.receipt,
                        draft=incident.draft.to_dict(),
                        error=incident.error,
                        created_at=incident.created_at,
                        resolved_at=incident.resolved_at,
                        listing_id=incident.listing_id,
                    )
                )

    async def list_open(self, limit: int = 100) -> list[ReconciliationIncident]:
        query = (
            select(ReconciliationIncidentModel)
            .where(ReconciliationIncidentModel.resolved_at.is_(None))
            .order_by(ReconciliationIncidentModel.created_at.asc())
            .limit(limit)
        )
        async with translate_errors("reconciliation_list"):
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [
                    ReconciliationIncident(
                        id=m.id,
                        payment_id=m.payment_id,
                        payer_id=m.payer_id,
                        receipt=m.receipt,
                        draft=ListingDraft.from_dict(m.draft),
                        error=m.error,
                        created_at=m.created_at,
                        resolved_at=m.resolved_at,
                        listing_id=m.listing_id,
                    )
                    for m in result.scalars().all()
                ]
