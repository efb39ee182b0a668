from fastapi import APIRouter, Depends, Query

from cexpi.api.dependencies import get_incident_repo, require_admin
from cexpi.api.schemas.responses import (
    ReconciliationIncidentResponse,
    ReconciliationIncidentsResponse,
)
from cexpi.application.interfaces.reconciliation_repository import ReconciliationRepository

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/reconciliation-incidents", response_model=ReconciliationIncidentsResponse)
async def list_reconciliation_incidents(
    limit: int = Query(default=100, ge=1, le=500),
    repo: ReconciliationRepository = Depends(get_incident_repo),
) -> ReconciliationIncidentsResponse:
    """Payments that were taken without a stored listing and are not yet repaired."""
    incidents = await repo.list_open(limit=limit)
    return ReconciliationIncidentsResponse(
        incidents=[
            ReconciliationIncidentResponse(
                id=incident.id,
                payment_id=incident.payment_id,
                payer_id=incident.payer_id,
                receipt=incident.receipt,
                error=incident.error,
                created_at=incident.created_at,
                listing_draft=incident.draft.to_dict(),
            )
            for incident in incidents
        ]
    )
