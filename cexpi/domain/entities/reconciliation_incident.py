from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4

from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.events.domain_events import DomainEvent, ReconciliationIncidentEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReconciliationIncident:
    """A confirmed payment whose listing could not be persisted."""

    payment_id: str
    payer_id: str
    receipt: str
    draft: ListingDraft
    error: str
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    resolved_at: datetime | None = None
    listing_id: UUID | None = None

    _events: list[DomainEvent] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def open(
        cls, *, payment_id: str, payer_id: str, receipt: str, draft: ListingDraft, error: str
    ) -> "ReconciliationIncident":
        incident = cls(
            payment_id=payment_id,
            payer_id=payer_id,
            receipt=receipt,
            draft=draft,
            error=error,
        )
        incident._events.append(
            ReconciliationIncidentEvent(
                incident_id=incident.id,
                payment_id=payment_id,
                payer_id=payer_id,
                error=error,
            )
        )
        return incident

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None

    def resolve(self, listing_id: UUID) -> None:
        self.listing_id = listing_id
        self.resolved_at = _utcnow()

    def collect_events(self) -> list[DomainEvent]:
        events = list(self._events)
        self._events.clear()
        return events
