from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID, uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ListingPublishedEvent(DomainEvent):
    """Published when a paid listing becomes publicly visible."""

    listing_id: UUID = field(default_factory=uuid4)
    seller_id: str = ""
    payment_id: str = ""
    category: str = ""
    country_code: str = ""
    expires_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ListingExpiredEvent(DomainEvent):
    """Published when the sweep retires a listing past its TTL."""

    listing_id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class ListingRemovedEvent(DomainEvent):
    """Published when a seller deletes their own listing."""

    listing_id: UUID = field(default_factory=uuid4)
    seller_id: str = ""


@dataclass(frozen=True)
class ReconciliationIncidentEvent(DomainEvent):
    """Published when a confirmed payment could not be turned into a listing."""

    incident_id: UUID = field(default_factory=uuid4)
    payment_id: str = ""
    payer_id: str = ""
    error: str = ""
