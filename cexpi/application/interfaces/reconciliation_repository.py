from abc import ABC, abstractmethod

from cexpi.domain.entities.reconciliation_incident import ReconciliationIncident


class ReconciliationRepository(ABC):
    """Port for incidents where money was taken but no listing was stored."""

    @abstractmethod
    async def save(self, incident: ReconciliationIncident) -> None:
        ...

    @abstractmethod
    async def list_open(self, limit: int = 100) -> list[ReconciliationIncident]:
        ...
