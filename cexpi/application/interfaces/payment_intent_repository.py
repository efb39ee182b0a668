from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import datetime

from cexpi.domain.entities.payment_intent import PaymentIntent


class PaymentIntentRepository(ABC):
    """Port for the short-lived approve → complete correlation records."""

    @abstractmethod
    async def save(self, intent: PaymentIntent) -> None:
        ...

    @abstractmethod
    async def get(self, payment_id: str) -> PaymentIntent | None:
        ...

    @abstractmethod
    async def abandon_stale(self, updated_before: datetime, *, keep: Collection[str] = ()) -> int:
        """
        Abandon pending/approved intents untouched since updated_before,
        except the payment ids in ``keep``. Returns the count.
        """
        ...
