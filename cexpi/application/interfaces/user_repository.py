from abc import ABC, abstractmethod

from cexpi.domain.entities.user import User


class UserRepository(ABC):
    """Port for user profiles."""

    @abstractmethod
    async def upsert(self, user: User) -> bool:
        """Create or update by user_id. Returns True if the user was created."""
        ...
