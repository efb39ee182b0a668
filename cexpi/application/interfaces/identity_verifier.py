from abc import ABC, abstractmethod
from dataclasses import dataclass


class AuthenticationError(Exception):
    """The bearer credential is missing or was rejected."""


class IdentityVerifierUnavailable(Exception):
    """The identity provider could not be reached."""


@dataclass(frozen=True)
class VerifiedIdentity:
    user_id: str
    username: str | None = None


class IdentityVerifier(ABC):
    """Port resolving a bearer credential to the caller's stable user id."""

    @abstractmethod
    async def verify(self, token: str) -> VerifiedIdentity:
        ...
