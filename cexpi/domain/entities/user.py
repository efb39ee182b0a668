from dataclasses import dataclass, field
from datetime import datetime, timezone

from cexpi.domain.errors import ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class User:
    """A marketplace participant, keyed by their Pi Network uid."""

    user_id: str
    display_name: str
    country_code: str
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        errors: dict[str, str] = {}
        if not self.user_id:
            errors["user_id"] = "must not be empty"
        if not self.display_name.strip():
            errors["display_name"] = "must not be empty"
        if len(self.country_code) != 2 or not self.country_code.isalpha():
            errors["country_code"] = "must be a two-letter country code"
        if errors:
            raise ValidationError(errors)
