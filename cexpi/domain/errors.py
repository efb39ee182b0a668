"""Errors raised by domain entities and use cases, independent of transport."""


class ValidationError(Exception):
    """Client input is missing or malformed. Carries per-field messages."""

    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = field_errors
        super().__init__(
            "; ".join(f"{name}: {message}" for name, message in field_errors.items())
        )


class NotFoundError(Exception):
    pass


class AuthorizationError(Exception):
    """The caller is authenticated but not allowed to act on the resource."""
