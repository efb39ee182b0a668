"""Translation of application errors into JSON HTTP responses."""
from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cexpi.application.interfaces.listing_repository import PersistenceError
from cexpi.application.interfaces.payment_authority import (
    PaymentAuthorityError,
    PaymentAuthorityUnavailable,
    PaymentNotFound,
)
from cexpi.application.use_cases.finalize_listing_payment import ReconciliationRequiredError
from cexpi.domain.errors import AuthorizationError, NotFoundError, ValidationError
from cexpi.domain.state_machine.lifecycle_state_machine import InvalidStateTransitionError

logger = structlog.get_logger(__name__)


def _error(status_code: int, error: str, detail: Any = None, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "detail": detail},
        headers=headers,
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = {
        ".".join(str(part) for part in err["loc"] if part != "body"): err["msg"]
        for err in exc.errors()
    }
    return _error(status.HTTP_400_BAD_REQUEST, "validation_error", fields)


_HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: "forbidden",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
    status.HTTP_503_SERVICE_UNAVAILABLE: "service_unavailable",
}


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return _error(exc.status_code, error, exc.detail, headers=getattr(exc, "headers", None))


async def _validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, "validation_error", exc.field_errors)


async def _not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


async def _authorization_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return _error(status.HTTP_403_FORBIDDEN, "forbidden", str(exc))


async def _invalid_transition_handler(request: Request, exc: InvalidStateTransitionError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, "invalid_state_transition", str(exc))


async def _payment_authority_handler(request: Request, exc: PaymentAuthorityError) -> JSONResponse:
    detail = {"message": str(exc), "upstream": exc.upstream}
    if isinstance(exc, PaymentNotFound):
        return _error(status.HTTP_404_NOT_FOUND, exc.code, detail)
    if isinstance(exc, PaymentAuthorityUnavailable):
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc.code, detail, headers={"Retry-After": "5"})
    return _error(status.HTTP_502_BAD_GATEWAY, exc.code, detail)


async def _reconciliation_handler(request: Request, exc: ReconciliationRequiredError) -> JSONResponse:
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "reconciliation_required",
        {
            "message": "Payment received; the listing will be published once storage recovers.",
            "paymentId": exc.payment_id,
            "incidentId": str(exc.incident_id) if exc.incident_id else None,
        },
    )


async def _persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("persistence_error", path=request.url.path, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "persistence_error", "Storage is unavailable.")


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "An unexpected error occurred.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, _validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(NotFoundError, _not_found_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AuthorizationError, _authorization_handler)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidStateTransitionError, _invalid_transition_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PaymentAuthorityError, _payment_authority_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ReconciliationRequiredError, _reconciliation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PersistenceError, _persistence_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_handler)
