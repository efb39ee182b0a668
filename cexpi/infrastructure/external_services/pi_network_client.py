"""HTTP clients for the Pi Network platform API (payments and user identity)."""
from decimal import Decimal
from typing import Any

import httpx
import structlog

from cexpi.application.interfaces.identity_verifier import (
    AuthenticationError,
    IdentityVerifier,
    IdentityVerifierUnavailable,
    VerifiedIdentity,
)
from cexpi.application.interfaces.payment_authority import (
    PaymentAlreadyFinalized,
    PaymentAuthority,
    PaymentAuthorityError,
    PaymentAuthorityUnavailable,
    PaymentNotApproved,
    PaymentNotFound,
    ReceiptMismatch,
)
from cexpi.config import settings

logger = structlog.get_logger(__name__)

_UNAVAILABLE_STATUSES = {502, 503, 504}


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_code(payload: Any) -> str:
    if isinstance(payload, dict):
        return " ".join(
            str(payload.get(key) or "") for key in ("error", "error_message", "message")
        ).lower()
    return str(payload).lower()


def _classify(exc: httpx.HTTPStatusError, payment_id: str | None) -> PaymentAuthorityError:
    status_code = exc.response.status_code
    payload = _error_payload(exc.response)
    code = _error_code(payload)
    message = f"Pi Network returned {status_code}: {payload}"

    if status_code == 404 or "not_found" in code or "not found" in code:
        return PaymentNotFound(message, payment_id=payment_id, upstream=payload)
    if "already" in code:
        return PaymentAlreadyFinalized(message, payment_id=payment_id, upstream=payload)
    if "not_approved" in code or "not approved" in code:
        return PaymentNotApproved(message, payment_id=payment_id, upstream=payload)
    if "txid" in code or "mismatch" in code or "transaction" in code:
        return ReceiptMismatch(message, payment_id=payment_id, upstream=payload)
    if status_code in _UNAVAILABLE_STATUSES:
        return PaymentAuthorityUnavailable(message, payment_id=payment_id, upstream=payload)
    return PaymentAuthorityError(message, payment_id=payment_id, upstream=payload)


class PiPaymentClient(PaymentAuthority):
    """
    Thin HTTP wrapper around the Pi Network payments API.

    Authenticates with the server-side API key; never with a user's token.
    """

    def __init__(
        self,
        base_url: str = settings.pi_api_base_url,
        api_key: str = settings.pi_api_key,
        timeout: float = settings.payment_authority_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Authorization": f"Key {api_key}",
            "Content-Type": "application/json",
        }

    async def _post(
        self,
        path: str,
        *,
        payment_id: str | None = None,
        json: dict | None = None,  # type: ignore[type-arg]
    ) -> dict:  # type: ignore[type-arg]
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self._base_url}{path}",
                    json=json or {},
                    headers=self._headers,
                )
                response.raise_for_status()
                return response.json() if response.content else {}
            except httpx.HTTPStatusError as exc:
                error = _classify(exc, payment_id)
                logger.error(
                    "pi_payment_request_failed",
                    path=path,
                    payment_id=payment_id,
                    status_code=exc.response.status_code,
                    error_type=type(error).__name__,
                    response=exc.response.text,
                )
                raise error from exc
            except httpx.RequestError as exc:
                logger.error("pi_payment_connection_failed", path=path, payment_id=payment_id, error=str(exc))
                raise PaymentAuthorityUnavailable(
                    f"Failed to reach Pi Network: {exc}", payment_id=payment_id
                ) from exc

    async def create_intent(
        self,
        payer_id: str,
        amount: Decimal,
        memo: str,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        POST /payments → {"identifier": "...", ...}
        """
        data = await self._post(
            "/payments",
            json={
                "payment": {
                    "amount": float(amount),
                    "memo": memo,
                    "metadata": metadata or {},
                    "uid": payer_id,
                }
            },
        )
        payment_id = data.get("identifier")
        if not payment_id:
            raise PaymentAuthorityError("Pi Network did not return a payment identifier.", upstream=data)
        logger.info("pi_payment_created", payment_id=payment_id, uid=payer_id, amount=str(amount))
        return str(payment_id)

    async def approve(self, payment_id: str) -> None:
        """
        POST /payments/{payment_id}/approve
        """
        await self._post(f"/payments/{payment_id}/approve", payment_id=payment_id)
        logger.info("pi_payment_approved", payment_id=payment_id)

    async def complete(self, payment_id: str, receipt: str) -> None:
        """
        POST /payments/{payment_id}/complete {"txid": "..."}
        """
        await self._post(
            f"/payments/{payment_id}/complete",
            payment_id=payment_id,
            json={"txid": receipt},
        )
        logger.info("pi_payment_completed", payment_id=payment_id, txid=receipt)


class PiIdentityVerifier(IdentityVerifier):
    """Resolves a Pi access token to its user via GET /me."""

    def __init__(
        self,
        base_url: str = settings.pi_api_base_url,
        timeout: float = settings.payment_authority_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def verify(self, token: str) -> VerifiedIdentity:
        if not token:
            raise AuthenticationError("No access token provided.")

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(
                    f"{self._base_url}/me",
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code in _UNAVAILABLE_STATUSES:
                    raise IdentityVerifierUnavailable(
                        f"Pi Network returned {exc.response.status_code}"
                    ) from exc
                logger.info("pi_token_rejected", status_code=exc.response.status_code)
                raise AuthenticationError("Invalid Pi access token.") from exc
            except httpx.RequestError as exc:
                logger.error("pi_identity_connection_failed", error=str(exc))
                raise IdentityVerifierUnavailable(f"Failed to reach Pi Network: {exc}") from exc

        data = response.json()
        uid = data.get("uid")
        if not uid:
            raise AuthenticationError("Pi Network returned no user id for this token.")
        return VerifiedIdentity(user_id=str(uid), username=data.get("username"))
