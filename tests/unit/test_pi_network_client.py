"""Unit tests for the Pi Network HTTP clients, using httpx's mock transport."""
import json
from decimal import Decimal

import httpx
import pytest

from cexpi.application.interfaces.identity_verifier import (
    AuthenticationError,
    IdentityVerifierUnavailable,
)
from cexpi.application.interfaces.payment_authority import (
    PaymentAlreadyFinalized,
    PaymentAuthorityError,
    PaymentAuthorityUnavailable,
    PaymentNotFound,
)
from cexpi.infrastructure.external_services.pi_network_client import (
    PiIdentityVerifier,
    PiPaymentClient,
)

BASE_URL = "https://pi.test/v2"


def _payment_client(handler) -> PiPaymentClient:  # type: ignore[no-untyped-def]
    return PiPaymentClient(
        base_url=BASE_URL, api_key="secret", timeout=1.0, transport=httpx.MockTransport(handler)
    )


def _verifier(handler) -> PiIdentityVerifier:  # type: ignore[no-untyped-def]
    return PiIdentityVerifier(base_url=BASE_URL, timeout=1.0, transport=httpx.MockTransport(handler))


class TestPiPaymentClient:
    @pytest.mark.asyncio
    async def test_approve_sends_server_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"identifier": "p1"})

        await _payment_client(handler).approve("p1")

        assert seen[0].url.path == "/v2/payments/p1/approve"
        assert seen[0].headers["Authorization"] == "Key secret"

    @pytest.mark.asyncio
    async def test_complete_sends_txid(self) -> None:
        bodies: list[dict] = []  # type: ignore[type-arg]

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={})

        await _payment_client(handler).complete("p1", "tx-42")

        assert bodies == [{"txid": "tx-42"}]

    @pytest.mark.asyncio
    async def test_create_intent_returns_identifier(self) -> None:
        bodies: list[dict] = []  # type: ignore[type-arg]

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"identifier": "new-pay"})

        payment_id = await _payment_client(handler).create_intent(
            "u1", Decimal("0.1"), "Welcome", {"type": "welcome_credit"}
        )

        assert payment_id == "new-pay"
        assert bodies[0]["payment"]["uid"] == "u1"
        assert bodies[0]["payment"]["amount"] == 0.1

    @pytest.mark.asyncio
    async def test_404_maps_to_not_found(self) -> None:
        client = _payment_client(lambda request: httpx.Response(404, json={"error": "payment_not_found"}))
        with pytest.raises(PaymentNotFound) as exc_info:
            await client.approve("missing")
        assert exc_info.value.payment_id == "missing"
        assert exc_info.value.upstream == {"error": "payment_not_found"}

    @pytest.mark.asyncio
    async def test_already_completed_maps_to_already_finalized(self) -> None:
        client = _payment_client(
            lambda request: httpx.Response(400, json={"error": "already_completed"})
        )
        with pytest.raises(PaymentAlreadyFinalized):
            await client.complete("p1", "tx")

    @pytest.mark.asyncio
    async def test_503_maps_to_unavailable(self) -> None:
        client = _payment_client(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(PaymentAuthorityUnavailable):
            await client.approve("p1")

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(PaymentAuthorityUnavailable):
            await _payment_client(handler).approve("p1")

    @pytest.mark.asyncio
    async def test_timeout_maps_to_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(PaymentAuthorityUnavailable):
            await _payment_client(handler).complete("p1", "tx")

    @pytest.mark.asyncio
    async def test_unclassified_error_keeps_base_type(self) -> None:
        client = _payment_client(lambda request: httpx.Response(400, json={"error": "weird"}))
        with pytest.raises(PaymentAuthorityError) as exc_info:
            await client.approve("p1")
        assert type(exc_info.value) is PaymentAuthorityError


class TestPiIdentityVerifier:
    @pytest.mark.asyncio
    async def test_resolves_uid(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer tok"
            return httpx.Response(200, json={"uid": "u1", "username": "ada"})

        identity = await _verifier(handler).verify("tok")

        assert identity.user_id == "u1"
        assert identity.username == "ada"

    @pytest.mark.asyncio
    async def test_rejected_token(self) -> None:
        verifier = _verifier(lambda request: httpx.Response(401, json={"error": "invalid"}))
        with pytest.raises(AuthenticationError):
            await verifier.verify("bad")

    @pytest.mark.asyncio
    async def test_empty_token(self) -> None:
        verifier = _verifier(lambda request: httpx.Response(200, json={"uid": "u1"}))
        with pytest.raises(AuthenticationError):
            await verifier.verify("")

    @pytest.mark.asyncio
    async def test_provider_down(self) -> None:
        verifier = _verifier(lambda request: httpx.Response(502))
        with pytest.raises(IdentityVerifierUnavailable):
            await verifier.verify("tok")
