"""
Integration tests for the API layer.

Storage is swapped for the in-memory repositories and the Pi Network
clients for fakes via ``app.dependency_overrides``; everything between the
HTTP boundary and the ports runs for real.
"""
import asyncio
import base64
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from cexpi.api.dependencies import (
    get_event_publisher,
    get_identity_verifier,
    get_incident_repo,
    get_intent_repo,
    get_listing_repo,
    get_payment_authority,
    get_user_repo,
)
from cexpi.api.main import app
from cexpi.application.interfaces.identity_verifier import (
    AuthenticationError,
    IdentityVerifier,
    VerifiedIdentity,
)
from cexpi.application.interfaces.listing_repository import PersistenceError
from cexpi.application.interfaces.payment_authority import PaymentAuthorityUnavailable, PaymentNotFound
from cexpi.application.use_cases.sweep_expired_listings import SweepExpiredListings
from cexpi.config import settings
from cexpi.domain.enums.payment_intent_state import PaymentIntentState
from cexpi.infrastructure.memory.repositories import (
    InMemoryListingRepository,
    InMemoryPaymentIntentRepository,
    InMemoryReconciliationRepository,
    InMemoryUserRepository,
)
from cexpi.infrastructure.messaging.noop_publisher import NoOpEventPublisher

SELLER = {"Authorization": "Bearer seller-token"}
OTHER = {"Authorization": "Bearer other-token"}

DRAFT = {
    "title": "2016 Honda Civic",
    "description": "Clean title, new tyres.",
    "priceAmount": 9500,
    "category": "vehicles",
    "countryCode": "US",
    "regionCode": "CA",
    "contactPhone": "+15551112222",
    "images": ["https://img.example.com/civic.jpg"],
    "make": "Honda",
    "model": "Civic",
    "year": 2016,
    "mileage": 80000,
}


class FakeIdentityVerifier(IdentityVerifier):
    _users = {"seller-token": "seller-1", "other-token": "other-1"}

    async def verify(self, token: str) -> VerifiedIdentity:
        if token not in self._users:
            raise AuthenticationError("Invalid Pi access token.")
        return VerifiedIdentity(user_id=self._users[token])


class _Stores:
    def __init__(self) -> None:
        self.listings = InMemoryListingRepository()
        self.intents = InMemoryPaymentIntentRepository()
        self.users = InMemoryUserRepository()
        self.incidents = InMemoryReconciliationRepository()
        self.authority = MagicMock()
        self.authority.approve = AsyncMock()
        self.authority.complete = AsyncMock()
        self.authority.create_intent = AsyncMock(return_value="welcome")


@pytest.fixture()
def stores() -> _Stores:
    return _Stores()


@pytest.fixture()
def client(stores: _Stores):
    app.dependency_overrides[get_listing_repo] = lambda: stores.listings
    app.dependency_overrides[get_intent_repo] = lambda: stores.intents
    app.dependency_overrides[get_user_repo] = lambda: stores.users
    app.dependency_overrides[get_incident_repo] = lambda: stores.incidents
    app.dependency_overrides[get_payment_authority] = lambda: stores.authority
    app.dependency_overrides[get_identity_verifier] = lambda: FakeIdentityVerifier()
    app.dependency_overrides[get_event_publisher] = lambda: NoOpEventPublisher()
    yield TestClient(app)
    app.dependency_overrides.clear()


def _publish(client: TestClient, payment_id: str = "pay-1", headers: dict | None = None) -> str:  # type: ignore[type-arg]
    headers = headers or SELLER
    approve = client.post(f"/payments/{payment_id}/approve", json={"listingDraft": DRAFT}, headers=headers)
    assert approve.status_code == 200
    complete = client.post(f"/payments/{payment_id}/complete", json={"txid": "tx-1"}, headers=headers)
    assert complete.status_code == 200
    return complete.json()["listingId"]


class TestAuthentication:
    def test_missing_token_is_401(self, client: TestClient) -> None:
        response = client.post("/listing-quote", json={"userId": "seller-1"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "unauthorized", "detail": "No authorization header"}

    def test_invalid_token_is_401(self, client: TestClient) -> None:
        response = client.post(
            "/listing-quote", json={"userId": "seller-1"}, headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["error"] == "unauthorized"

    def test_browsing_needs_no_token(self, client: TestClient) -> None:
        assert client.get("/listings").status_code == 200


class TestUsers:
    def test_register_self(self, client: TestClient, stores: _Stores) -> None:
        response = client.post(
            "/users",
            json={"userId": "seller-1", "displayName": "Ada", "countryCode": "US"},
            headers=SELLER,
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_register_someone_else_is_403(self, client: TestClient) -> None:
        response = client.post(
            "/users",
            json={"userId": "other-1", "displayName": "Eve", "countryCode": "US"},
            headers=SELLER,
        )
        assert response.status_code == 403

    def test_missing_fields_is_400(self, client: TestClient) -> None:
        response = client.post("/users", json={"userId": "seller-1"}, headers=SELLER)
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "validation_error"


class TestPaymentFlow:
    def test_quote(self, client: TestClient) -> None:
        response = client.post("/listing-quote", json={"userId": "seller-1"}, headers=SELLER)
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "amount": 0.5,
            "memo": "CexPi Listing Fee - 0.5 Pi",
            "metadata": {"type": "listing_fee", "piUid": "seller-1"},
        }

    def test_quote_for_someone_else_is_403(self, client: TestClient) -> None:
        response = client.post("/listing-quote", json={"userId": "other-1"}, headers=SELLER)

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_approve_unknown_payment_is_404(self, client: TestClient, stores: _Stores) -> None:
        stores.authority.approve = AsyncMock(side_effect=PaymentNotFound("no such payment", payment_id="unknown"))

        response = client.post("/payments/unknown/approve", json={"listingDraft": DRAFT}, headers=SELLER)

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"] == "payment_not_found"
        assert asyncio.run(stores.intents.get("unknown")) is None

    def test_resend_after_repair_and_intent_gc_returns_listing(self, client: TestClient, stores: _Stores) -> None:
        client.post("/payments/pay-9/approve", json={"listingDraft": DRAFT}, headers=SELLER)
        broken = MagicMock()
        broken.get_by_payment_id = AsyncMock(return_value=None)
        broken.add = AsyncMock(side_effect=PersistenceError("db down"))
        app.dependency_overrides[get_listing_repo] = lambda: broken
        outage = client.post("/payments/pay-9/complete", json={"txid": "tx-9"}, headers=SELLER)
        assert outage.status_code == 500
        app.dependency_overrides[get_listing_repo] = lambda: stores.listings

        sweep = SweepExpiredListings(
            stores.listings,
            stores.intents,
            stores.incidents,
            NoOpEventPublisher(),
            listing_ttl=timedelta(days=30),
            intent_ttl=timedelta(hours=24),
        )
        asyncio.run(sweep.execute(datetime.now(timezone.utc) + timedelta(hours=25)))
        resend = client.post("/payments/pay-9/complete", json={"txid": "tx-9"}, headers=SELLER)

        repaired = asyncio.run(stores.listings.get_by_payment_id("pay-9"))
        intent = asyncio.run(stores.intents.get("pay-9"))
        assert repaired is not None and intent is not None
        assert resend.status_code == 200
        assert resend.json()["listingId"] == str(repaired.id)
        assert resend.json()["duplicate"] is True
        assert intent.state is PaymentIntentState.COMPLETED
        stores.authority.complete.assert_awaited_once()

    def test_publish_then_browse_then_expire(self, client: TestClient, stores: _Stores) -> None:
        listing_id = _publish(client)

        page = client.get("/listings", params={"country": "US"}).json()
        assert [l["id"] for l in page["listings"]] == [listing_id]
        listing = page["listings"][0]
        assert listing["sellerId"] == "seller-1"
        assert listing["paymentState"] == "paid"
        assert listing["visibility"] == "active"
        assert listing["priceAmount"] == 9500.0
        assert client.get("/listings", params={"country": "GB"}).json()["listings"] == []

        sweep = SweepExpiredListings(
            stores.listings,
            stores.intents,
            stores.incidents,
            NoOpEventPublisher(),
            listing_ttl=timedelta(days=30),
            intent_ttl=timedelta(hours=24),
        )
        asyncio.run(sweep.execute(datetime.now(timezone.utc) + timedelta(days=31)))

        assert client.get("/listings", params={"country": "US"}).json()["listings"] == []

    def test_duplicate_completion_returns_same_listing(self, client: TestClient, stores: _Stores) -> None:
        listing_id = _publish(client)

        again = client.post("/payments/pay-1/complete", json={"txid": "tx-1"}, headers=SELLER)

        assert again.status_code == 200
        assert again.json()["listingId"] == listing_id
        assert again.json()["duplicate"] is True
        stores.authority.complete.assert_awaited_once()

    def test_complete_without_receipt_is_400(self, client: TestClient) -> None:
        response = client.post("/payments/pay-1/complete", json={}, headers=SELLER)
        assert response.status_code == 400

    def test_complete_without_any_draft_is_400(self, client: TestClient) -> None:
        response = client.post("/payments/pay-1/complete", json={"txid": "tx"}, headers=SELLER)
        assert response.status_code == 400
        assert "listingDraft" in response.json()["detail"]

    def test_invalid_draft_is_400(self, client: TestClient) -> None:
        response = client.post(
            "/payments/pay-1/approve",
            json={"listingDraft": {**DRAFT, "countryCode": "usa"}},
            headers=SELLER,
        )
        assert response.status_code == 400
        assert not client.get("/listings").json()["listings"]

    def test_upstream_unavailable_is_503(self, client: TestClient, stores: _Stores) -> None:
        stores.authority.complete = AsyncMock(side_effect=PaymentAuthorityUnavailable("timeout"))

        response = client.post(
            "/payments/pay-1/complete", json={"txid": "tx", "listingDraft": DRAFT}, headers=SELLER
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["error"] == "payment_authority_unavailable"
        assert client.get("/listings").json()["listings"] == []

    def test_cancelled_payment_cannot_complete(self, client: TestClient) -> None:
        client.post("/payments/pay-2/approve", json={"listingDraft": DRAFT}, headers=SELLER)

        cancel = client.post("/payments/pay-2/cancel", headers=SELLER)
        complete = client.post("/payments/pay-2/complete", json={"txid": "tx"}, headers=SELLER)

        assert cancel.status_code == 200
        assert complete.status_code == 400

    def test_storage_outage_reports_reconciliation(self, client: TestClient, stores: _Stores) -> None:
        broken = MagicMock()
        broken.get_by_payment_id = AsyncMock(return_value=None)
        broken.add = AsyncMock(side_effect=PersistenceError("db down"))
        app.dependency_overrides[get_listing_repo] = lambda: broken

        response = client.post(
            "/payments/pay-3/complete", json={"txid": "tx", "listingDraft": DRAFT}, headers=SELLER
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "reconciliation_required"
        assert body["detail"]["paymentId"] == "pay-3"
        assert body["detail"]["incidentId"] is not None


class TestListings:
    def test_owner_can_remove(self, client: TestClient) -> None:
        listing_id = _publish(client)

        response = client.post(f"/listings/{listing_id}/remove", headers=SELLER)

        assert response.status_code == 200
        assert client.get("/listings").json()["listings"] == []

    def test_non_owner_gets_404(self, client: TestClient) -> None:
        listing_id = _publish(client)

        response = client.post(f"/listings/{listing_id}/remove", headers=OTHER)

        assert response.status_code == 404
        assert len(client.get("/listings").json()["listings"]) == 1

    def test_mismatched_requester_gets_404(self, client: TestClient) -> None:
        listing_id = _publish(client)

        response = client.post(
            f"/listings/{listing_id}/remove", json={"requesterId": "other-1"}, headers=SELLER
        )

        assert response.status_code == 404

    def test_pagination_cursor(self, client: TestClient) -> None:
        for n in range(3):
            _publish(client, payment_id=f"pay-{n}")

        first = client.get("/listings", params={"limit": 2}).json()
        second = client.get("/listings", params={"limit": 2, "cursor": first["nextCursor"]}).json()

        assert len(first["listings"]) == 2
        assert len(second["listings"]) == 1
        assert second["nextCursor"] is None

    def test_cursor_without_timezone_is_400(self, client: TestClient) -> None:
        cursor = base64.urlsafe_b64encode(f"2026-01-01T00:00:00|{uuid4()}".encode()).decode()

        response = client.get("/listings", params={"cursor": cursor})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_limit_out_of_range_is_400(self, client: TestClient) -> None:
        assert client.get("/listings", params={"limit": 500}).status_code == 400

    def test_unknown_category_is_400(self, client: TestClient) -> None:
        assert client.get("/listings", params={"category": "spaceships"}).status_code == 400


class TestAdmin:
    def test_requires_admin_key(self, client: TestClient) -> None:
        response = client.get("/admin/reconciliation-incidents")

        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "forbidden", "detail": "Admin key required."}

    def test_lists_open_incidents(
        self, client: TestClient, stores: _Stores, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "admin_api_key", "admin-secret")
        broken = MagicMock()
        broken.get_by_payment_id = AsyncMock(return_value=None)
        broken.add = AsyncMock(side_effect=PersistenceError("db down"))
        app.dependency_overrides[get_listing_repo] = lambda: broken
        client.post("/payments/pay-9/complete", json={"txid": "tx-9", "listingDraft": DRAFT}, headers=SELLER)

        response = client.get(
            "/admin/reconciliation-incidents", headers={"X-Admin-Key": "admin-secret"}
        )

        assert response.status_code == 200
        incidents = response.json()["incidents"]
        assert len(incidents) == 1
        assert incidents[0]["paymentId"] == "pay-9"
        assert incidents[0]["receipt"] == "tx-9"


class TestHealth:
    def test_memory_backend_without_broker_is_healthy(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "storage_backend", "memory")
        monkeypatch.setattr(settings, "rabbitmq_url", "")

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "in-memory", "rabbitmq": "disabled"}
