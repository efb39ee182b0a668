"""Unit tests for the expiration sweep and its background scheduler."""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from cexpi.application.interfaces.listing_repository import PersistenceError
from cexpi.application.use_cases.sweep_expired_listings import SweepExpiredListings, SweepResult
from cexpi.domain.entities.listing import Listing
from cexpi.domain.entities.listing_draft import ListingDraft
from cexpi.domain.entities.payment_intent import PaymentIntent
from cexpi.domain.entities.reconciliation_incident import ReconciliationIncident
from cexpi.domain.enums.listing_state import Category, Visibility
from cexpi.domain.enums.payment_intent_state import PaymentIntentState
from cexpi.domain.events.domain_events import ListingExpiredEvent
from cexpi.infrastructure.memory.repositories import (
    InMemoryListingRepository,
    InMemoryPaymentIntentRepository,
    InMemoryReconciliationRepository,
)
from cexpi.infrastructure.scheduling.expiration_sweeper import ExpirationSweeper

NOW = datetime(2026, 5, 1, tzinfo=timezone.utc)
LISTING_TTL = timedelta(days=30)
INTENT_TTL = timedelta(hours=24)


def _make_draft() -> ListingDraft:
    return ListingDraft(
        title="Desk lamp",
        description="Works fine.",
        price_amount=Decimal("5"),
        category=Category.HOME,
        country_code="DE",
        region_code="BE",
        contact_phone="+49301234567",
    )


def _make_listing(created_at: datetime) -> Listing:
    return Listing.publish(
        seller_id="u1",
        payment_id=f"pay-{created_at.isoformat()}",
        draft=_make_draft(),
        ttl=LISTING_TTL,
        now=created_at,
    )


def _make_publisher() -> MagicMock:
    pub = MagicMock()
    pub.publish_many = AsyncMock()
    return pub


class _Harness:
    def __init__(self) -> None:
        self.listings = InMemoryListingRepository()
        self.intents = InMemoryPaymentIntentRepository()
        self.incidents = InMemoryReconciliationRepository()
        self.publisher = _make_publisher()
        self.use_case = SweepExpiredListings(
            self.listings,
            self.intents,
            self.incidents,
            self.publisher,
            listing_ttl=LISTING_TTL,
            intent_ttl=INTENT_TTL,
        )


class TestSweepExpiredListings:
    @pytest.mark.asyncio
    async def test_expires_only_overdue_listings(self) -> None:
        h = _Harness()
        old = _make_listing(NOW - timedelta(days=31))
        fresh = _make_listing(NOW - timedelta(days=1))
        await h.listings.add(old)
        await h.listings.add(fresh)

        result = await h.use_case.execute(NOW)

        assert result.expired_listing_ids == [old.id]
        stored_old = await h.listings.get_by_id(old.id)
        stored_fresh = await h.listings.get_by_id(fresh.id)
        assert stored_old is not None and stored_old.visibility is Visibility.EXPIRED
        assert stored_fresh is not None and stored_fresh.visibility is Visibility.ACTIVE
        events = h.publisher.publish_many.call_args_list[0][0][0]
        assert len(events) == 1
        assert isinstance(events[0], ListingExpiredEvent)
        assert events[0].listing_id == old.id

    @pytest.mark.asyncio
    async def test_second_pass_changes_nothing(self) -> None:
        h = _Harness()
        await h.listings.add(_make_listing(NOW - timedelta(days=31)))

        await h.use_case.execute(NOW)
        second = await h.use_case.execute(NOW)

        assert second.expired_listing_ids == []

    @pytest.mark.asyncio
    async def test_abandons_stale_intents(self) -> None:
        h = _Harness()
        stale = PaymentIntent(
            payment_id="stale",
            payer_id="u1",
            amount=Decimal("0.5"),
            state=PaymentIntentState.APPROVED,
            updated_at=NOW - timedelta(days=2),
        )
        recent = PaymentIntent(
            payment_id="recent",
            payer_id="u1",
            amount=Decimal("0.5"),
            state=PaymentIntentState.APPROVED,
            updated_at=NOW - timedelta(hours=1),
        )
        await h.intents.save(stale)
        await h.intents.save(recent)

        result = await h.use_case.execute(NOW)

        assert result.abandoned_intents == 1
        stored = await h.intents.get("stale")
        assert stored is not None and stored.state is PaymentIntentState.ABANDONED
        kept = await h.intents.get("recent")
        assert kept is not None and kept.state is PaymentIntentState.APPROVED

    @pytest.mark.asyncio
    async def test_repairs_open_incident(self) -> None:
        h = _Harness()
        incident = ReconciliationIncident.open(
            payment_id="p-lost", payer_id="u1", receipt="tx", draft=_make_draft(), error="db down"
        )
        await h.incidents.save(incident)

        result = await h.use_case.execute(NOW)

        assert result.repaired_incidents == 1
        listing = await h.listings.get_by_payment_id("p-lost")
        assert listing is not None
        assert listing.is_visible(NOW)
        assert await h.incidents.list_open() == []

    @pytest.mark.asyncio
    async def test_incident_already_stored_is_resolved_without_duplicate(self) -> None:
        h = _Harness()
        existing = Listing.publish(
            seller_id="u1", payment_id="p-lost", draft=_make_draft(), ttl=LISTING_TTL, now=NOW
        )
        await h.listings.add(existing)
        await h.incidents.save(
            ReconciliationIncident.open(
                payment_id="p-lost", payer_id="u1", receipt="tx", draft=_make_draft(), error="timeout"
            )
        )

        result = await h.use_case.execute(NOW)

        assert result.repaired_incidents == 1
        assert await h.incidents.list_open() == []

    @pytest.mark.asyncio
    async def test_repair_completes_stale_intent_instead_of_abandoning_it(self) -> None:
        h = _Harness()
        await h.intents.save(
            PaymentIntent(
                payment_id="p-lost",
                payer_id="u1",
                amount=Decimal("0.5"),
                state=PaymentIntentState.APPROVED,
                updated_at=NOW - timedelta(days=2),
            )
        )
        await h.incidents.save(
            ReconciliationIncident.open(
                payment_id="p-lost", payer_id="u1", receipt="tx", draft=_make_draft(), error="db down"
            )
        )

        result = await h.use_case.execute(NOW)

        assert result.repaired_incidents == 1
        assert result.abandoned_intents == 0
        listing = await h.listings.get_by_payment_id("p-lost")
        intent = await h.intents.get("p-lost")
        assert listing is not None and intent is not None
        assert intent.state is PaymentIntentState.COMPLETED
        assert intent.listing_id == listing.id

    @pytest.mark.asyncio
    async def test_failed_repair_keeps_intent_open(self) -> None:
        h = _Harness()
        listings = MagicMock()
        listings.expire_due = AsyncMock(return_value=[])
        listings.add = AsyncMock(side_effect=PersistenceError("db down"))
        use_case = SweepExpiredListings(
            listings, h.intents, h.incidents, h.publisher, listing_ttl=LISTING_TTL, intent_ttl=INTENT_TTL
        )
        await h.intents.save(
            PaymentIntent(
                payment_id="p-lost",
                payer_id="u1",
                amount=Decimal("0.5"),
                state=PaymentIntentState.APPROVED,
                updated_at=NOW - timedelta(days=2),
            )
        )
        await h.incidents.save(
            ReconciliationIncident.open(
                payment_id="p-lost", payer_id="u1", receipt="tx", draft=_make_draft(), error="db down"
            )
        )

        result = await use_case.execute(NOW)

        assert result.repaired_incidents == 0
        assert result.abandoned_intents == 0
        intent = await h.intents.get("p-lost")
        assert intent is not None and intent.state is PaymentIntentState.APPROVED
        assert len(await h.incidents.list_open()) == 1

    @pytest.mark.asyncio
    async def test_incident_lookup_failure_skips_intent_gc(self) -> None:
        h = _Harness()
        incidents = MagicMock()
        incidents.list_open = AsyncMock(side_effect=PersistenceError("db down"))
        intents = MagicMock()
        intents.abandon_stale = AsyncMock(return_value=0)
        use_case = SweepExpiredListings(
            h.listings, intents, incidents, h.publisher, listing_ttl=LISTING_TTL, intent_ttl=INTENT_TTL
        )

        await use_case.execute(NOW)

        intents.abandon_stale.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expiry_storage_failure_propagates(self) -> None:
        h = _Harness()
        listings = MagicMock()
        listings.expire_due = AsyncMock(side_effect=PersistenceError("db down"))
        use_case = SweepExpiredListings(
            listings, h.intents, h.incidents, h.publisher, listing_ttl=LISTING_TTL, intent_ttl=INTENT_TTL
        )

        with pytest.raises(PersistenceError):
            await use_case.execute(NOW)

    @pytest.mark.asyncio
    async def test_intent_gc_failure_is_logged_not_raised(self) -> None:
        h = _Harness()
        intents = MagicMock()
        intents.abandon_stale = AsyncMock(side_effect=PersistenceError("db down"))
        use_case = SweepExpiredListings(
            h.listings, intents, h.incidents, h.publisher, listing_ttl=LISTING_TTL, intent_ttl=INTENT_TTL
        )

        result = await use_case.execute(NOW)

        assert result.abandoned_intents == 0


class TestExpirationSweeper:
    @pytest.mark.asyncio
    async def test_run_once_returns_result(self) -> None:
        sweep = MagicMock()
        sweep.execute = AsyncMock(return_value=SweepResult())
        sweeper = ExpirationSweeper(lambda: sweep, interval_seconds=60)

        result = await sweeper.run_once()

        assert result == SweepResult()

    @pytest.mark.asyncio
    async def test_run_once_swallows_failure(self) -> None:
        sweep = MagicMock()
        sweep.execute = AsyncMock(side_effect=PersistenceError("db down"))
        sweeper = ExpirationSweeper(lambda: sweep, interval_seconds=60)

        assert await sweeper.run_once() is None

    @pytest.mark.asyncio
    async def test_runs_periodically_until_stopped(self) -> None:
        sweep = MagicMock()
        sweep.execute = AsyncMock(return_value=SweepResult())
        sweeper = ExpirationSweeper(lambda: sweep, interval_seconds=0.01)

        sweeper.start()
        assert sweeper.is_running
        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert not sweeper.is_running
        assert sweep.execute.await_count >= 2

    @pytest.mark.asyncio
    async def test_keeps_running_after_failed_pass(self) -> None:
        sweep = MagicMock()
        sweep.execute = AsyncMock(side_effect=[PersistenceError("db down")] + [SweepResult()] * 50)
        sweeper = ExpirationSweeper(lambda: sweep, interval_seconds=0.01, run_on_startup=True)

        sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert sweep.execute.await_count >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self) -> None:
        sweeper = ExpirationSweeper(MagicMock(), interval_seconds=60)
        await sweeper.stop()
        assert not sweeper.is_running
