"""
Tests for the reservation ledger.

Covers capacity checks under holds, the held -> committed/cancelled/expired
lifecycle and transaction abort handling.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from shopadmin.core.exceptions import (
    InsufficientStockError,
    ReservationExpiredError,
    ReservationNotFoundError,
    ReservationStateError,
    TransactionAbortedError,
    ValidationError,
)
from shopadmin.core.feature_flags import AddressingMode
from shopadmin.models import ProductVariant, ReservationStatus, StockMovement, StockReservation
from shopadmin.services import stock_aggregator
from shopadmin.services.reservation_ledger import ReservationLedger
from shopadmin.services.variant_keys import resolve_variant_key

PRODUCT_ID = "prod-1"
SMALL = resolve_variant_key(PRODUCT_ID, variant_id="var-small")
SMALL_BY_LABEL = resolve_variant_key(PRODUCT_ID, label="Small - Blue", mode=AddressingMode.LABEL)


@pytest.fixture
def ledger(seeded_factory, clock) -> ReservationLedger:
    return ReservationLedger(
        seeded_factory,
        clock=clock,
        default_ttl_ms=30 * 60 * 1000,
        max_ttl_ms=24 * 60 * 60 * 1000,
    )


async def variant_inventory(factory, variant_id="var-small") -> int:
    async with factory() as db:
        result = await db.execute(
            select(ProductVariant.inventory).where(ProductVariant.variant_id == variant_id)
        )
        return result.scalar_one()


async def reservation_count(factory) -> int:
    async with factory() as db:
        return (await db.execute(select(func.count(StockReservation.id)))).scalar_one()


class TestCreate:
    """Capacity check and insert."""

    @pytest.mark.asyncio
    async def test_holds_reduce_capacity(self, ledger):
        first = await ledger.create(PRODUCT_ID, SMALL, 3, "cart-1")
        assert first.available_stock == 7
        assert first.reservation.status == ReservationStatus.HELD.value

        with pytest.raises(InsufficientStockError) as exc_info:
            await ledger.create(PRODUCT_ID, SMALL, 8, "cart-2")
        assert exc_info.value.available_qty == 7

    @pytest.mark.asyncio
    async def test_label_and_id_holds_share_stock(self, ledger):
        await ledger.create(PRODUCT_ID, SMALL_BY_LABEL, 6, "cart-1")

        with pytest.raises(InsufficientStockError):
            await ledger.create(PRODUCT_ID, SMALL, 5, "cart-2")

        outcome = await ledger.create(PRODUCT_ID, SMALL, 4, "cart-2")
        assert outcome.available_stock == 0

    @pytest.mark.asyncio
    async def test_records_address_used(self, ledger):
        by_label = await ledger.create(PRODUCT_ID, SMALL_BY_LABEL, 1, "cart-1")
        by_id = await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1")

        assert by_label.reservation.variant_label == "Small - Blue"
        assert by_label.reservation.variant_id is None
        assert by_id.reservation.variant_id == "var-small"
        assert by_id.reservation.variant_label is None
        assert by_label.reservation.product_variant_id == by_id.reservation.product_variant_id

    @pytest.mark.asyncio
    async def test_expired_holds_do_not_count(self, ledger, clock):
        await ledger.create(PRODUCT_ID, SMALL, 10, "cart-1", ttl_ms=1000)

        with pytest.raises(InsufficientStockError):
            await ledger.create(PRODUCT_ID, SMALL, 1, "cart-2")

        clock.advance(seconds=1)
        outcome = await ledger.create(PRODUCT_ID, SMALL, 10, "cart-2")
        assert outcome.available_stock == 0

    @pytest.mark.asyncio
    async def test_expiry_uses_ttl(self, ledger, clock):
        outcome = await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1", ttl_ms=90_000)
        assert (outcome.reservation.expires_at - clock()).total_seconds() == 90

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1])
    async def test_rejects_non_positive_quantity(self, ledger, quantity):
        with pytest.raises(ValidationError):
            await ledger.create(PRODUCT_ID, SMALL, quantity, "cart-1")

    @pytest.mark.asyncio
    async def test_rejects_ttl_over_maximum(self, ledger):
        with pytest.raises(ValidationError) as exc_info:
            await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1", ttl_ms=25 * 60 * 60 * 1000)
        assert exc_info.value.details["field"] == "ttl_ms"

    @pytest.mark.asyncio
    async def test_database_error_becomes_transaction_aborted(self, ledger, seeded_factory):
        failing = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("deadlock detected")))

        with patch("shopadmin.services.reservation_ledger.compute_stock_snapshot", failing):
            with pytest.raises(TransactionAbortedError) as exc_info:
                await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1")

        assert exc_info.value.details["cause"] == "OperationalError"
        assert await reservation_count(seeded_factory) == 0


class TestCommit:

    @pytest.mark.asyncio
    async def test_commit_deducts_inventory_and_records_movement(self, ledger, seeded_factory):
        created = await ledger.create(PRODUCT_ID, SMALL, 3, "cart-1")

        outcome = await ledger.commit(created.reservation.id, order_id="order-42")

        assert outcome.reservation.status == ReservationStatus.COMMITTED.value
        assert outcome.reservation.order_id == "order-42"
        assert outcome.available_stock == 7
        assert await variant_inventory(seeded_factory) == 7

        async with seeded_factory() as db:
            movement = (await db.execute(select(StockMovement))).scalar_one()
        assert movement.movement_type == "sale"
        assert movement.quantity == -3
        assert movement.previous_stock == 10
        assert movement.new_stock == 7
        assert movement.reference_id == str(created.reservation.id)
        assert movement.actor_id == "cart-1"

    @pytest.mark.asyncio
    async def test_committed_hold_no_longer_double_counts(self, ledger):
        created = await ledger.create(PRODUCT_ID, SMALL, 3, "cart-1")
        await ledger.commit(created.reservation.id)

        outcome = await ledger.create(PRODUCT_ID, SMALL, 7, "cart-2")
        assert outcome.available_stock == 0

    @pytest.mark.asyncio
    async def test_commit_after_expiry_marks_expired(self, ledger, clock, seeded_factory):
        created = await ledger.create(PRODUCT_ID, SMALL, 3, "cart-1", ttl_ms=1000)
        clock.advance(seconds=5)

        with pytest.raises(ReservationExpiredError):
            await ledger.commit(created.reservation.id)

        reservation = await ledger.get(created.reservation.id)
        assert reservation.status == ReservationStatus.EXPIRED.value
        assert await variant_inventory(seeded_factory) == 10

    @pytest.mark.asyncio
    async def test_lapsed_commit_error_names_the_variant(self, ledger, clock):
        created = await ledger.create(PRODUCT_ID, SMALL_BY_LABEL, 2, "cart-1", ttl_ms=1000)
        clock.advance(seconds=2)

        with pytest.raises(ReservationExpiredError) as exc_info:
            await ledger.commit(created.reservation.id)

        details = exc_info.value.details
        assert details["product_id"] == PRODUCT_ID
        assert details["variant_id"] == "var-small"
        assert details["variant_label"] == "Small - Blue"
        assert await ledger.expire_due() == []

    @pytest.mark.asyncio
    async def test_commit_twice_fails(self, ledger):
        created = await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1")
        await ledger.commit(created.reservation.id)

        with pytest.raises(ReservationStateError) as exc_info:
            await ledger.commit(created.reservation.id)
        assert exc_info.value.details["status"] == "committed"

    @pytest.mark.asyncio
    async def test_commit_unknown_reservation(self, ledger):
        with pytest.raises(ReservationNotFoundError):
            await ledger.commit(9999)


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_releases_hold(self, ledger):
        created = await ledger.create(PRODUCT_ID, SMALL, 4, "cart-1")

        outcome = await ledger.cancel(created.reservation.id)

        assert outcome.reservation.status == ReservationStatus.CANCELLED.value
        assert outcome.available_stock == 10

    @pytest.mark.asyncio
    async def test_cannot_commit_cancelled(self, ledger):
        created = await ledger.create(PRODUCT_ID, SMALL, 4, "cart-1")
        await ledger.cancel(created.reservation.id)

        with pytest.raises(ReservationStateError):
            await ledger.commit(created.reservation.id)
        with pytest.raises(ReservationStateError):
            await ledger.cancel(created.reservation.id)


class TestExpireDue:

    @pytest.mark.asyncio
    async def test_expires_only_lapsed_holds(self, ledger, clock):
        short = await ledger.create(PRODUCT_ID, SMALL, 2, "cart-1", ttl_ms=60_000)
        long = await ledger.create(PRODUCT_ID, SMALL, 3, "cart-2", ttl_ms=600_000)
        clock.advance(minutes=1)

        outcomes = await ledger.expire_due()

        assert [o.reservation.id for o in outcomes] == [short.reservation.id]
        assert outcomes[0].variant_id == "var-small"
        assert outcomes[0].variant_label == "Small - Blue"
        assert (await ledger.get(short.reservation.id)).status == "expired"
        assert (await ledger.get(long.reservation.id)).status == "held"

    @pytest.mark.asyncio
    async def test_nothing_due(self, ledger):
        await ledger.create(PRODUCT_ID, SMALL, 2, "cart-1")
        assert await ledger.expire_due() == []

    @pytest.mark.asyncio
    async def test_terminal_rows_untouched(self, ledger, clock):
        created = await ledger.create(PRODUCT_ID, SMALL, 2, "cart-1", ttl_ms=1000)
        await ledger.cancel(created.reservation.id)
        clock.advance(minutes=5)

        assert await ledger.expire_due() == []
        assert (await ledger.get(created.reservation.id)).status == "cancelled"


class TestStats:

    @pytest.mark.asyncio
    async def test_get_stats(self, ledger, clock):
        await ledger.create(PRODUCT_ID, SMALL, 2, "cart-1", ttl_ms=2 * 60 * 1000)
        await ledger.create(PRODUCT_ID, SMALL, 3, "cart-2", ttl_ms=30 * 60 * 1000)
        await ledger.create(PRODUCT_ID, SMALL, 1, "cart-3", ttl_ms=1000)
        clock.advance(seconds=1)

        stats = await ledger.get_stats()

        assert stats["held_reservations"] == 3
        assert stats["active_reservations"] == 2
        assert stats["lapsed_unswept"] == 1
        assert stats["expiring_within_5min"] == 1
        assert stats["active_units"] == 5

    @pytest.mark.asyncio
    async def test_get_unknown(self, ledger):
        with pytest.raises(ReservationNotFoundError):
            await ledger.get(12345)


class TestConcurrentCreate:
    """Capacity check and insert are one locked unit."""

    def test_create_locks_the_variant_row(self):
        stmt = stock_aggregator.build_stock_query(PRODUCT_ID, SMALL, for_update=True)
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "FOR UPDATE OF product_variants" in sql

    @pytest.mark.asyncio
    async def test_create_requests_the_lock(self, ledger):
        with patch.object(
            stock_aggregator, "build_stock_query", wraps=stock_aggregator.build_stock_query
        ) as spy:
            await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1")

        assert spy.call_args.kwargs["for_update"] is True

    @pytest.mark.asyncio
    async def test_concurrent_holds_cannot_both_pass_capacity(self, locking_factory, clock):
        ledger = ReservationLedger(locking_factory, clock=clock)

        outcomes = await asyncio.gather(
            ledger.create(PRODUCT_ID, SMALL, 6, "cart-1"),
            ledger.create(PRODUCT_ID, SMALL_BY_LABEL, 6, "cart-2"),
            return_exceptions=True,
        )

        denied = [o for o in outcomes if isinstance(o, InsufficientStockError)]
        placed = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(placed) == 1
        assert len(denied) == 1
        assert denied[0].details["available_qty"] == 4

        async with locking_factory() as db:
            snapshot = await stock_aggregator.compute_stock_snapshot(db, PRODUCT_ID, SMALL, now=clock())
        assert snapshot.reserved_stock == 6
        assert snapshot.available_stock == 4


class TestCancelHolder:

    @pytest.mark.asyncio
    async def test_cancels_only_that_holders_active_holds(self, ledger):
        await ledger.create(PRODUCT_ID, SMALL, 2, "cart-1")
        await ledger.create(PRODUCT_ID, resolve_variant_key(PRODUCT_ID, variant_id="var-medium"), 3, "cart-1")
        other = await ledger.create(PRODUCT_ID, SMALL, 1, "cart-2")
        committed = await ledger.create(PRODUCT_ID, SMALL, 1, "cart-1")
        await ledger.commit(committed.reservation.id)

        outcomes = await ledger.cancel_holder("cart-1")

        assert sorted(o.variant_id for o in outcomes) == ["var-medium", "var-small"]
        assert all(o.reservation.status == ReservationStatus.CANCELLED.value for o in outcomes)
        small = next(o for o in outcomes if o.variant_id == "var-small")
        assert small.available_stock == 8

        assert (await ledger.get(other.reservation.id)).is_held
        assert (await ledger.get(committed.reservation.id)).status == ReservationStatus.COMMITTED.value

    @pytest.mark.asyncio
    async def test_unknown_holder(self, ledger):
        assert await ledger.cancel_holder("cart-404") == []
