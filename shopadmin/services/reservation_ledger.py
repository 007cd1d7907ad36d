"""
Reservation Ledger

Transactional, time-boxed holds against variant inventory.

States:
    held -> committed | cancelled | expired   (terminal, kept for audit)

create() runs the capacity check and the insert in one database
transaction with the variant row locked (SELECT ... FOR UPDATE), so two
concurrent holds cannot both observe pre-hold stock. Any database failure
inside the transaction rolls everything back and surfaces as
TransactionAbortedError; no partial reservation is ever left behind.

Holds are counted per resolved variant row, so a hold created by label
counts against a read by variant id and vice versa.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import DBAPIError

from shopadmin.core.config import settings
from shopadmin.core.database import AsyncSessionLocal
from shopadmin.core.exceptions import (
    InsufficientStockError,
    ReservationExpiredError,
    ReservationNotFoundError,
    ReservationStateError,
    TransactionAbortedError,
    ValidationError,
)
from shopadmin.models import (
    ProductVariant,
    ReservationStatus,
    StockMovement,
    StockReservation,
    AdjustmentReason,
)
from shopadmin.models.stock_reservation import as_utc
from shopadmin.services.stock_aggregator import active_reserved_quantity, compute_stock_snapshot
from shopadmin.services.variant_keys import VariantKey

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LedgerResult:
    """Outcome of a ledger transition plus what the caller needs to invalidate."""
    reservation: StockReservation
    product_id: str
    variant_id: Optional[str]
    variant_label: Optional[str]
    available_stock: int


class ReservationLedger:
    """
    Owns every write to stock_reservations.

    Args:
        session_factory: async_sessionmaker (defaults to AsyncSessionLocal)
        clock: returns the current UTC time; injectable for expiry tests
        default_ttl_ms: hold window used when the caller passes none
        max_ttl_ms: upper bound on any requested hold window
    """

    def __init__(
        self,
        session_factory=None,
        clock: Callable[[], datetime] = utcnow,
        default_ttl_ms: Optional[int] = None,
        max_ttl_ms: Optional[int] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.clock = clock
        self.default_ttl_ms = default_ttl_ms or settings.RESERVATION_DEFAULT_TTL_MS
        self.max_ttl_ms = max_ttl_ms or settings.RESERVATION_MAX_TTL_MS

    def now(self) -> datetime:
        return as_utc(self.clock())

    def _validate_request(self, quantity: int, ttl_ms: int) -> None:
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError(f"Reservation quantity must be a positive integer, got {quantity!r}", field="quantity")
        if not isinstance(ttl_ms, int) or isinstance(ttl_ms, bool) or ttl_ms <= 0:
            raise ValidationError(f"Reservation ttl_ms must be a positive integer, got {ttl_ms!r}", field="ttl_ms")
        if ttl_ms > self.max_ttl_ms:
            raise ValidationError(
                f"Reservation ttl_ms {ttl_ms} exceeds maximum {self.max_ttl_ms}",
                field="ttl_ms",
            )

    async def create(
        self,
        product_id: str,
        key: VariantKey,
        quantity: int,
        holder_id: str,
        ttl_ms: Optional[int] = None,
    ) -> LedgerResult:
        """
        Place a hold if raw - active holds >= quantity.

        Raises:
            ValidationError: non-positive quantity or bad ttl
            NotFoundError: product/variant missing or ambiguous
            InsufficientStockError: not enough unheld stock
            TransactionAbortedError: the store rejected the transaction
        """
        ttl_ms = self.default_ttl_ms if ttl_ms is None else ttl_ms
        self._validate_request(quantity, ttl_ms)
        now = self.now()

        async with self.session_factory() as db:
            try:
                async with db.begin():
                    snapshot = await compute_stock_snapshot(
                        db, product_id, key, now=now, include_reservations=True, for_update=True
                    )
                    available = snapshot.available_stock

                    if available < quantity:
                        raise InsufficientStockError(
                            f"Insufficient stock: requested {quantity}, available {max(available, 0)}",
                            product_id=product_id,
                            requested_qty=quantity,
                            available_qty=max(available, 0),
                        )

                    reservation = StockReservation(
                        product_id=product_id,
                        product_variant_id=snapshot.variant.id,
                        variant_id=None if key.is_label else key.match_value,
                        variant_label=key.match_value if key.is_label else None,
                        quantity=quantity,
                        holder_id=holder_id,
                        status=ReservationStatus.HELD.value,
                        expires_at=StockReservation.create_expiry(ttl_ms, now=now),
                        created_at=now,
                    )
                    db.add(reservation)
                    await db.flush()

                    result = LedgerResult(
                        reservation=reservation,
                        product_id=product_id,
                        variant_id=snapshot.variant.variant_id,
                        variant_label=snapshot.variant.label,
                        available_stock=available - quantity,
                    )
            except DBAPIError as e:
                logger.warning(
                    f"[RESERVATION] Transaction aborted product_id={product_id} "
                    f"{key.match_field.value}={key.match_value!r}: {type(e).__name__}"
                )
                raise TransactionAbortedError(
                    "Reservation transaction aborted",
                    details={"product_id": product_id, "cause": type(e).__name__},
                ) from e

        logger.info(
            f"RESERVATION_METRIC: created reservation_id={reservation.id} "
            f"product_id={product_id} {key.match_field.value}={key.match_value!r} "
            f"quantity={quantity} holder_id={holder_id} available_after={result.available_stock}"
        )
        return result

    async def _load_for_update(self, db, reservation_id: int) -> StockReservation:
        reservation = await db.get(StockReservation, reservation_id, with_for_update=True)
        if reservation is None:
            raise ReservationNotFoundError(
                f"Reservation not found: {reservation_id}", reservation_id=reservation_id
            )
        return reservation

    def _require_held(self, reservation: StockReservation, action: str) -> None:
        if not reservation.is_held:
            raise ReservationStateError(
                f"Cannot {action} reservation {reservation.id} in status '{reservation.status}'",
                reservation_id=reservation.id,
                status=reservation.status,
            )

    async def commit(
        self,
        reservation_id: int,
        order_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> LedgerResult:
        """
        Convert a held reservation into a permanent inventory deduction.

        A hold whose window has already passed is marked expired (and that
        change is kept) before ReservationExpiredError is raised. The error
        details carry the variant address so callers can drop cached reads
        that still counted the hold.
        """
        now = self.now()
        lapsed = False

        async with self.session_factory() as db:
            try:
                async with db.begin():
                    reservation = await self._load_for_update(db, reservation_id)
                    self._require_held(reservation, "commit")
                    variant = await db.get(ProductVariant, reservation.product_variant_id, with_for_update=True)

                    if reservation.is_expired(now):
                        reservation.status = ReservationStatus.EXPIRED.value
                        reservation.resolved_at = now
                        lapsed = True
                    else:
                        if variant.inventory < reservation.quantity:
                            raise InsufficientStockError(
                                f"Variant inventory {variant.inventory} below held quantity {reservation.quantity}",
                                product_id=reservation.product_id,
                                requested_qty=reservation.quantity,
                                available_qty=variant.inventory,
                            )

                        previous = variant.inventory
                        variant.inventory = previous - reservation.quantity
                        db.add(StockMovement(
                            product_id=reservation.product_id,
                            product_variant_id=variant.id,
                            movement_type=AdjustmentReason.SALE.value,
                            quantity=-reservation.quantity,
                            previous_stock=previous,
                            new_stock=variant.inventory,
                            reference_type="reservation",
                            reference_id=str(reservation.id),
                            actor_id=actor_id or reservation.holder_id,
                            extra={"order_id": order_id} if order_id else None,
                        ))
                        reservation.status = ReservationStatus.COMMITTED.value
                        reservation.resolved_at = now
                        reservation.order_id = order_id

                    await db.flush()
                    held = await active_reserved_quantity(db, variant.id, now)
                    result = LedgerResult(
                        reservation=reservation,
                        product_id=reservation.product_id,
                        variant_id=variant.variant_id,
                        variant_label=variant.label,
                        available_stock=variant.inventory - held,
                    )
            except DBAPIError as e:
                raise TransactionAbortedError(
                    "Reservation commit aborted",
                    details={"reservation_id": reservation_id, "cause": type(e).__name__},
                ) from e

        if lapsed:
            logger.info(f"[RESERVATION] Commit of lapsed hold reservation_id={reservation_id}, marked expired")
            raise ReservationExpiredError(
                f"Reservation {reservation_id} expired before commit",
                reservation_id=reservation_id,
                status=ReservationStatus.EXPIRED.value,
                details={
                    "product_id": result.product_id,
                    "variant_id": result.variant_id,
                    "variant_label": result.variant_label,
                },
            )

        logger.info(
            f"RESERVATION_METRIC: committed reservation_id={reservation_id} "
            f"order_id={order_id} quantity={result.reservation.quantity}"
        )
        return result

    async def cancel(self, reservation_id: int) -> LedgerResult:
        """Release a held reservation."""
        now = self.now()

        async with self.session_factory() as db:
            try:
                async with db.begin():
                    reservation = await self._load_for_update(db, reservation_id)
                    self._require_held(reservation, "cancel")
                    reservation.status = ReservationStatus.CANCELLED.value
                    reservation.resolved_at = now
                    await db.flush()

                    variant = await db.get(ProductVariant, reservation.product_variant_id)
                    held = await active_reserved_quantity(db, variant.id, now)
                    result = LedgerResult(
                        reservation=reservation,
                        product_id=reservation.product_id,
                        variant_id=variant.variant_id,
                        variant_label=variant.label,
                        available_stock=variant.inventory - held,
                    )
            except DBAPIError as e:
                raise TransactionAbortedError(
                    "Reservation cancel aborted",
                    details={"reservation_id": reservation_id, "cause": type(e).__name__},
                ) from e

        logger.info(f"RESERVATION_METRIC: cancelled reservation_id={reservation_id}")
        return result

    async def cancel_holder(self, holder_id: str) -> List[LedgerResult]:
        """Cancel every held reservation owned by one holder (cart, session)."""
        now = self.now()
        results: List[LedgerResult] = []

        async with self.session_factory() as db:
            try:
                async with db.begin():
                    rows = await db.execute(
                        select(StockReservation, ProductVariant)
                        .join(ProductVariant, StockReservation.product_variant_id == ProductVariant.id)
                        .where(StockReservation.holder_id == holder_id)
                        .where(StockReservation.status == ReservationStatus.HELD.value)
                        .order_by(StockReservation.id)
                        .with_for_update(of=StockReservation)
                    )
                    pairs = rows.all()
                    for reservation, _ in pairs:
                        reservation.status = ReservationStatus.CANCELLED.value
                        reservation.resolved_at = now
                    await db.flush()

                    held = {}
                    for reservation, variant in pairs:
                        if variant.id not in held:
                            held[variant.id] = await active_reserved_quantity(db, variant.id, now)
                        results.append(LedgerResult(
                            reservation=reservation,
                            product_id=reservation.product_id,
                            variant_id=variant.variant_id,
                            variant_label=variant.label,
                            available_stock=variant.inventory - held[variant.id],
                        ))
            except DBAPIError as e:
                raise TransactionAbortedError(
                    "Holder reservation release aborted",
                    details={"holder_id": holder_id, "cause": type(e).__name__},
                ) from e

        if results:
            logger.info(
                f"RESERVATION_METRIC: holder_cancelled holder_id={holder_id} count={len(results)} "
                f"units={sum(r.reservation.quantity for r in results)}"
            )
        return results

    async def expire_due(self, now: Optional[datetime] = None) -> List[LedgerResult]:
        """
        Move every held reservation at or past its expiry to 'expired'.

        Rows locked by a concurrent transaction are skipped and picked up on
        the next sweep.
        """
        now = as_utc(now) or self.now()
        results: List[LedgerResult] = []

        async with self.session_factory() as db:
            async with db.begin():
                rows = await db.execute(
                    select(StockReservation, ProductVariant)
                    .join(ProductVariant, StockReservation.product_variant_id == ProductVariant.id)
                    .where(StockReservation.status == ReservationStatus.HELD.value)
                    .where(StockReservation.expires_at <= now)
                    .with_for_update(skip_locked=True, of=StockReservation)
                )
                for reservation, variant in rows.all():
                    reservation.status = ReservationStatus.EXPIRED.value
                    reservation.resolved_at = now
                    results.append(LedgerResult(
                        reservation=reservation,
                        product_id=reservation.product_id,
                        variant_id=variant.variant_id,
                        variant_label=variant.label,
                        available_stock=variant.inventory,
                    ))

        if results:
            logger.info(
                f"RESERVATION_METRIC: expired count={len(results)} "
                f"units={sum(r.reservation.quantity for r in results)}"
            )
        return results

    async def get(self, reservation_id: int) -> StockReservation:
        async with self.session_factory() as db:
            reservation = await db.get(StockReservation, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(
                f"Reservation not found: {reservation_id}", reservation_id=reservation_id
            )
        return reservation

    async def get_stats(self, now: Optional[datetime] = None, soon_minutes: int = 5) -> dict:
        """Current reservation statistics for monitoring."""
        now = as_utc(now) or self.now()
        soon = now + timedelta(minutes=soon_minutes)
        held = StockReservation.status == ReservationStatus.HELD.value

        async with self.session_factory() as db:
            stmt = select(
                func.count(StockReservation.id).filter(held),
                func.count(StockReservation.id).filter(and_(held, StockReservation.expires_at > now)),
                func.count(StockReservation.id).filter(and_(held, StockReservation.expires_at <= now)),
                func.count(StockReservation.id).filter(
                    and_(held, StockReservation.expires_at > now, StockReservation.expires_at <= soon)
                ),
                func.coalesce(
                    func.sum(StockReservation.quantity).filter(and_(held, StockReservation.expires_at > now)),
                    0,
                ),
            )
            total, active, lapsed, expiring, units = (await db.execute(stmt)).one()

        return {
            "held_reservations": int(total or 0),
            "active_reservations": int(active or 0),
            "lapsed_unswept": int(lapsed or 0),
            f"expiring_within_{soon_minutes}min": int(expiring or 0),
            "active_units": int(units or 0),
        }
