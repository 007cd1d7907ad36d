"""
Inventory Service

Public entry point for the inventory subsystem. Catalog, order and admin
layers call only these operations:

- check_availability()          direct computation, never mutates
- get_product_inventory_info()  cache-aside read, fails open on cache errors
- reserve_inventory()           transactional hold, one retry on abort

plus reservation commit/cancel (singly or per holder), expiry sweeping,
manual adjustments, stock alerts and the movement history.

Every operation resolves its VariantKey once, from the addressing mode read
at the start of the call. Every mutation invalidates the full cache key set
of the affected variant (variant-id shape and label shape), because the next
reader may be running in the other addressing mode.
"""
import logging
import math
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import and_, func, literal, select
from sqlalchemy.exc import DBAPIError

from shopadmin.core.cache import InventoryCache
from shopadmin.core.config import settings
from shopadmin.core.database import AsyncSessionLocal
from shopadmin.core.exceptions import (
    CacheUnavailableError,
    InsufficientStockError,
    InventoryError,
    ProductNotFoundError,
    ReservationExpiredError,
    ReservationsDisabledError,
    TransactionAbortedError,
    ValidationError,
)
from shopadmin.core.feature_flags import FeatureFlagGate, variant_label_flag
from shopadmin.models import (
    AdjustmentReason,
    Product,
    ProductVariant,
    ReservationStatus,
    StockMovement,
    StockReservation,
)
from shopadmin.models.stock_reservation import as_utc
from shopadmin.schemas.inventory import (
    BulkAdjustmentItem,
    HolderReleaseResult,
    InventoryAdjustmentResult,
    InventoryHistory,
    InventoryMetrics,
    ProductInventoryInfo,
    ReservationResult,
    ReservationStatusResponse,
    StockAlert,
    StockMovementEntry,
    calculate_stock_status,
    validate_adjustment_value,
)
from shopadmin.services.reservation_ledger import LedgerResult, ReservationLedger, utcnow
from shopadmin.services.stock_aggregator import StockSnapshot, compute_stock_snapshot, find_variant
from shopadmin.services.variant_keys import (
    VariantKey,
    inventory_cache_key,
    resolve_variant_key,
    variant_cache_keys,
)

logger = logging.getLogger(__name__)

# Reservation transaction aborts are retried at most this many times
MAX_RESERVATION_RETRIES = 1


class InventoryService:
    """
    Orchestrates flag gate, key resolver, cache, aggregator and ledger.

    Args:
        session_factory: async_sessionmaker (defaults to AsyncSessionLocal)
        cache: InventoryCache; None disables caching entirely
        flag_gate: FeatureFlagGate (defaults to the process-wide gate)
        ledger: ReservationLedger; built from session_factory when omitted
        reservations_enabled: ledger mode; defaults to settings
        clock: current UTC time, shared with the ledger
    """

    def __init__(
        self,
        session_factory=None,
        cache: Optional[InventoryCache] = None,
        flag_gate: Optional[FeatureFlagGate] = None,
        ledger: Optional[ReservationLedger] = None,
        reservations_enabled: Optional[bool] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.cache = cache
        self.flags = flag_gate or variant_label_flag
        self.clock = clock

        if reservations_enabled is None:
            reservations_enabled = settings.INVENTORY_RESERVATIONS_ENABLED
        if reservations_enabled:
            self.ledger = ledger or ReservationLedger(self.session_factory, clock=clock)
        else:
            self.ledger = None

    @property
    def reservations_enabled(self) -> bool:
        return self.ledger is not None

    def _now(self) -> datetime:
        return as_utc(self.clock())

    def _resolve(self, product_id: str, variant_id: Optional[str], label: Optional[str]) -> VariantKey:
        mode = self.flags.addressing_mode()
        return resolve_variant_key(product_id, variant_id=variant_id, label=label, mode=mode)

    def _require_ledger(self) -> ReservationLedger:
        if self.ledger is None:
            raise ReservationsDisabledError("Inventory reservations are disabled in this deployment")
        return self.ledger

    # ----- Cache helpers (fail open) -----

    async def _cache_get(self, key: str) -> Optional[Dict[str, Any]]:
        if self.cache is None:
            return None
        try:
            return await self.cache.get_json(key)
        except CacheUnavailableError as e:
            logger.warning(f"[INVENTORY_CACHE] Read failed, computing directly: {e.message}")
            return None

    async def _cache_set(self, key: str, payload: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set_json(key, payload, ttl_seconds=ttl_seconds)
        except CacheUnavailableError as e:
            logger.warning(f"[INVENTORY_CACHE] Write failed for {key}: {e.message}")

    async def invalidate_variant_cache(
        self,
        product_id: str,
        variant_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> List[str]:
        """Delete both key shapes for a variant. Returns the keys targeted."""
        keys = variant_cache_keys(product_id, variant_id, label)
        if self.cache is None or not keys:
            return keys
        try:
            await self.cache.delete_many(keys)
        except CacheUnavailableError as e:
            logger.warning(f"[INVENTORY_CACHE] Invalidation failed for {keys}: {e.message}")
        return keys

    async def _invalidate_outcome(self, outcome: LedgerResult) -> None:
        await self.invalidate_variant_cache(outcome.product_id, outcome.variant_id, outcome.variant_label)

    async def _invalidate_outcomes(self, outcomes: Iterable[LedgerResult]) -> int:
        """Invalidate each distinct variant once. Returns the variant count."""
        seen = set()
        for outcome in outcomes:
            variant = (outcome.product_id, outcome.variant_id, outcome.variant_label)
            if variant not in seen:
                seen.add(variant)
                await self._invalidate_outcome(outcome)
        return len(seen)

    def _cache_ttl(self, snapshot: StockSnapshot) -> Optional[int]:
        """
        Entry lifetime for a computed read.

        Never outlives the earliest counted hold, so a lapsed hold stops
        counting in cached reads even when no sweep or commit invalidates it.
        """
        if self.cache is None or snapshot.next_hold_expiry is None:
            return None
        remaining = (snapshot.next_hold_expiry - self._now()).total_seconds()
        return max(1, min(self.cache.default_ttl, math.ceil(remaining)))

    # ----- Reads -----

    async def _compute_snapshot(self, product_id: str, key: VariantKey) -> StockSnapshot:
        async with self.session_factory() as db:
            return await compute_stock_snapshot(
                db,
                product_id,
                key,
                now=self._now(),
                include_reservations=self.reservations_enabled,
            )

    async def _compute_info(
        self, product_id: str, key: VariantKey
    ) -> Tuple[ProductInventoryInfo, Optional[int]]:
        """Fresh inventory read plus the cache lifetime it may be stored with."""
        snapshot = await self._compute_snapshot(product_id, key)
        product = snapshot.product
        available = snapshot.available_stock
        info = ProductInventoryInfo(
            product_id=product_id,
            variant_id=snapshot.variant.variant_id,
            variant_label=snapshot.variant.label,
            current_stock=snapshot.raw_stock,
            reserved_stock=snapshot.reserved_stock,
            available_stock=available,
            low_stock_threshold=product.low_stock_threshold,
            allow_backorder=product.allow_backorder,
            restock_date=product.restock_date,
            stock_status=calculate_stock_status(
                available, product.low_stock_threshold, product.allow_backorder
            ),
        )
        return info, self._cache_ttl(snapshot)

    async def check_availability(
        self,
        product_id: str,
        variant_id: Optional[str] = None,
        quantity: int = 1,
        label: Optional[str] = None,
    ) -> bool:
        """
        True when the variant has at least `quantity` units not held.

        Raises:
            AddressingError: no usable variant key
            NotFoundError: product/variant missing or ambiguous
            ValidationError: quantity < 1
        """
        key = self._resolve(product_id, variant_id, label)
        if quantity < 1:
            raise ValidationError(f"Quantity must be at least 1, got {quantity}", field="quantity")

        snapshot = await self._compute_snapshot(product_id, key)
        available = snapshot.available_stock
        logger.debug(
            f"[INVENTORY] availability product_id={product_id} "
            f"{key.match_field.value}={key.match_value!r} available={available} requested={quantity}"
        )
        return available >= quantity

    async def get_product_inventory_info(
        self,
        product_id: str,
        variant_id: Optional[str] = None,
        label: Optional[str] = None,
    ) -> ProductInventoryInfo:
        """
        Cache-aside inventory read.

        Key: inventory:product:<productId><cacheSuffix>. A cache failure never
        fails the call; the value is computed directly instead. Entries that
        count active holds expire no later than the earliest of those holds.
        """
        key = self._resolve(product_id, variant_id, label)
        cache_key = inventory_cache_key(product_id, key)

        cached = await self._cache_get(cache_key)
        if cached is not None:
            try:
                return ProductInventoryInfo.model_validate(cached)
            except SchemaValidationError:
                logger.warning(f"[INVENTORY_CACHE] Ignoring malformed entry {cache_key}")

        info, ttl_seconds = await self._compute_info(product_id, key)
        await self._cache_set(cache_key, info.model_dump(mode="json"), ttl_seconds=ttl_seconds)
        return info

    # ----- Reservations -----

    async def reserve_inventory(
        self,
        product_id: str,
        variant_id: Optional[str],
        quantity: int,
        holder_id: str,
        ttl_ms: Optional[int] = None,
        label: Optional[str] = None,
    ) -> ReservationResult:
        """
        Place a time-boxed hold.

        Insufficient stock is an expected outcome: returns success=False and
        leaves the cache untouched. A transaction abort is retried once, then
        raised.
        """
        ledger = self._require_ledger()
        key = self._resolve(product_id, variant_id, label)
        start_time = time.time()

        attempt = 0
        while True:
            try:
                outcome = await ledger.create(product_id, key, quantity, holder_id, ttl_ms=ttl_ms)
                break
            except InsufficientStockError as e:
                logger.info(
                    f"[INVENTORY] Reservation denied product_id={product_id} "
                    f"{key.match_field.value}={key.match_value!r} requested={quantity} "
                    f"available={e.available_qty}"
                )
                return ReservationResult(
                    success=False,
                    available_stock=e.available_qty,
                    message=e.message,
                )
            except TransactionAbortedError:
                if attempt >= MAX_RESERVATION_RETRIES:
                    logger.error(
                        f"[INVENTORY] Reservation aborted after {attempt + 1} attempts product_id={product_id}"
                    )
                    raise
                attempt += 1
                logger.warning(f"[INVENTORY] Reservation transaction aborted, retrying product_id={product_id}")

        await self._invalidate_outcome(outcome)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"INVENTORY_METRIC: reservation_created "
            f"reservation_id={outcome.reservation.id} product_id={product_id} "
            f"mode={'label' if key.is_label else 'variantId'} attempts={attempt + 1} "
            f"duration_ms={duration_ms:.2f}"
        )
        return ReservationResult(
            success=True,
            reservation_id=outcome.reservation.id,
            available_stock=outcome.available_stock,
            expires_at=outcome.reservation.expires_at,
            message="Inventory reserved",
        )

    @staticmethod
    def _status_response(outcome: LedgerResult) -> ReservationStatusResponse:
        reservation = outcome.reservation
        return ReservationStatusResponse(
            reservation_id=reservation.id,
            status=reservation.status,
            product_id=reservation.product_id,
            quantity=reservation.quantity,
            available_stock=outcome.available_stock,
            order_id=reservation.order_id,
            resolved_at=reservation.resolved_at,
        )

    async def commit_reservation(
        self,
        reservation_id: int,
        order_id: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> ReservationStatusResponse:
        """
        Turn a held reservation into a permanent deduction (order completed).

        A hold that lapsed before commit is marked expired by the ledger; its
        variant is invalidated here before ReservationExpiredError propagates,
        since the sweep will never see that row again.
        """
        ledger = self._require_ledger()
        try:
            outcome = await ledger.commit(reservation_id, order_id=order_id, actor_id=actor_id)
        except ReservationExpiredError as e:
            if e.details.get("product_id"):
                await self.invalidate_variant_cache(
                    e.details["product_id"], e.details.get("variant_id"), e.details.get("variant_label")
                )
            raise
        await self._invalidate_outcome(outcome)
        return self._status_response(outcome)

    async def cancel_reservation(self, reservation_id: int) -> ReservationStatusResponse:
        outcome = await self._require_ledger().cancel(reservation_id)
        await self._invalidate_outcome(outcome)
        return self._status_response(outcome)

    async def release_expired_reservations(self, now: Optional[datetime] = None) -> dict:
        """
        Expire lapsed holds and drop cached reads that still counted them.

        Returns:
            dict with expired reservation count, released units and
            invalidated variants
        """
        stats = {
            "reservations_expired": 0,
            "units_released": 0,
            "variants_invalidated": 0,
        }
        if self.ledger is None:
            return stats

        outcomes = await self.ledger.expire_due(now)
        stats["reservations_expired"] = len(outcomes)
        stats["units_released"] = sum(outcome.reservation.quantity for outcome in outcomes)
        stats["variants_invalidated"] = await self._invalidate_outcomes(outcomes)
        return stats

    async def cancel_holder_reservations(self, holder_id: str) -> HolderReleaseResult:
        """Release every hold a cart or session still has, e.g. on logout or cart clear."""
        if not holder_id:
            raise ValidationError("holder_id is required", field="holder_id")

        outcomes = await self._require_ledger().cancel_holder(holder_id)
        return HolderReleaseResult(
            holder_id=holder_id,
            reservations_cancelled=len(outcomes),
            units_released=sum(outcome.reservation.quantity for outcome in outcomes),
            variants_invalidated=await self._invalidate_outcomes(outcomes),
        )

    # ----- Manual adjustments -----

    async def adjust_inventory(
        self,
        product_id: str,
        variant_id: Optional[str],
        adjustment: int,
        reason: Union[AdjustmentReason, str],
        actor_id: str,
        label: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> InventoryAdjustmentResult:
        """
        Apply a signed change to on-hand inventory with an audit record.

        Raises:
            ValidationError: bad reason/sign/bounds, or result outside 0..max
            InsufficientStockError: a sale larger than unheld stock
            TransactionAbortedError: the store rejected the transaction
        """
        try:
            reason = AdjustmentReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown adjustment reason: {reason!r}", field="reason")
        try:
            validate_adjustment_value(adjustment, reason)
        except ValueError as e:
            raise ValidationError(str(e), field="adjustment")

        key = self._resolve(product_id, variant_id, label)
        now = self._now()

        async with self.session_factory() as db:
            try:
                async with db.begin():
                    snapshot = await compute_stock_snapshot(
                        db,
                        product_id,
                        key,
                        now=now,
                        include_reservations=self.reservations_enabled,
                        for_update=True,
                    )
                    variant = snapshot.variant
                    previous = variant.inventory
                    new_quantity = previous + adjustment

                    if new_quantity < 0:
                        raise ValidationError(
                            f"Inventory cannot go below zero (current {previous}, adjustment {adjustment})",
                            field="adjustment",
                        )
                    if new_quantity > settings.INVENTORY_MAX_LEVEL:
                        raise ValidationError(
                            f"Inventory cannot exceed {settings.INVENTORY_MAX_LEVEL} units",
                            field="adjustment",
                        )
                    if reason is AdjustmentReason.SALE and -adjustment > snapshot.available_stock:
                        raise InsufficientStockError(
                            f"Sale of {-adjustment} exceeds available stock {snapshot.available_stock}",
                            product_id=product_id,
                            requested_qty=-adjustment,
                            available_qty=max(snapshot.available_stock, 0),
                        )

                    variant.inventory = new_quantity
                    movement = StockMovement(
                        product_id=product_id,
                        product_variant_id=variant.id,
                        movement_type=reason.value,
                        quantity=adjustment,
                        previous_stock=previous,
                        new_stock=new_quantity,
                        reference_type="manual",
                        actor_id=actor_id,
                        extra=metadata,
                    )
                    db.add(movement)
                    await db.flush()

                    result = InventoryAdjustmentResult(
                        success=True,
                        product_id=product_id,
                        variant_id=variant.variant_id,
                        previous_quantity=previous,
                        new_quantity=new_quantity,
                        available_stock=new_quantity - snapshot.reserved_stock,
                        reason=reason.value,
                        movement_id=movement.id,
                    )
                    invalidate = (variant.variant_id, variant.label)
            except DBAPIError as e:
                raise TransactionAbortedError(
                    "Inventory adjustment aborted",
                    details={"product_id": product_id, "cause": type(e).__name__},
                ) from e

        await self.invalidate_variant_cache(product_id, *invalidate)
        logger.info(
            f"INVENTORY_METRIC: adjustment product_id={product_id} variant_id={result.variant_id} "
            f"reason={reason.value} delta={adjustment:+d} previous={previous} new={new_quantity} "
            f"actor_id={actor_id}"
        )
        return result

    async def bulk_adjust_inventory(
        self,
        updates: Iterable[Union[BulkAdjustmentItem, Dict[str, Any]]],
        actor_id: str,
    ) -> List[InventoryAdjustmentResult]:
        """Apply adjustments one by one; a failing entry does not stop the batch."""
        results = []
        for update in updates:
            entry = update.model_dump(mode="json") if isinstance(update, BulkAdjustmentItem) else dict(update)
            try:
                item = BulkAdjustmentItem.model_validate(update)
                result = await self.adjust_inventory(
                    item.product_id,
                    item.variant_id,
                    item.adjustment,
                    item.reason,
                    actor_id,
                    label=item.label,
                    metadata=item.metadata,
                )
            except SchemaValidationError as e:
                result = _failed_adjustment(entry, _describe_schema_error(e))
            except InventoryError as e:
                result = _failed_adjustment(entry, e.message)

            if not result.success:
                logger.warning(
                    f"[INVENTORY] Bulk adjustment failed product_id={result.product_id}: {result.error}"
                )
            results.append(result)
        return results

    # ----- Reporting -----

    def _held_by_variant(self, now: datetime):
        """Per-variant active hold totals as a subquery, or None without a ledger."""
        if not self.reservations_enabled:
            return None
        return (
            select(
                StockReservation.product_variant_id.label("product_variant_id"),
                func.sum(StockReservation.quantity).label("held"),
            )
            .where(StockReservation.status == ReservationStatus.HELD.value)
            .where(StockReservation.expires_at > now)
            .group_by(StockReservation.product_variant_id)
            .subquery()
        )

    async def get_inventory_metrics(self) -> InventoryMetrics:
        """Store-wide totals, computed directly (never cached)."""
        held_sq = self._held_by_variant(self._now())
        held = func.coalesce(held_sq.c.held, 0) if held_sq is not None else literal(0)

        available = ProductVariant.inventory - held
        stmt = (
            select(
                func.count(ProductVariant.id),
                func.coalesce(func.sum(ProductVariant.inventory * ProductVariant.price), 0),
                func.count(ProductVariant.id).filter(available <= 0),
                func.count(ProductVariant.id).filter(
                    and_(available > 0, available <= Product.low_stock_threshold)
                ),
                func.coalesce(func.sum(held), 0),
            )
            .select_from(ProductVariant)
            .join(Product, ProductVariant.product_id == Product.id)
        )
        if held_sq is not None:
            stmt = stmt.outerjoin(held_sq, held_sq.c.product_variant_id == ProductVariant.id)

        async with self.session_factory() as db:
            total, value, out_of_stock, low_stock, reserved = (await db.execute(stmt)).one()

        return InventoryMetrics(
            total_variants=int(total or 0),
            total_value=round(float(value or 0), 2),
            out_of_stock_count=int(out_of_stock or 0),
            low_stock_count=int(low_stock or 0),
            total_reserved=int(reserved or 0),
        )

    async def _stock_alerts(self, condition_for, limit: int) -> List[StockAlert]:
        held_sq = self._held_by_variant(self._now())
        held = func.coalesce(held_sq.c.held, 0) if held_sq is not None else literal(0)
        available = ProductVariant.inventory - held

        stmt = (
            select(Product, ProductVariant, held.label("held"))
            .select_from(ProductVariant)
            .join(Product, ProductVariant.product_id == Product.id)
            .where(condition_for(available))
            .order_by(available, Product.id, ProductVariant.position)
            .limit(limit)
        )
        if held_sq is not None:
            stmt = stmt.outerjoin(held_sq, held_sq.c.product_variant_id == ProductVariant.id)

        async with self.session_factory() as db:
            rows = (await db.execute(stmt)).all()

        alerts = []
        for product, variant, reserved in rows:
            reserved = int(reserved or 0)
            available_stock = variant.inventory - reserved
            alerts.append(StockAlert(
                product_id=product.id,
                product_name=product.name,
                variant_id=variant.variant_id,
                variant_label=variant.label,
                current_stock=variant.inventory,
                reserved_stock=reserved,
                available_stock=available_stock,
                threshold=product.low_stock_threshold,
                allow_backorder=product.allow_backorder,
                restock_date=product.restock_date,
                stock_status=calculate_stock_status(
                    available_stock, product.low_stock_threshold, product.allow_backorder
                ),
            ))
        return alerts

    async def get_low_stock_variants(self, threshold: Optional[int] = None, limit: int = 50) -> List[StockAlert]:
        """
        Variants still in stock but at or below a threshold, lowest first.

        Without an explicit threshold each product's own low_stock_threshold
        applies.
        """
        if threshold is not None and threshold < 0:
            raise ValidationError(f"Threshold cannot be negative, got {threshold}", field="threshold")

        def condition(available):
            limit_column = Product.low_stock_threshold if threshold is None else threshold
            return and_(available > 0, available <= limit_column)

        return await self._stock_alerts(condition, limit)

    async def get_out_of_stock_variants(self, limit: int = 50) -> List[StockAlert]:
        """Variants with nothing available that cannot be backordered."""
        def condition(available):
            return and_(available <= 0, Product.allow_backorder.is_(False))

        return await self._stock_alerts(condition, limit)

    async def get_inventory_history(
        self,
        product_id: str,
        variant_id: Optional[str] = None,
        label: Optional[str] = None,
        limit: int = 50,
    ) -> InventoryHistory:
        """
        Stock movement audit trail, newest first.

        With a variant address (resolved like any other read) only that
        variant's movements are returned; otherwise the whole product's.
        """
        if not 0 < limit <= 100:
            raise ValidationError(f"Limit must be between 1 and 100, got {limit}", field="limit")

        stmt = (
            select(StockMovement, ProductVariant.variant_id, ProductVariant.label)
            .join(ProductVariant, StockMovement.product_variant_id == ProductVariant.id)
            .where(StockMovement.product_id == product_id)
        )
        count_stmt = select(func.count(StockMovement.id)).where(StockMovement.product_id == product_id)

        async with self.session_factory() as db:
            resolved_variant_id = None
            if variant_id is not None or label is not None:
                variant = await find_variant(db, product_id, self._resolve(product_id, variant_id, label))
                resolved_variant_id = variant.variant_id
                stmt = stmt.where(StockMovement.product_variant_id == variant.id)
                count_stmt = count_stmt.where(StockMovement.product_variant_id == variant.id)
            elif await db.get(Product, product_id) is None:
                raise ProductNotFoundError(f"Product not found: {product_id}", product_id=product_id)

            total = (await db.execute(count_stmt)).scalar_one()
            rows = (await db.execute(
                stmt.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit)
            )).all()

        return InventoryHistory(
            product_id=product_id,
            variant_id=resolved_variant_id,
            total=int(total or 0),
            movements=[
                StockMovementEntry(
                    id=movement.id,
                    variant_id=movement_variant_id,
                    variant_label=movement_label,
                    movement_type=movement.movement_type,
                    quantity=movement.quantity,
                    previous_stock=movement.previous_stock,
                    new_stock=movement.new_stock,
                    reference_type=movement.reference_type,
                    reference_id=movement.reference_id,
                    actor_id=movement.actor_id,
                    metadata=movement.extra,
                    created_at=movement.created_at,
                )
                for movement, movement_variant_id, movement_label in rows
            ],
        )


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _failed_adjustment(entry: Dict[str, Any], error: str) -> InventoryAdjustmentResult:
    return InventoryAdjustmentResult(
        success=False,
        product_id=_text_or_none(entry.get("product_id")) or "",
        variant_id=_text_or_none(entry.get("variant_id")),
        reason=_text_or_none(entry.get("reason")),
        error=error,
    )


def _describe_schema_error(error: SchemaValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'entry'}: {err['msg']}"
        for err in error.errors()
    )
