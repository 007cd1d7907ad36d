"""
Stock aggregation

Reads a variant's raw on-hand inventory, matched by a resolved VariantKey,
and the quantity currently held by active reservations. Read-only: no
caching, no writes.

Query shape (two stages, one match field):
    products.id = :product_id
    AND (product_variants.variant_id = :value  |  product_variants.label = :value)
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shopadmin.core.exceptions import (
    AmbiguousVariantError,
    ProductNotFoundError,
    VariantNotFoundError,
)
from shopadmin.models import Product, ProductVariant, StockReservation, ReservationStatus
from shopadmin.models.stock_reservation import as_utc
from shopadmin.services.variant_keys import MatchField, VariantKey

logger = logging.getLogger(__name__)

_MATCH_COLUMNS = {
    MatchField.VARIANT_ID: ProductVariant.variant_id,
    MatchField.LABEL: ProductVariant.label,
}


@dataclass
class StockSnapshot:
    """Raw and held stock for one resolved variant row."""
    product: Product
    variant: ProductVariant
    raw_stock: int
    reserved_stock: int
    # Earliest expires_at among the holds counted in reserved_stock
    next_hold_expiry: Optional[datetime] = None

    @property
    def available_stock(self) -> int:
        return self.raw_stock - self.reserved_stock


def build_stock_query(product_id: str, key: VariantKey, for_update: bool = False) -> Select:
    """
    Select the variant rows for one product matching exactly one field.

    The second stage is chosen from the key's match field alone; there is no
    code path that adds both a variant_id and a label clause. With for_update
    the matched variant rows are locked (FOR UPDATE OF product_variants on
    Postgres) until the surrounding transaction ends.
    """
    match_column = _MATCH_COLUMNS[key.match_field]
    stmt = (
        select(ProductVariant)
        .join(Product, ProductVariant.product_id == Product.id)
        .where(Product.id == product_id)
        .where(match_column == key.match_value)
    )
    if for_update:
        stmt = stmt.with_for_update(of=ProductVariant)
    return stmt


async def find_variant(
    db: AsyncSession,
    product_id: str,
    key: VariantKey,
    for_update: bool = False,
) -> ProductVariant:
    """
    Resolve exactly one variant row.

    Raises:
        ProductNotFoundError: product does not exist
        VariantNotFoundError: no variant matched
        AmbiguousVariantError: more than one variant matched (label collision)
    """
    result = await db.execute(build_stock_query(product_id, key, for_update=for_update))
    variants = result.scalars().all()

    if len(variants) == 1:
        return variants[0]

    if len(variants) > 1:
        logger.error(
            f"[STOCK] Ambiguous variant match product_id={product_id} "
            f"{key.match_field.value}={key.match_value!r} matches={len(variants)}"
        )
        raise AmbiguousVariantError(
            f"{len(variants)} variants match {key.match_field.value}={key.match_value!r}",
            product_id=product_id,
            match_field=key.match_field.value,
            match_value=key.match_value,
            match_count=len(variants),
        )

    product = await db.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product not found: {product_id}", product_id=product_id)

    raise VariantNotFoundError(
        f"Variant not found: {key.match_field.value}={key.match_value!r}",
        product_id=product_id,
        match_field=key.match_field.value,
        match_value=key.match_value,
    )


async def compute_raw_stock(db: AsyncSession, product_id: str, key: VariantKey) -> int:
    variant = await find_variant(db, product_id, key)
    return variant.inventory


def active_holds_clause(variant_pk: int, now: datetime):
    """Held and not yet past expiry, regardless of sweeper lag."""
    return and_(
        StockReservation.product_variant_id == variant_pk,
        StockReservation.status == ReservationStatus.HELD.value,
        StockReservation.expires_at > now,
    )


async def active_reserved_quantity(db: AsyncSession, variant_pk: int, now: datetime) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(StockReservation.quantity), 0))
        .where(active_holds_clause(variant_pk, now))
    )
    return int(result.scalar() or 0)


async def next_hold_expiry(db: AsyncSession, variant_pk: int, now: datetime) -> Optional[datetime]:
    result = await db.execute(
        select(func.min(StockReservation.expires_at)).where(active_holds_clause(variant_pk, now))
    )
    return as_utc(result.scalar())


async def compute_stock_snapshot(
    db: AsyncSession,
    product_id: str,
    key: VariantKey,
    now: Optional[datetime] = None,
    include_reservations: bool = True,
    for_update: bool = False,
) -> StockSnapshot:
    """
    Raw inventory plus active holds for one variant.

    With include_reservations=False (ledger disabled) holds contribute 0.
    """
    variant = await find_variant(db, product_id, key, for_update=for_update)
    product = await db.get(Product, variant.product_id)
    now = now or datetime.now(timezone.utc)

    reserved = 0
    next_expiry = None
    if include_reservations:
        reserved = await active_reserved_quantity(db, variant.id, now)
        if reserved:
            next_expiry = await next_hold_expiry(db, variant.id, now)

    return StockSnapshot(
        product=product,
        variant=variant,
        raw_stock=variant.inventory,
        reserved_stock=reserved,
        next_hold_expiry=next_expiry,
    )
