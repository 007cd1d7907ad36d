"""
Stock Reservation model

Time-boxed hold against a variant's inventory, created inside the same
transaction that checks capacity.

Lifecycle:
    held -> committed  (order completed; inventory decremented)
    held -> cancelled  (hold released by the caller)
    held -> expired    (past expires_at; swept by the background job)

Terminal rows are kept for audit. A held row past its expiry never counts
against availability, whether or not the sweeper has reached it yet.
"""
import enum
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship

from shopadmin.core.database import Base


class ReservationStatus(str, enum.Enum):
    HELD = "held"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (SQLite round trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class StockReservation(Base):
    """
    Hold on a variant, addressed by whichever mode created it.

    Exactly one of variant_id / variant_label is recorded. product_variant_id
    always points at the resolved row, so holds made through either addressing
    mode count against the same stock.
    """
    __tablename__ = "stock_reservations"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reservation_quantity_positive"),
        CheckConstraint(
            "(variant_id IS NULL) <> (variant_label IS NULL)",
            name="ck_reservation_single_address",
        ),
        CheckConstraint(
            "status IN ('held', 'committed', 'cancelled', 'expired')",
            name="ck_reservation_status",
        ),
        Index("ix_stock_reservations_variant_status", "product_variant_id", "status", "expires_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(String(64), ForeignKey("products.id"), nullable=False, index=True)
    product_variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)

    # Address as supplied by the creating call
    variant_id = Column(String(64), nullable=True)
    variant_label = Column(String(255), nullable=True)

    quantity = Column(Integer, nullable=False)
    holder_id = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ReservationStatus.HELD.value, index=True)
    order_id = Column(String(255), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    product = relationship("Product")
    variant = relationship("ProductVariant")

    @property
    def is_held(self) -> bool:
        return self.status == ReservationStatus.HELD.value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if this reservation's hold window has passed."""
        now = as_utc(now) or datetime.now(timezone.utc)
        return now >= as_utc(self.expires_at)

    @classmethod
    def create_expiry(cls, ttl_ms: int, now: Optional[datetime] = None) -> datetime:
        """Calculate expiry timestamp from now."""
        now = as_utc(now) or datetime.now(timezone.utc)
        return now + timedelta(milliseconds=ttl_ms)

    def __repr__(self):
        return f"<StockReservation {self.id}: {self.status} qty={self.quantity} variant_row={self.product_variant_id}>"
