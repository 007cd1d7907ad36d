"""
Stock Movement model for inventory tracking and audit

Every change to a variant's on-hand inventory records who, when and why.
"""
import enum
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, JSON,
    CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shopadmin.core.database import Base


class AdjustmentReason(str, enum.Enum):
    SALE = "sale"
    RETURN = "return"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"
    DAMAGE = "damage"
    THEFT = "theft"
    TRANSFER = "transfer"
    RESERVATION_EXPIRED = "reservation_expired"
    MANUAL_CORRECTION = "manual_correction"


# Reasons whose adjustment must be <= 0 / >= 0
OUTBOUND_REASONS = frozenset({
    AdjustmentReason.SALE,
    AdjustmentReason.DAMAGE,
    AdjustmentReason.THEFT,
    AdjustmentReason.TRANSFER,
})
INBOUND_REASONS = frozenset({
    AdjustmentReason.RETURN,
    AdjustmentReason.RESTOCK,
})


class StockMovement(Base):
    """Audit trail for inventory stock changes"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)

    # What changed
    product_id = Column(
        String(64),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_variant_id = Column(
        Integer,
        ForeignKey("product_variants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Movement details
    movement_type = Column(String(30), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)  # positive for in, negative for out
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)

    # Reference to source
    reference_type = Column(String(50), nullable=True)  # reservation, manual, bulk
    reference_id = Column(String(255), nullable=True)

    # Who
    actor_id = Column(String(255), nullable=False)

    extra = Column("metadata", JSON, nullable=True)

    # When
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True
    )

    # Relationships
    variant = relationship("ProductVariant")

    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('sale', 'return', 'restock', 'adjustment', 'damage', "
            "'theft', 'transfer', 'reservation_expired', 'manual_correction')",
            name="chk_movement_type"
        ),
        Index("ix_stock_movements_variant_created", product_variant_id, created_at.desc()),
    )

    def __repr__(self):
        return f"<StockMovement {self.id}: {self.movement_type} {self.quantity:+d} on variant {self.product_variant_id}>"
