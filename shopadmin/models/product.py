"""
Product and ProductVariant models

Owned by the catalog; read-mostly from the inventory subsystem. Inventory is
the raw on-hand count per variant. Availability subtracts active holds (see
StockReservation).
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey,
    CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from shopadmin.core.config import settings
from shopadmin.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, index=True)

    # Inventory policy
    low_stock_threshold = Column(Integer, nullable=False, default=settings.DEFAULT_LOW_STOCK_THRESHOLD)
    allow_backorder = Column(Boolean, nullable=False, default=False)
    restock_date = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    variants = relationship(
        "ProductVariant",
        back_populates="product",
        order_by="ProductVariant.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Product {self.id}: {self.name}>"


class ProductVariant(Base):
    """
    One sellable variant of a product.

    variant_id is stable and never reused. label is human readable and may
    change; it is indexed but carries no unique constraint because a label
    backfill can transiently duplicate it, and duplicates must surface as an
    ambiguous match rather than a failed write.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("inventory >= 0", name="ck_variant_inventory_non_negative"),
        UniqueConstraint("product_id", "variant_id", name="uq_variant_product_variant_id"),
        Index("ix_product_variants_product_label", "product_id", "label"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        String(64),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    variant_id = Column(String(64), nullable=False)
    label = Column(String(255), nullable=True)  # NULL until backfilled

    inventory = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<ProductVariant {self.product_id}/{self.variant_id} label={self.label!r} inventory={self.inventory}>"
