"""
Inventory Schemas

Pydantic models for inventory service results and API requests/responses.
"""
import enum
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator

from shopadmin.core.config import settings
from shopadmin.models.stock_movement import AdjustmentReason, INBOUND_REASONS, OUTBOUND_REASONS


class StockStatus(str, enum.Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"
    BACKORDERED = "backordered"


def calculate_stock_status(available_stock: int, threshold: int, allow_backorder: bool) -> StockStatus:
    if available_stock <= 0:
        return StockStatus.BACKORDERED if allow_backorder else StockStatus.OUT_OF_STOCK
    if available_stock <= threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def validate_adjustment_value(adjustment: int, reason: AdjustmentReason) -> None:
    """Raise ValueError when an adjustment is out of bounds for its reason."""
    if adjustment == 0:
        raise ValueError("Adjustment cannot be zero")
    if abs(adjustment) > settings.INVENTORY_MAX_ADJUSTMENT:
        raise ValueError(f"Adjustment cannot exceed {settings.INVENTORY_MAX_ADJUSTMENT} units")
    if reason in OUTBOUND_REASONS and adjustment > 0:
        raise ValueError(f"Adjustment for '{reason.value}' must be negative")
    if reason in INBOUND_REASONS and adjustment < 0:
        raise ValueError(f"Adjustment for '{reason.value}' must be positive")


# ==================== Service Results ====================


class ProductInventoryInfo(BaseModel):
    """Inventory read for one variant. This is the cached payload."""
    product_id: str
    variant_id: Optional[str] = None
    variant_label: Optional[str] = None
    current_stock: int
    reserved_stock: int = 0
    available_stock: int
    low_stock_threshold: int
    allow_backorder: bool = False
    restock_date: Optional[datetime] = None
    stock_status: StockStatus


class ReservationResult(BaseModel):
    success: bool
    reservation_id: Optional[int] = None
    available_stock: Optional[int] = None
    expires_at: Optional[datetime] = None
    message: Optional[str] = None


class ReservationStatusResponse(BaseModel):
    reservation_id: int
    status: str
    product_id: str
    quantity: int
    available_stock: int
    order_id: Optional[str] = None
    resolved_at: Optional[datetime] = None


class InventoryAdjustmentResult(BaseModel):
    success: bool
    product_id: str
    variant_id: Optional[str] = None
    previous_quantity: int = 0
    new_quantity: int = 0
    available_stock: int = 0
    reason: Optional[str] = None
    movement_id: Optional[int] = None
    error: Optional[str] = None


class InventoryMetrics(BaseModel):
    total_variants: int = 0
    total_value: float = 0.0
    out_of_stock_count: int = 0
    low_stock_count: int = 0
    total_reserved: int = 0


class StockMovementEntry(BaseModel):
    """One audit row from stock_movements."""
    id: int
    variant_id: Optional[str] = None
    variant_label: Optional[str] = None
    movement_type: str
    quantity: int
    previous_stock: int
    new_stock: int
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    actor_id: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class InventoryHistory(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    total: int
    movements: List[StockMovementEntry]


class StockAlert(BaseModel):
    """A variant at or below its stock threshold."""
    product_id: str
    product_name: str
    variant_id: Optional[str] = None
    variant_label: Optional[str] = None
    current_stock: int
    reserved_stock: int
    available_stock: int
    threshold: int
    allow_backorder: bool = False
    restock_date: Optional[datetime] = None
    stock_status: StockStatus


class HolderReleaseResult(BaseModel):
    holder_id: str
    reservations_cancelled: int = 0
    units_released: int = 0
    variants_invalidated: int = 0


# ==================== API Requests ====================


class VariantAddress(BaseModel):
    """Either a legacy variant id or a label (or both during migration)."""
    variant_id: Optional[str] = Field(None, max_length=64)
    label: Optional[str] = Field(None, max_length=255)


class ReservationCreate(VariantAddress):
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0, le=10000)
    holder_id: str = Field(..., min_length=1, max_length=255)
    ttl_ms: Optional[int] = Field(None, gt=0)


class ReservationCommit(BaseModel):
    order_id: Optional[str] = Field(None, max_length=255)
    actor_id: Optional[str] = Field(None, max_length=255)


class InventoryAdjustmentRequest(VariantAddress):
    product_id: str = Field(..., min_length=1, max_length=64)
    adjustment: int
    reason: AdjustmentReason
    actor_id: str = Field(..., min_length=1, max_length=255)
    metadata: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_adjustment(self):
        validate_adjustment_value(self.adjustment, self.reason)
        return self


class BulkAdjustmentItem(VariantAddress):
    product_id: str = Field(..., min_length=1, max_length=64)
    adjustment: int
    reason: AdjustmentReason
    metadata: Optional[Dict[str, Any]] = None


class BulkInventoryAdjustmentRequest(BaseModel):
    actor_id: str = Field(..., min_length=1, max_length=255)
    updates: List[BulkAdjustmentItem] = Field(..., min_length=1, max_length=500)


class VariantLabelFlagUpdate(BaseModel):
    """Set (true/false) or clear (null) the runtime override."""
    enabled: Optional[bool] = None


class VariantLabelFlagResponse(BaseModel):
    enabled: bool
    mode: str
    source: str

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v):
        if v not in ("legacy", "label"):
            raise ValueError("mode must be 'legacy' or 'label'")
        return v
